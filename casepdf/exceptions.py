"""Custom exceptions for :mod:`casepdf`."""

from __future__ import annotations

from .types import ErrorKind

REMEDIATION_MESSAGE = (
    "Open the document in a PDF viewer, use Print > Save as PDF (or "
    "Microsoft Print to PDF) to produce a clean copy, and upload that copy "
    "instead."
)


class CasePdfError(Exception):
    """Base exception for all casepdf errors."""


class ConfigurationError(CasePdfError):
    """Raised when settings or the override table are invalid."""


class RecoveryError(CasePdfError):
    """Base exception for the recovery engine."""


class ExternalToolError(RecoveryError):
    """Raised when an external tool or renderer cannot complete a run."""


class ExternalToolUnavailable(ExternalToolError):
    """Raised when an external collaborator cannot be invoked at all.

    This is an environment problem, not a document problem: the chain logs
    it and moves on to the next strategy.
    """

    error_kind = ErrorKind.EXTERNAL_TOOL_UNAVAILABLE


class ExternalToolTimeout(ExternalToolError):
    """Raised when an external process exceeds its time budget."""


class MergeIntegrityError(RecoveryError):
    """Raised when a recovered page cannot be composed into the merged output."""

    error_kind = ErrorKind.MERGE_INTEGRITY_ERROR


class BatchCancelledError(RecoveryError):
    """Raised when the caller cancels an orchestration call."""


class DocumentRecoveryError(RecoveryError):
    """Raised when one document could not be recovered by any strategy.

    A single unrecoverable input blocks the whole batch rather than
    producing an incomplete legal document.
    """

    def __init__(
        self,
        error_kind: ErrorKind,
        message: str,
        *,
        display_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error_kind = error_kind
        self.message = message
        self.display_name = display_name


__all__ = [
    "REMEDIATION_MESSAGE",
    "CasePdfError",
    "ConfigurationError",
    "RecoveryError",
    "ExternalToolError",
    "ExternalToolUnavailable",
    "ExternalToolTimeout",
    "MergeIntegrityError",
    "BatchCancelledError",
    "DocumentRecoveryError",
]
