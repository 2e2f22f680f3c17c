"""Recovery and consolidation of degraded PDF uploads into one service document."""

from __future__ import annotations

from .config import RecoverySettings
from .exceptions import (
    REMEDIATION_MESSAGE,
    BatchCancelledError,
    CasePdfError,
    ConfigurationError,
    DocumentRecoveryError,
    ExternalToolError,
    ExternalToolTimeout,
    ExternalToolUnavailable,
    MergeIntegrityError,
    RecoveryError,
)
from .recovery import (
    Classifier,
    DocumentAssembler,
    MergeOrchestrator,
    ProblemDocumentOverrides,
    StrategyChain,
    consolidate_pdfs,
)
from .types import (
    ErrorKind,
    InputDocument,
    MergedOutput,
    PageRecord,
    Pathology,
    ProcessedDocument,
    StrategyName,
    StrategyResult,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "RecoverySettings",
    "REMEDIATION_MESSAGE",
    "BatchCancelledError",
    "CasePdfError",
    "ConfigurationError",
    "DocumentRecoveryError",
    "ExternalToolError",
    "ExternalToolTimeout",
    "ExternalToolUnavailable",
    "MergeIntegrityError",
    "RecoveryError",
    "Classifier",
    "DocumentAssembler",
    "MergeOrchestrator",
    "ProblemDocumentOverrides",
    "StrategyChain",
    "consolidate_pdfs",
    "ErrorKind",
    "InputDocument",
    "MergedOutput",
    "PageRecord",
    "Pathology",
    "ProcessedDocument",
    "StrategyName",
    "StrategyResult",
]
