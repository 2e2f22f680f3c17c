"""Type definitions and dataclasses shared by the casepdf recovery engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Pathology(str, Enum):
    """Heuristic classification of why a PDF might be hard to process."""

    ENCRYPTED = "encrypted"
    STRUCTURALLY_SUSPECT = "structurally-suspect"
    NORMAL = "normal"


class ErrorKind(str, Enum):
    """Failure taxonomy surfaced to callers."""

    ENCRYPTED_PDF = "EncryptedPdf"
    CORRUPTED_PDF = "CorruptedPdf"
    INCOMPATIBLE_PDF = "IncompatiblePdf"
    EXTERNAL_TOOL_UNAVAILABLE = "ExternalToolUnavailable"
    MERGE_INTEGRITY_ERROR = "MergeIntegrityError"


class StrategyName(str, Enum):
    """Identifiers of the registered recovery strategies."""

    DIRECT_LOAD = "DirectLoad"
    RELAXED_LOAD = "RelaxedLoad"
    STRUCTURAL_REPAIR = "StructuralRepair"
    EXTERNAL_PRINT_RENDER = "ExternalPrintRender"
    EXTERNAL_STRUCTURE_NORMALIZE = "ExternalStructureNormalize"
    EXTERNAL_RASTER_DISTILL = "ExternalRasterDistill"
    PAGE_BY_PAGE_EXTRACTION = "PageByPageExtraction"
    FULL_RECONSTRUCTION = "FullReconstruction"


class AttemptOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    DECLINED = "declined"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class PageKind(str, Enum):
    CONTENT = "content"
    PLACEHOLDER = "placeholder"
    SEPARATOR = "separator"


@dataclass(frozen=True)
class InputDocument:
    """One uploaded PDF buffer awaiting recovery.

    Attributes:
        data: Raw bytes exactly as uploaded.
        display_name: Name shown on separators and footers.
        ordinal_index: Zero-based position in the upload order.
    """

    data: bytes
    display_name: str
    ordinal_index: int

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StrategyResult:
    """Outcome of one successful strategy attempt."""

    success: bool
    page_count: int
    output_bytes: bytes
    method_name: str
    placeholder_indices: tuple[int, ...] = ()

    @property
    def placeholder_pages(self) -> int:
        return len(self.placeholder_indices)


@dataclass(frozen=True)
class StrategyAttempt:
    """Audit entry describing one strategy attempt within a chain run."""

    method_name: str
    outcome: AttemptOutcome
    detail: str = ""


@dataclass(frozen=True)
class ProcessedDocument:
    """Final recovery outcome of one input document.

    ``success`` is ``False`` only when the whole chain was exhausted; in
    that case ``error_kind`` and ``error_message`` describe the failure and
    ``output_bytes`` is empty.
    """

    display_name: str
    ordinal_index: int
    success: bool
    output_bytes: bytes
    page_count: int
    method_name: str
    pathology: Pathology
    placeholder_indices: tuple[int, ...] = ()
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    attempts: tuple[StrategyAttempt, ...] = ()

    @property
    def placeholder_pages(self) -> int:
        return len(self.placeholder_indices)

    @property
    def used_placeholders(self) -> bool:
        return bool(self.placeholder_indices)


@dataclass(frozen=True)
class PageRecord:
    """Provenance of one page in the merged output.

    ``source_page_index`` is ``None`` for separator pages.
    """

    source_document_index: int
    source_page_index: Optional[int]
    merged_page_number: int
    kind: PageKind = PageKind.CONTENT


@dataclass(frozen=True)
class MergedOutput:
    """The consolidated PDF handed to the persistence collaborator."""

    data: bytes
    total_pages: int
    document_count: int
    page_records: tuple[PageRecord, ...] = field(default_factory=tuple)
    recovery_methods: tuple[str, ...] = field(default_factory=tuple)

    @property
    def size(self) -> int:
        return len(self.data)


__all__ = [
    "Pathology",
    "ErrorKind",
    "StrategyName",
    "AttemptOutcome",
    "PageKind",
    "InputDocument",
    "StrategyResult",
    "StrategyAttempt",
    "ProcessedDocument",
    "PageRecord",
    "MergedOutput",
]
