"""Heuristic pathology classification for raw PDF buffers."""

from __future__ import annotations

import fnmatch
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from ..config import RecoverySettings
from ..exceptions import ConfigurationError
from ..types import ErrorKind, Pathology
from .inspection import has_encryption_marker, has_eof_marker, has_pdf_header, scan_windows

LOGGER = logging.getLogger("casepdf.recovery.classifier")

# An indirect reference ("12 0 R") sitting next to an error message that a
# previous producer wrote into the file.
_ERROR_REFERENCE = re.compile(
    rb"\d+\s+\d+\s+R[^\r\n]{0,48}?(?:missing|error|invalid|not\s+found|corrupt)"
    rb"|(?:missing|error|invalid|not\s+found|corrupt)[^\r\n]{0,48}?\d+\s+\d+\s+R",
    re.IGNORECASE,
)

_ERROR_KINDS = {
    Pathology.ENCRYPTED: ErrorKind.ENCRYPTED_PDF,
    Pathology.STRUCTURALLY_SUSPECT: ErrorKind.CORRUPTED_PDF,
    Pathology.NORMAL: ErrorKind.INCOMPATIBLE_PDF,
}


@dataclass(frozen=True)
class DocumentOverride:
    """A known problem document, matched by a glob pattern on its name.

    ``page_count`` is the number of pages the document is known to contain,
    used when nothing better can be derived from its bytes.
    """

    pattern: str
    page_count: Optional[int] = None

    def matches(self, display_name: str) -> bool:
        return fnmatch.fnmatch(display_name.lower(), self.pattern.lower())


class ProblemDocumentOverrides:
    """Injectable table of known problem documents."""

    def __init__(self, entries: Iterable[DocumentOverride] = ()) -> None:
        self._entries = tuple(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def match(self, display_name: str) -> DocumentOverride | None:
        if not display_name:
            return None
        for entry in self._entries:
            if entry.matches(display_name):
                return entry
        return None

    def matches(self, display_name: str) -> bool:
        return self.match(display_name) is not None

    def page_count_for(self, display_name: str) -> Optional[int]:
        entry = self.match(display_name)
        return entry.page_count if entry else None

    @classmethod
    def from_file(cls, path: str | Path) -> "ProblemDocumentOverrides":
        """Load a JSON list of ``{"pattern": ..., "pageCount": ...}`` objects."""

        source = Path(path)
        try:
            payload = json.loads(source.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Unable to read override table {source}: {exc}") from exc
        if not isinstance(payload, list):
            raise ConfigurationError(f"Override table {source} must contain a JSON list")

        entries = []
        for item in payload:
            if not isinstance(item, dict) or not item.get("pattern"):
                raise ConfigurationError(f"Invalid override entry in {source}: {item!r}")
            page_count = item.get("pageCount")
            if page_count is not None and (not isinstance(page_count, int) or page_count < 1):
                raise ConfigurationError(f"Invalid pageCount for {item['pattern']!r} in {source}")
            entries.append(DocumentOverride(str(item["pattern"]), page_count))
        LOGGER.debug("Loaded %d problem document override(s) from %s", len(entries), source)
        return cls(entries)

    @classmethod
    def from_settings(cls, settings: RecoverySettings) -> "ProblemDocumentOverrides":
        if settings.overrides_file is None:
            return cls()
        return cls.from_file(settings.overrides_file)


class Classifier:
    """Derive a :class:`~casepdf.types.Pathology` from bounded byte windows.

    The tag only orders the strategy chain; it never makes a strategy
    ineligible.
    """

    def __init__(
        self,
        overrides: ProblemDocumentOverrides | None = None,
        *,
        window_bytes: int = 1024 * 1024,
    ) -> None:
        self.overrides = overrides or ProblemDocumentOverrides()
        self.window_bytes = window_bytes

    @classmethod
    def from_settings(
        cls,
        settings: RecoverySettings,
        overrides: ProblemDocumentOverrides | None = None,
    ) -> "Classifier":
        if overrides is None:
            overrides = ProblemDocumentOverrides.from_settings(settings)
        return cls(overrides, window_bytes=settings.classifier_window_bytes)

    def classify(self, data: bytes, display_name: str = "") -> Pathology:
        head, tail = scan_windows(data, self.window_bytes)
        if has_encryption_marker(head, tail):
            pathology = Pathology.ENCRYPTED
        elif self._looks_damaged(data, head, tail) or self.overrides.matches(display_name):
            pathology = Pathology.STRUCTURALLY_SUSPECT
        else:
            pathology = Pathology.NORMAL
        LOGGER.debug("Classified %r (%d bytes) as %s", display_name, len(data), pathology.value)
        return pathology

    def error_kind_for(self, data: bytes, display_name: str = "") -> ErrorKind:
        return _ERROR_KINDS[self.classify(data, display_name)]

    @staticmethod
    def _looks_damaged(data: bytes, head: bytes, tail: bytes) -> bool:
        if not has_pdf_header(data) or not has_eof_marker(tail):
            return True
        return bool(_ERROR_REFERENCE.search(head) or _ERROR_REFERENCE.search(tail))


__all__ = ["Classifier", "DocumentOverride", "ProblemDocumentOverrides"]
