"""Filesystem persistence for consolidated case documents."""

from __future__ import annotations

import hashlib
import json
import logging
import re
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Sequence

from casepdf import MergedOutput

LOGGER = logging.getLogger("casepdf.backend.storage")

CASE_NUMBER_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
DOCUMENT_FILENAME = "document.pdf"
METADATA_FILENAME = "metadata.json"


class CaseStoreError(Exception):
    """Base exception for case persistence failures."""


class InvalidCaseNumber(CaseStoreError):
    pass


class CaseExistsError(CaseStoreError):
    pass


class CaseNotFoundError(CaseStoreError):
    pass


@dataclass(frozen=True)
class StoredCase:
    """Metadata written next to a stored case document."""

    case_number: str
    document_id: str
    sha256: str
    total_pages: int
    document_count: int
    size: int
    original_names: tuple[str, ...]
    recovery_methods: tuple[str, ...]
    created_at: str


class DiskCaseStore:
    """Store one consolidated PDF per case number below *root*."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._lock = Lock()

    def _case_dir(self, case_number: str) -> Path:
        if not CASE_NUMBER_PATTERN.match(case_number) or case_number in {".", ".."}:
            raise InvalidCaseNumber(f"Invalid case number: {case_number!r}")
        return self.root / case_number

    def exists(self, case_number: str) -> bool:
        return (self._case_dir(case_number) / METADATA_FILENAME).exists()

    def save(
        self,
        case_number: str,
        merged: MergedOutput,
        original_names: Sequence[str],
    ) -> StoredCase:
        directory = self._case_dir(case_number)
        record = StoredCase(
            case_number=case_number,
            document_id=uuid.uuid4().hex,
            sha256=hashlib.sha256(merged.data).hexdigest(),
            total_pages=merged.total_pages,
            document_count=merged.document_count,
            size=merged.size,
            original_names=tuple(original_names),
            recovery_methods=merged.recovery_methods,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            if (directory / METADATA_FILENAME).exists():
                raise CaseExistsError(f"Case {case_number} already has a document")
            directory.mkdir(parents=True, exist_ok=True)
            (directory / DOCUMENT_FILENAME).write_bytes(merged.data)
            (directory / METADATA_FILENAME).write_text(
                json.dumps(asdict(record), indent=2), encoding="utf-8"
            )
        LOGGER.info("Stored case %s (%d pages, %s)", case_number, record.total_pages, record.sha256)
        return record

    def load(self, case_number: str) -> StoredCase:
        path = self._case_dir(case_number) / METADATA_FILENAME
        if not path.exists():
            raise CaseNotFoundError(f"Case {case_number} not found")
        payload = json.loads(path.read_text(encoding="utf-8"))
        payload["original_names"] = tuple(payload.get("original_names", ()))
        payload["recovery_methods"] = tuple(payload.get("recovery_methods", ()))
        return StoredCase(**payload)

    def pdf_path(self, case_number: str) -> Path:
        path = self._case_dir(case_number) / DOCUMENT_FILENAME
        if not path.exists():
            raise CaseNotFoundError(f"Case {case_number} not found")
        return path


__all__ = [
    "CaseStoreError",
    "InvalidCaseNumber",
    "CaseExistsError",
    "CaseNotFoundError",
    "StoredCase",
    "DiskCaseStore",
]
