"""Merge recovered documents into one paginated output."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

import pypdf
from pypdf import PdfWriter

from ..config import RecoverySettings
from ..core.utils import pdf_date, truncate, utcnow
from ..exceptions import DocumentRecoveryError, MergeIntegrityError, RecoveryError
from ..types import ErrorKind, MergedOutput, PageKind, PageRecord, ProcessedDocument
from .inspection import LETTER_SIZE, copy_page_checked, page_size, try_open_reader, writer_bytes
from .pages import page_error_page, separator_page, stamp_footer

LOGGER = logging.getLogger("casepdf.recovery.assembler")


class DocumentAssembler:
    """Compose processed documents with separators and running footers.

    Assembly is two-pass: the total page count, separators included, is
    computed before any page is stamped with ``Page n of N``.
    """

    def __init__(
        self,
        settings: RecoverySettings | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or RecoverySettings()
        self.clock = clock

    def assemble(self, documents: Sequence[ProcessedDocument]) -> MergedOutput:
        if not documents:
            raise RecoveryError("No documents to assemble")
        ordered = sorted(documents, key=lambda document: document.ordinal_index)
        for document in ordered:
            if not document.success:
                raise DocumentRecoveryError(
                    document.error_kind or ErrorKind.CORRUPTED_PDF,
                    document.error_message or f"{document.display_name} could not be recovered",
                    display_name=document.display_name,
                )

        total = sum(document.page_count for document in ordered) + len(ordered) - 1
        writer = PdfWriter()
        records: list[PageRecord] = []
        number = 0
        for position, document in enumerate(ordered):
            if position:
                number += 1
                separator = writer.add_page(
                    separator_page(
                        document.ordinal_index + 1,
                        truncate(document.display_name, self.settings.separator_name_length),
                        document.method_name,
                        placeholder_pages=document.placeholder_pages,
                    )
                )
                stamp_footer(separator, f"Page {number} of {total}")
                records.append(PageRecord(document.ordinal_index, None, number, PageKind.SEPARATOR))
            number = self._copy_document(writer, document, number, total, records)

        if number != total or len(writer.pages) != total:
            raise RecoveryError(f"Assembled {len(writer.pages)} page(s), expected {total}")

        now = pdf_date(self.clock())
        writer.add_metadata(
            {
                "/Title": self.settings.document_title,
                "/Creator": self.settings.document_creator,
                "/Producer": f"{self.settings.document_creator} (pypdf {pypdf.__version__})",
                "/CreationDate": now,
                "/ModDate": now,
            }
        )
        data = writer_bytes(writer)
        LOGGER.info("Assembled %d document(s) into %d page(s)", len(ordered), total)
        return MergedOutput(
            data=data,
            total_pages=total,
            document_count=len(ordered),
            page_records=tuple(records),
            recovery_methods=tuple(document.method_name for document in ordered),
        )

    def _copy_document(
        self,
        writer: PdfWriter,
        document: ProcessedDocument,
        number: int,
        total: int,
        records: list[PageRecord],
    ) -> int:
        reader = try_open_reader(document.output_bytes)
        pages = reader.pages if reader is not None else None
        placeholders = set(document.placeholder_indices)
        name = truncate(document.display_name, self.settings.footer_name_length)

        for index in range(document.page_count):
            number += 1
            merged_label = f"Page {number} of {total}"
            local_label = f"{name} — Page {index + 1} of {document.page_count}"
            kind = PageKind.PLACEHOLDER if index in placeholders else PageKind.CONTENT
            size = LETTER_SIZE
            try:
                if pages is None:
                    raise MergeIntegrityError("Recovered output could not be re-opened")
                source = pages[index]
                size = page_size(source)
                copy_page_checked(
                    writer,
                    source,
                    lambda page: stamp_footer(page, merged_label, local_label),
                )
            except Exception as exc:
                LOGGER.warning(
                    "%s: page %d of %r replaced by an error page: %s",
                    MergeIntegrityError.error_kind.value,
                    index + 1,
                    document.display_name,
                    exc,
                )
                placeholder = writer.add_page(page_error_page(name, index + 1, size))
                stamp_footer(placeholder, merged_label, local_label)
                kind = PageKind.PLACEHOLDER
            records.append(PageRecord(document.ordinal_index, index, number, kind))
        return number


__all__ = ["DocumentAssembler"]
