from __future__ import annotations

import io
import threading

import pytest
from pypdf import PdfReader

from casepdf import consolidate_pdfs
from casepdf.exceptions import BatchCancelledError, DocumentRecoveryError, RecoveryError
from casepdf.recovery.orchestrator import MergeOrchestrator
from casepdf.types import ErrorKind, InputDocument, PageKind, StrategyName

from conftest import FakeRenderer


def _inputs(*buffers: bytes) -> list[InputDocument]:
    return [
        InputDocument(data=data, display_name=f"upload-{index + 1}.pdf", ordinal_index=index)
        for index, data in enumerate(buffers)
    ]


def test_scenario_backfills_to_estimated_page_count(offline_settings, text_pdf, damaged_pdf) -> None:
    documents = _inputs(text_pdf(2), text_pdf(37), damaged_pdf(6))
    with MergeOrchestrator(offline_settings) as orchestrator:
        merged = orchestrator.merge(documents)

    assert merged.total_pages == 47
    assert len(PdfReader(io.BytesIO(merged.data)).pages) == 47
    assert merged.recovery_methods[:2] == ("DirectLoad", "DirectLoad")
    third = [r for r in merged.page_records if r.source_document_index == 2 and r.kind is not PageKind.SEPARATOR]
    assert len(third) == 6
    assert all(record.kind is PageKind.PLACEHOLDER for record in third)


def test_scenario_encrypted_document_rendered(offline_settings, encrypted_pdf) -> None:
    renderer = FakeRenderer(pages=3)
    orchestrator = MergeOrchestrator(offline_settings, renderer=renderer)

    processed = orchestrator.process_document(_inputs(encrypted_pdf)[0])

    assert processed.success
    assert processed.method_name == "ExternalPrintRender"
    assert not processed.used_placeholders
    merged = orchestrator.merge(_inputs(encrypted_pdf))
    assert merged.recovery_methods == ("ExternalPrintRender",)
    assert all(record.kind is PageKind.CONTENT for record in merged.page_records)


def test_scenario_unrecoverable_document_fails_batch(offline_settings, single_page_pdf) -> None:
    settings = offline_settings.with_updates(
        disabled_strategies=frozenset({StrategyName.FULL_RECONSTRUCTION})
    )
    with MergeOrchestrator(settings) as orchestrator:
        with pytest.raises(DocumentRecoveryError) as excinfo:
            orchestrator.merge(_inputs(single_page_pdf, b"\x00\x01 corrupted upload"))

    assert excinfo.value.error_kind is ErrorKind.CORRUPTED_PDF
    assert excinfo.value.display_name == "upload-2.pdf"


def test_total_pages_property(offline_settings, text_pdf) -> None:
    orchestrator = MergeOrchestrator(offline_settings, renderer=FakeRenderer())
    documents = _inputs(text_pdf(1), text_pdf(4), text_pdf(2), b"")
    processed = orchestrator.process_all(documents)
    merged = orchestrator.assembler.assemble(processed)

    assert all(document.page_count >= 1 for document in processed)
    assert merged.total_pages == sum(d.page_count for d in processed) + len(processed) - 1
    assert [d.ordinal_index for d in processed] == [0, 1, 2, 3]


def test_empty_batch_is_rejected(offline_settings) -> None:
    with pytest.raises(RecoveryError, match="No input documents provided"):
        MergeOrchestrator(offline_settings).merge([])


def test_cancelled_batch_produces_no_output(offline_settings, text_pdf) -> None:
    event = threading.Event()
    event.set()
    with pytest.raises(BatchCancelledError):
        MergeOrchestrator(offline_settings).merge(_inputs(text_pdf(1), text_pdf(1)), event)


def test_close_only_shuts_down_owned_renderer(offline_settings) -> None:
    renderer = FakeRenderer()
    MergeOrchestrator(offline_settings, renderer=renderer).close()
    assert not renderer.closed

    orchestrator = MergeOrchestrator(offline_settings)
    orchestrator.close()
    assert orchestrator.renderer.closed


def test_consolidate_pdfs_helper(offline_settings, text_pdf) -> None:
    merged = consolidate_pdfs(
        [text_pdf(1), text_pdf(1)], ["a.pdf", "b.pdf"], settings=offline_settings
    )
    assert merged.total_pages == 3
    assert merged.document_count == 2


def test_consolidate_pdfs_requires_matching_names(offline_settings, text_pdf) -> None:
    with pytest.raises(ValueError):
        consolidate_pdfs([text_pdf(1)], ["a.pdf", "b.pdf"], settings=offline_settings)
