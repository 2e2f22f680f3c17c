from __future__ import annotations

from pathlib import Path

import pytest

from casepdf.exceptions import ExternalToolError, ExternalToolUnavailable
from casepdf.recovery.classifier import DocumentOverride, ProblemDocumentOverrides
from casepdf.recovery.external import ToolRun, ToolRunner
from casepdf.recovery.inspection import count_pages
from casepdf.recovery.strategies import StrategyContext, registry
from casepdf.types import InputDocument, StrategyName

from conftest import FakeRenderer, build_partial_pdf, build_text_pdf, page_texts


def _run(environment, name: StrategyName, data: bytes, display_name: str = "doc.pdf"):
    document = InputDocument(data=data, display_name=display_name, ordinal_index=0)
    context = StrategyContext.for_document(environment, document)
    strategy = registry.create(name, context)
    return strategy, strategy.run()


class CopyingRunner(ToolRunner):
    """Pretends a tool is installed and writes *output* as its result."""

    def __init__(self, output: bytes | None = None, error: Exception | None = None) -> None:
        self.output = output
        self.error = error
        self.commands: list[tuple[str, ...]] = []

    def which(self, executables):
        return f"/usr/bin/{executables[0]}"

    def run(self, command, *, timeout, cancel_event=None, accept_codes=(0,)):
        self.commands.append(tuple(command))
        if self.error is not None:
            raise self.error
        target = next(
            (Path(part.split("=", 1)[1]) for part in command if part.startswith("-sOutputFile=")),
            Path(command[-1]),
        )
        target.write_bytes(self.output)
        return ToolRun(tuple(command), 0, "", "")


def test_registry_contains_every_strategy() -> None:
    assert set(registry.names()) == set(StrategyName)


def test_direct_load_round_trip(environment_factory, single_page_pdf) -> None:
    _, result = _run(environment_factory(), StrategyName.DIRECT_LOAD, single_page_pdf)
    assert result is not None
    assert result.method_name == "DirectLoad"
    assert result.page_count == 1
    assert result.placeholder_pages == 0


def test_direct_load_declines_encrypted(environment_factory, restricted_pdf) -> None:
    strategy, result = _run(environment_factory(), StrategyName.DIRECT_LOAD, restricted_pdf)
    assert result is None
    assert "Strict parse failed" in strategy.detail


def test_direct_load_declines_pages_without_content(environment_factory, blank_pdf) -> None:
    strategy, result = _run(environment_factory(), StrategyName.DIRECT_LOAD, blank_pdf)
    assert result is None
    assert "visible content" in strategy.detail


def test_relaxed_load_opens_permission_restricted_documents(environment_factory, restricted_pdf) -> None:
    _, result = _run(environment_factory(), StrategyName.RELAXED_LOAD, restricted_pdf)
    assert result is not None
    assert result.page_count == 2
    assert count_pages(result.output_bytes) == 2


def test_relaxed_load_declines_when_pages_are_missing(environment_factory, damaged_pdf) -> None:
    _, result = _run(environment_factory(), StrategyName.RELAXED_LOAD, damaged_pdf(3))
    assert result is None


def test_structural_repair_backfills_missing_objects(environment_factory, damaged_pdf) -> None:
    _, result = _run(environment_factory(), StrategyName.STRUCTURAL_REPAIR, damaged_pdf(4))
    assert result is not None
    assert result.page_count == 4
    assert result.placeholder_indices == (0, 1, 2, 3)
    assert "Missing object" in page_texts(result.output_bytes)[0]


def test_structural_repair_declines_without_any_page(environment_factory) -> None:
    _, result = _run(environment_factory(), StrategyName.STRUCTURAL_REPAIR, b"")
    assert result is None


def test_page_by_page_keeps_real_pages(environment_factory, text_pdf) -> None:
    _, result = _run(environment_factory(), StrategyName.PAGE_BY_PAGE_EXTRACTION, text_pdf(3))
    assert result is not None
    assert result.page_count == 3
    assert result.placeholder_pages == 0


def test_page_by_page_placeholders_for_locked_pages(environment_factory, encrypted_pdf) -> None:
    _, result = _run(environment_factory(), StrategyName.PAGE_BY_PAGE_EXTRACTION, encrypted_pdf)
    assert result is not None
    assert result.page_count == 3
    assert result.placeholder_pages == 3
    assert "manual review required" in page_texts(result.output_bytes)[0]


@pytest.mark.parametrize(
    ("name", "placeholder_text"),
    [
        (StrategyName.STRUCTURAL_REPAIR, "Missing object"),
        (StrategyName.PAGE_BY_PAGE_EXTRACTION, "manual review required"),
    ],
)
def test_partial_recovery_backfills_to_estimate(environment_factory, name, placeholder_text) -> None:
    data = build_partial_pdf(real_pages=2, lost_pages=2)
    assert count_pages(data) == 2

    _, result = _run(environment_factory(), name, data)

    assert result is not None
    assert result.page_count == 4
    assert result.placeholder_indices == (2, 3)
    texts = page_texts(result.output_bytes)
    assert "Sample page 1" in texts[0]
    assert "Sample page 2" in texts[1]
    assert all(placeholder_text in text for text in texts[2:])


def test_full_reconstruction_defaults_to_one_page(environment_factory) -> None:
    _, result = _run(environment_factory(), StrategyName.FULL_RECONSTRUCTION, b"")
    assert result is not None
    assert result.page_count == 1
    assert result.placeholder_indices == (0,)
    assert "placeholder due to corruption" in page_texts(result.output_bytes)[0]


def test_full_reconstruction_uses_estimate(environment_factory, damaged_pdf) -> None:
    _, result = _run(environment_factory(), StrategyName.FULL_RECONSTRUCTION, damaged_pdf(5))
    assert result.page_count == 5


def test_full_reconstruction_prefers_override(environment_factory, damaged_pdf) -> None:
    environment = environment_factory()
    environment.overrides = ProblemDocumentOverrides([DocumentOverride("known-bad.pdf", 3)])
    _, result = _run(environment, StrategyName.FULL_RECONSTRUCTION, damaged_pdf(5), "known-bad.pdf")
    assert result.page_count == 3


@pytest.mark.parametrize(
    "name",
    [StrategyName.EXTERNAL_STRUCTURE_NORMALIZE, StrategyName.EXTERNAL_RASTER_DISTILL],
)
def test_missing_tools_are_unavailable(environment_factory, single_page_pdf, name) -> None:
    document = InputDocument(single_page_pdf, "doc.pdf", 0)
    strategy = registry.create(name, StrategyContext.for_document(environment_factory(), document))
    with pytest.raises(ExternalToolUnavailable):
        strategy.run()


def test_missing_renderer_is_unavailable(environment_factory, single_page_pdf) -> None:
    document = InputDocument(single_page_pdf, "doc.pdf", 0)
    context = StrategyContext.for_document(environment_factory(renderer=None), document)
    with pytest.raises(ExternalToolUnavailable):
        registry.create(StrategyName.EXTERNAL_PRINT_RENDER, context).run()


def test_structure_normalize_accepts_plausible_output(environment_factory, offline_settings, text_pdf) -> None:
    source = text_pdf(3)
    runner = CopyingRunner(output=source)
    _, result = _run(environment_factory(runner=runner), StrategyName.EXTERNAL_STRUCTURE_NORMALIZE, source)

    assert result is not None
    assert result.page_count == 3
    assert result.method_name == "ExternalStructureNormalize"
    command = runner.commands[0]
    assert command[0] == f"/usr/bin/{offline_settings.qpdf_executables[0]}"
    assert "--decrypt" in command


def test_raster_distill_rejects_implausibly_short_output(environment_factory, text_pdf) -> None:
    runner = CopyingRunner(output=text_pdf(1))
    strategy, result = _run(
        environment_factory(runner=runner), StrategyName.EXTERNAL_RASTER_DISTILL, text_pdf(5)
    )

    assert result is None
    assert "byte scan found 5" in strategy.detail
    assert "-dSAFER" in runner.commands[0]


def test_tool_errors_decline(environment_factory, single_page_pdf) -> None:
    runner = CopyingRunner(error=ExternalToolError("exit 2"))
    strategy, result = _run(
        environment_factory(runner=runner), StrategyName.EXTERNAL_STRUCTURE_NORMALIZE, single_page_pdf
    )
    assert result is None
    assert "exit 2" in strategy.detail


def test_single_page_from_large_input_is_implausible(environment_factory) -> None:
    environment = environment_factory()
    document = InputDocument(b"x" * (3 * environment.settings.bytes_per_page_estimate), "big.pdf", 0)
    strategy = registry.create(
        StrategyName.EXTERNAL_RASTER_DISTILL, StrategyContext(environment, document, None)
    )
    assert strategy.implausible(1)
    assert strategy.implausible(2) is None


def test_external_print_render_uses_renderer(environment_factory, encrypted_pdf) -> None:
    renderer = FakeRenderer(pages=3)
    _, result = _run(environment_factory(renderer=renderer), StrategyName.EXTERNAL_PRINT_RENDER, encrypted_pdf)
    assert result is not None
    assert result.method_name == "ExternalPrintRender"
    assert result.page_count == 3
    assert renderer.calls == ["doc.pdf"]


def test_external_print_render_declines_on_failure(environment_factory, encrypted_pdf) -> None:
    renderer = FakeRenderer(success=False)
    strategy, result = _run(
        environment_factory(renderer=renderer), StrategyName.EXTERNAL_PRINT_RENDER, encrypted_pdf
    )
    assert result is None
    assert strategy.detail == "render refused"


def test_temporary_files_are_removed(environment_factory, offline_settings, text_pdf) -> None:
    runner = CopyingRunner(output=text_pdf(2))
    _run(environment_factory(runner=runner), StrategyName.EXTERNAL_STRUCTURE_NORMALIZE, text_pdf(2))
    assert list(Path(offline_settings.temp_root).iterdir()) == []


def test_build_text_pdf_helper_is_parseable() -> None:
    assert count_pages(build_text_pdf(2)) == 2
