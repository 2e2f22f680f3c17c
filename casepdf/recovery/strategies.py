"""Registry and implementations of the document recovery strategies.

A strategy receives a :class:`StrategyContext` describing one document and
returns either a :class:`~casepdf.types.StrategyResult` or ``None`` to let
the chain try the next strategy. Strategies register themselves with
:func:`register_strategy`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from pypdf import PdfWriter

from ..config import RecoverySettings
from ..exceptions import BatchCancelledError, ExternalToolError, ExternalToolUnavailable
from ..types import InputDocument, StrategyName, StrategyResult
from .classifier import ProblemDocumentOverrides
from .external import (
    ExternalSlots,
    RasterDistiller,
    Renderer,
    StructureNormalizer,
    ToolRunner,
    temporary_workspace,
)
from .inspection import (
    LETTER_SIZE,
    any_visible_content,
    copy_page_checked,
    estimate_page_count,
    open_reader,
    page_size,
    try_open_reader,
    writer_bytes,
)
from .pages import missing_object_page, protected_content_page, reconstruction_page

LOGGER = logging.getLogger("casepdf.recovery.strategies")


@dataclass
class RecoveryEnvironment:
    """Collaborators shared by every document of one orchestrator."""

    settings: RecoverySettings
    runner: ToolRunner
    renderer: Renderer | None
    slots: ExternalSlots
    overrides: ProblemDocumentOverrides = field(default_factory=ProblemDocumentOverrides)

    def normalizer(self) -> StructureNormalizer:
        return StructureNormalizer(self.runner, self.settings.qpdf_executables)

    def distiller(self) -> RasterDistiller:
        return RasterDistiller(self.runner, self.settings.ghostscript_executables)


@dataclass
class StrategyContext:
    """Execution state for one document passing through the chain."""

    environment: RecoveryEnvironment
    document: InputDocument
    expected_pages: Optional[int] = None
    cancel_event: threading.Event | None = None

    @classmethod
    def for_document(
        cls,
        environment: RecoveryEnvironment,
        document: InputDocument,
        cancel_event: threading.Event | None = None,
    ) -> "StrategyContext":
        expected = estimate_page_count(
            document.data, cap=environment.settings.max_estimated_pages
        )
        return cls(environment, document, expected, cancel_event)

    @property
    def settings(self) -> RecoverySettings:
        return self.environment.settings

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise BatchCancelledError(f"Recovery of {self.document.display_name!r} was cancelled")


class BaseStrategy:
    """Base class for all recovery strategies."""

    name: StrategyName

    def __init__(self, context: StrategyContext) -> None:
        self.context = context
        self.detail = ""

    @property
    def document(self) -> InputDocument:
        return self.context.document

    def run(self) -> StrategyResult | None:  # pragma: no cover - to be implemented by subclasses
        raise NotImplementedError

    def decline(self, reason: str) -> None:
        self.detail = reason
        LOGGER.debug("%s declined %r: %s", self.name.value, self.document.display_name, reason)
        return None

    def result(self, writer: PdfWriter, placeholders: Iterable[int] = ()) -> StrategyResult:
        data = writer_bytes(writer)
        return StrategyResult(
            success=True,
            page_count=len(writer.pages),
            output_bytes=data,
            method_name=self.name.value,
            placeholder_indices=tuple(placeholders),
        )


class StrategyRegistry:
    """Registry storing the available recovery strategies."""

    def __init__(self) -> None:
        self._strategies: Dict[StrategyName, type[BaseStrategy]] = {}

    def register(self, name: StrategyName, strategy_class: type[BaseStrategy]) -> None:
        if name in self._strategies:
            raise ValueError(f"Strategy '{name.value}' is already registered")
        strategy_class.name = name
        self._strategies[name] = strategy_class

    def create(self, name: StrategyName, context: StrategyContext) -> BaseStrategy:
        try:
            strategy_class = self._strategies[name]
        except KeyError as exc:
            raise KeyError(f"Strategy '{name.value}' is not registered") from exc
        return strategy_class(context)

    def names(self) -> Iterable[StrategyName]:
        return tuple(self._strategies)

    def get(self, name: StrategyName) -> type[BaseStrategy] | None:
        return self._strategies.get(name)


registry = StrategyRegistry()


def register_strategy(name: StrategyName):
    def decorator(cls: type[BaseStrategy]) -> type[BaseStrategy]:
        registry.register(name, cls)
        return cls

    return decorator


@register_strategy(StrategyName.DIRECT_LOAD)
class DirectLoad(BaseStrategy):
    """Strict parse; any encryption or structural violation declines."""

    def run(self) -> StrategyResult | None:
        try:
            reader = open_reader(self.document.data, strict=True)
            writer = PdfWriter()
            for page in reader.pages:
                writer.add_page(page)
            if not len(writer.pages):
                return self.decline("Document has no pages")
            if not any_visible_content(writer.pages):
                return self.decline("No page carries visible content")
            return self.result(writer)
        except BatchCancelledError:
            raise
        except Exception as exc:  # pragma: no cover - dependency exceptions vary
            return self.decline(f"Strict parse failed: {exc}")


@register_strategy(StrategyName.RELAXED_LOAD)
class RelaxedLoad(BaseStrategy):
    """Tolerant parse, copying pages one at a time."""

    def run(self) -> StrategyResult | None:
        try:
            reader = open_reader(self.document.data, strict=False)
            pages = reader.pages
            available = len(pages)
        except Exception as exc:  # pragma: no cover - dependency exceptions vary
            return self.decline(f"Relaxed parse failed: {exc}")

        writer = PdfWriter()
        skipped = 0
        for index in range(available):
            self.context.check_cancelled()
            try:
                copy_page_checked(writer, pages[index])
            except Exception as exc:  # pragma: no cover - dependency exceptions vary
                skipped += 1
                LOGGER.debug("Skipping page %d of %r: %s", index + 1, self.document.display_name, exc)

        copied = len(writer.pages)
        expected = self.context.expected_pages
        if not copied:
            return self.decline("No page could be copied")
        if skipped:
            return self.decline(f"{skipped} of {available} page(s) could not be copied")
        if expected is not None and copied < expected:
            return self.decline(f"Copied {copied} page(s) but the byte scan found {expected}")
        if not any_visible_content(writer.pages):
            return self.decline("No page carries visible content")
        return self.result(writer)


class _BackfillStrategy(BaseStrategy):
    """Copy what the relaxed parser sees and synthesize the remaining pages."""

    def placeholder(self, page_number: int, size: tuple[float, float]):
        raise NotImplementedError

    def run(self) -> StrategyResult | None:
        reader = try_open_reader(self.document.data)
        pages = reader.pages if reader is not None else []
        available = len(pages)
        target = max(available, self.context.expected_pages or 0)
        if target == 0:
            return self.decline("Neither the parser nor the byte scan found any page")

        writer = PdfWriter()
        placeholders: list[int] = []
        size = LETTER_SIZE
        for index in range(target):
            self.context.check_cancelled()
            if index < available:
                try:
                    page = pages[index]
                    size = page_size(page)
                    copy_page_checked(writer, page)
                    continue
                except Exception as exc:  # pragma: no cover - dependency exceptions vary
                    LOGGER.debug(
                        "Page %d of %r replaced by a placeholder: %s",
                        index + 1,
                        self.document.display_name,
                        exc,
                    )
            writer.add_page(self.placeholder(index + 1, size))
            placeholders.append(index)

        if placeholders:
            LOGGER.info(
                "%s synthesized %d of %d page(s) for %r",
                self.name.value,
                len(placeholders),
                target,
                self.document.display_name,
            )
        return self.result(writer, placeholders)


@register_strategy(StrategyName.STRUCTURAL_REPAIR)
class StructuralRepair(_BackfillStrategy):
    def placeholder(self, page_number: int, size: tuple[float, float]):
        return missing_object_page(page_number, size)


@register_strategy(StrategyName.PAGE_BY_PAGE_EXTRACTION)
class PageByPageExtraction(_BackfillStrategy):
    def placeholder(self, page_number: int, size: tuple[float, float]):
        return protected_content_page(page_number, size)


class _ExternalOutputMixin:
    """Validation applied to documents produced by an external process."""

    def implausible(self, page_count: int) -> str | None:
        settings = self.context.settings
        expected = self.context.expected_pages
        if expected is not None:
            if page_count < settings.min_page_ratio * expected:
                return f"Recovered {page_count} page(s) but the byte scan found {expected}"
            return None
        implied = self.document.size // settings.bytes_per_page_estimate
        if page_count == 1 and implied >= 3:
            return f"Recovered a single page from {self.document.size} bytes"
        return None

    def accept_output(self, data: bytes, *, check_plausibility: bool = True) -> StrategyResult | None:
        reader = try_open_reader(data)
        if reader is None:
            return self.decline("Output could not be parsed")
        page_count = len(reader.pages)
        if page_count == 0:
            return self.decline("Output contains no pages")
        if check_plausibility:
            reason = self.implausible(page_count)
            if reason:
                return self.decline(reason)
        if not any_visible_content(reader.pages):
            return self.decline("No page carries visible content")
        return StrategyResult(
            success=True,
            page_count=page_count,
            output_bytes=data,
            method_name=self.name.value,
        )


class _CommandLineStrategy(_ExternalOutputMixin, BaseStrategy):
    def tool(self):
        raise NotImplementedError

    def run(self) -> StrategyResult | None:
        environment = self.context.environment
        tool = self.tool()
        tool.executable()
        with environment.slots.slot(self.context.cancel_event):
            with temporary_workspace(self.context.settings) as workspace:
                source = workspace / "input.pdf"
                target = workspace / "output.pdf"
                source.write_bytes(self.document.data)
                try:
                    tool.run(
                        source,
                        target,
                        timeout=self.context.settings.tool_timeout,
                        cancel_event=self.context.cancel_event,
                    )
                except ExternalToolUnavailable:
                    raise
                except ExternalToolError as exc:
                    return self.decline(f"{tool.label} failed: {exc}")
                output = target.read_bytes()
        return self.accept_output(output)


@register_strategy(StrategyName.EXTERNAL_STRUCTURE_NORMALIZE)
class ExternalStructureNormalize(_CommandLineStrategy):
    def tool(self) -> StructureNormalizer:
        return self.context.environment.normalizer()


@register_strategy(StrategyName.EXTERNAL_RASTER_DISTILL)
class ExternalRasterDistill(_CommandLineStrategy):
    def tool(self) -> RasterDistiller:
        return self.context.environment.distiller()


@register_strategy(StrategyName.EXTERNAL_PRINT_RENDER)
class ExternalPrintRender(_ExternalOutputMixin, BaseStrategy):
    """Re-author the document through the headless render collaborator."""

    def run(self) -> StrategyResult | None:
        environment = self.context.environment
        if environment.renderer is None:
            raise ExternalToolUnavailable("No render collaborator configured")
        with environment.slots.slot(self.context.cancel_event):
            try:
                rendered = environment.renderer.render(
                    self.document.data,
                    self.document.display_name,
                    self.context.settings.render_timeout,
                    cancel_event=self.context.cancel_event,
                )
            except ExternalToolUnavailable:
                raise
            except ExternalToolError as exc:
                return self.decline(f"Render failed: {exc}")
        if not rendered.success:
            return self.decline(rendered.message or "Renderer reported failure")
        return self.accept_output(rendered.data, check_plausibility=False)


@register_strategy(StrategyName.FULL_RECONSTRUCTION)
class FullReconstruction(BaseStrategy):
    """Synthesize placeholder pages only. Always succeeds."""

    def run(self) -> StrategyResult | None:
        overrides = self.context.environment.overrides
        page_count = (
            overrides.page_count_for(self.document.display_name)
            or self.context.expected_pages
            or 1
        )
        writer = PdfWriter()
        for index in range(page_count):
            writer.add_page(reconstruction_page(index + 1, page_count))
        LOGGER.warning(
            "Reconstructed %r as %d placeholder page(s)", self.document.display_name, page_count
        )
        return self.result(writer, range(page_count))


__all__ = [
    "RecoveryEnvironment",
    "StrategyContext",
    "BaseStrategy",
    "StrategyRegistry",
    "registry",
    "register_strategy",
    "DirectLoad",
    "RelaxedLoad",
    "StructuralRepair",
    "PageByPageExtraction",
    "ExternalStructureNormalize",
    "ExternalRasterDistill",
    "ExternalPrintRender",
    "FullReconstruction",
]
