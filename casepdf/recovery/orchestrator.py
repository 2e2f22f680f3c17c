"""Top-level entry point consolidating a batch of uploaded PDFs."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Sequence

from ..config import RecoverySettings
from ..exceptions import BatchCancelledError, RecoveryError
from ..types import InputDocument, MergedOutput, ProcessedDocument
from .assembler import DocumentAssembler
from .chain import StrategyChain
from .classifier import Classifier, ProblemDocumentOverrides
from .external import ChromiumRenderer, ExternalSlots, Renderer, ToolRunner
from .strategies import RecoveryEnvironment

LOGGER = logging.getLogger("casepdf.recovery.orchestrator")


class MergeOrchestrator:
    """Classify, recover and assemble a batch of documents.

    Documents are recovered in parallel on a bounded thread pool; assembly
    runs afterwards on the calling thread. Setting *cancel_event* abandons
    the batch: in-flight external processes are killed and no output is
    produced. The event is also set when a worker fails so the remaining
    workers stop early.
    """

    def __init__(
        self,
        settings: RecoverySettings | None = None,
        *,
        classifier: Classifier | None = None,
        chain: StrategyChain | None = None,
        assembler: DocumentAssembler | None = None,
        renderer: Renderer | None = None,
        runner: ToolRunner | None = None,
        overrides: ProblemDocumentOverrides | None = None,
    ) -> None:
        self.settings = settings or RecoverySettings()
        if overrides is None:
            overrides = ProblemDocumentOverrides.from_settings(self.settings)
        self.runner = runner or ToolRunner()
        self._owns_renderer = renderer is None
        self.renderer = renderer if renderer is not None else ChromiumRenderer(self.runner, self.settings)
        self.classifier = classifier or Classifier.from_settings(self.settings, overrides)
        self.environment = RecoveryEnvironment(
            settings=self.settings,
            runner=self.runner,
            renderer=self.renderer,
            slots=ExternalSlots(self.settings.max_external_processes),
            overrides=overrides,
        )
        self.chain = chain or StrategyChain(self.environment, self.classifier)
        self.assembler = assembler or DocumentAssembler(self.settings)

    def __enter__(self) -> "MergeOrchestrator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_renderer:
            self.renderer.close()

    def process_document(
        self,
        document: InputDocument,
        cancel_event: threading.Event | None = None,
    ) -> ProcessedDocument:
        pathology = self.classifier.classify(document.data, document.display_name)
        return self.chain.run(document, pathology, cancel_event)

    def process_all(
        self,
        documents: Sequence[InputDocument],
        cancel_event: threading.Event | None = None,
    ) -> list[ProcessedDocument]:
        """Recover every document, returning outcomes in input order."""

        if not documents:
            return []
        event = cancel_event if cancel_event is not None else threading.Event()
        workers = min(self.settings.max_workers, len(documents))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="casepdf") as executor:
            futures = [executor.submit(self.process_document, document, event) for document in documents]
            try:
                return [future.result() for future in futures]
            except BaseException:
                event.set()
                for future in futures:
                    future.cancel()
                raise

    def merge(
        self,
        documents: Iterable[InputDocument],
        cancel_event: threading.Event | None = None,
    ) -> MergedOutput:
        documents = list(documents)
        if not documents:
            raise RecoveryError("No input documents provided")
        LOGGER.info("Consolidating %d document(s)", len(documents))
        processed = self.process_all(documents, cancel_event)
        if cancel_event is not None and cancel_event.is_set():
            raise BatchCancelledError("Batch cancelled before assembly")
        merged = self.assembler.assemble(processed)
        LOGGER.info(
            "Consolidated %d document(s) into %d page(s) (%d bytes)",
            merged.document_count,
            merged.total_pages,
            merged.size,
        )
        return merged


def consolidate_pdfs(
    buffers: Sequence[bytes],
    names: Sequence[str] | None = None,
    *,
    settings: RecoverySettings | None = None,
    renderer: Renderer | None = None,
    cancel_event: threading.Event | None = None,
) -> MergedOutput:
    """Merge raw PDF *buffers* using a one-off :class:`MergeOrchestrator`."""

    if names is None:
        names = [f"document-{index + 1}.pdf" for index in range(len(buffers))]
    if len(names) != len(buffers):
        raise ValueError("names must match buffers one to one")
    documents = [
        InputDocument(data=bytes(data), display_name=name, ordinal_index=index)
        for index, (data, name) in enumerate(zip(buffers, names))
    ]
    with MergeOrchestrator(settings, renderer=renderer) as orchestrator:
        return orchestrator.merge(documents, cancel_event)


__all__ = ["MergeOrchestrator", "consolidate_pdfs"]
