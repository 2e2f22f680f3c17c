"""Ordered strategy execution for a single document."""

from __future__ import annotations

import logging
import threading
from typing import Mapping, Sequence

from ..exceptions import REMEDIATION_MESSAGE, BatchCancelledError, ConfigurationError, ExternalToolUnavailable
from ..types import (
    AttemptOutcome,
    InputDocument,
    Pathology,
    ProcessedDocument,
    StrategyAttempt,
    StrategyName,
    StrategyResult,
)
from .classifier import Classifier
from .inspection import any_visible_content, try_open_reader
from .strategies import RecoveryEnvironment, StrategyContext, StrategyRegistry, registry

LOGGER = logging.getLogger("casepdf.recovery.chain")

ORDERINGS: dict[Pathology, tuple[StrategyName, ...]] = {
    Pathology.NORMAL: (
        StrategyName.DIRECT_LOAD,
        StrategyName.RELAXED_LOAD,
        StrategyName.EXTERNAL_STRUCTURE_NORMALIZE,
        StrategyName.PAGE_BY_PAGE_EXTRACTION,
        StrategyName.EXTERNAL_PRINT_RENDER,
        StrategyName.EXTERNAL_RASTER_DISTILL,
        StrategyName.STRUCTURAL_REPAIR,
        StrategyName.FULL_RECONSTRUCTION,
    ),
    Pathology.ENCRYPTED: (
        StrategyName.EXTERNAL_PRINT_RENDER,
        StrategyName.EXTERNAL_STRUCTURE_NORMALIZE,
        StrategyName.EXTERNAL_RASTER_DISTILL,
        StrategyName.RELAXED_LOAD,
        StrategyName.DIRECT_LOAD,
        StrategyName.PAGE_BY_PAGE_EXTRACTION,
        StrategyName.STRUCTURAL_REPAIR,
        StrategyName.FULL_RECONSTRUCTION,
    ),
    Pathology.STRUCTURALLY_SUSPECT: (
        StrategyName.STRUCTURAL_REPAIR,
        StrategyName.EXTERNAL_STRUCTURE_NORMALIZE,
        StrategyName.EXTERNAL_RASTER_DISTILL,
        StrategyName.RELAXED_LOAD,
        StrategyName.PAGE_BY_PAGE_EXTRACTION,
        StrategyName.EXTERNAL_PRINT_RENDER,
        StrategyName.DIRECT_LOAD,
        StrategyName.FULL_RECONSTRUCTION,
    ),
}


def validate_orderings(orderings: Mapping[Pathology, Sequence[StrategyName]]) -> None:
    """Ensure every pathology has an ordering over the same strategy set."""

    missing = set(Pathology) - set(orderings)
    if missing:
        names = ", ".join(sorted(item.value for item in missing))
        raise ConfigurationError(f"No strategy ordering for: {names}")
    reference: frozenset[StrategyName] | None = None
    for pathology, ordering in orderings.items():
        members = frozenset(ordering)
        if len(members) != len(ordering):
            raise ConfigurationError(f"Ordering for {pathology.value} repeats a strategy")
        if reference is None:
            reference = members
        elif members != reference:
            raise ConfigurationError(
                f"Ordering for {pathology.value} is not a permutation of the other orderings"
            )


class StrategyChain:
    """Run strategies in pathology order until one produces usable pages."""

    def __init__(
        self,
        environment: RecoveryEnvironment,
        classifier: Classifier,
        *,
        orderings: Mapping[Pathology, Sequence[StrategyName]] = ORDERINGS,
        strategies: StrategyRegistry = registry,
    ) -> None:
        validate_orderings(orderings)
        for ordering in orderings.values():
            for name in ordering:
                if strategies.get(name) is None:
                    raise ConfigurationError(f"Strategy '{name.value}' is not registered")
        self.environment = environment
        self.classifier = classifier
        self.orderings = {pathology: tuple(ordering) for pathology, ordering in orderings.items()}
        self.strategies = strategies

    def ordering_for(self, pathology: Pathology) -> tuple[StrategyName, ...]:
        disabled = self.environment.settings.disabled_strategies
        return tuple(name for name in self.orderings[pathology] if name not in disabled)

    def run(
        self,
        document: InputDocument,
        pathology: Pathology,
        cancel_event: threading.Event | None = None,
    ) -> ProcessedDocument:
        context = StrategyContext.for_document(self.environment, document, cancel_event)
        attempts: list[StrategyAttempt] = []
        LOGGER.info(
            "Recovering %r (%s, %d bytes, %s expected page(s))",
            document.display_name,
            pathology.value,
            document.size,
            context.expected_pages if context.expected_pages is not None else "unknown",
        )

        for name in self.ordering_for(pathology):
            context.check_cancelled()
            strategy = self.strategies.create(name, context)
            try:
                result = strategy.run()
            except BatchCancelledError:
                raise
            except ExternalToolUnavailable as exc:
                LOGGER.warning("%s unavailable for %r: %s", name.value, document.display_name, exc)
                attempts.append(
                    StrategyAttempt(name.value, AttemptOutcome.UNAVAILABLE, f"{exc.error_kind.value}: {exc}")
                )
                continue
            except Exception as exc:
                LOGGER.warning(
                    "%s failed for %r: %s", name.value, document.display_name, exc, exc_info=True
                )
                attempts.append(StrategyAttempt(name.value, AttemptOutcome.FAILED, str(exc)))
                continue

            if not self._usable(result):
                detail = strategy.detail or "Result did not meet the success criteria"
                LOGGER.warning("%s declined %r: %s", name.value, document.display_name, detail)
                attempts.append(StrategyAttempt(name.value, AttemptOutcome.DECLINED, detail))
                continue

            attempts.append(StrategyAttempt(name.value, AttemptOutcome.SUCCEEDED))
            LOGGER.info(
                "Recovered %r with %s: %d page(s), %d placeholder(s)",
                document.display_name,
                result.method_name,
                result.page_count,
                result.placeholder_pages,
            )
            return ProcessedDocument(
                display_name=document.display_name,
                ordinal_index=document.ordinal_index,
                success=True,
                output_bytes=result.output_bytes,
                page_count=result.page_count,
                method_name=result.method_name,
                pathology=pathology,
                placeholder_indices=result.placeholder_indices,
                attempts=tuple(attempts),
            )

        error_kind = self.classifier.error_kind_for(document.data, document.display_name)
        message = f"{document.display_name} could not be recovered. {REMEDIATION_MESSAGE}"
        LOGGER.error(
            "Every strategy failed for %r (%s): %s",
            document.display_name,
            error_kind.value,
            "; ".join(f"{attempt.method_name}={attempt.outcome.value}" for attempt in attempts),
        )
        return ProcessedDocument(
            display_name=document.display_name,
            ordinal_index=document.ordinal_index,
            success=False,
            output_bytes=b"",
            page_count=0,
            method_name="",
            pathology=pathology,
            error_kind=error_kind,
            error_message=message,
            attempts=tuple(attempts),
        )

    @staticmethod
    def _usable(result: StrategyResult | None) -> bool:
        if result is None or not result.success or result.page_count < 1:
            return False
        reader = try_open_reader(result.output_bytes)
        if reader is None:
            return False
        return any_visible_content(reader.pages)


__all__ = ["ORDERINGS", "StrategyChain", "validate_orderings"]
