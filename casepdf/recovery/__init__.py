"""Document recovery and consolidation engine."""

from __future__ import annotations

from .assembler import DocumentAssembler
from .chain import ORDERINGS, StrategyChain
from .classifier import Classifier, DocumentOverride, ProblemDocumentOverrides
from .external import ChromiumRenderer, ExternalSlots, RenderResult, Renderer, ToolRunner
from .orchestrator import MergeOrchestrator, consolidate_pdfs
from .strategies import RecoveryEnvironment, StrategyContext, register_strategy, registry

__all__ = [
    "DocumentAssembler",
    "ORDERINGS",
    "StrategyChain",
    "Classifier",
    "DocumentOverride",
    "ProblemDocumentOverrides",
    "ChromiumRenderer",
    "ExternalSlots",
    "RenderResult",
    "Renderer",
    "ToolRunner",
    "MergeOrchestrator",
    "consolidate_pdfs",
    "RecoveryEnvironment",
    "StrategyContext",
    "register_strategy",
    "registry",
]
