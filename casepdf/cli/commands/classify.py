"""CLI helpers for inspecting how documents would be recovered."""

from __future__ import annotations

from argparse import ArgumentParser, _SubParsersAction
from pathlib import Path

from ...config import RecoverySettings
from ...recovery import ORDERINGS, Classifier
from ...recovery.inspection import estimate_page_count


def configure_parser(subparsers: _SubParsersAction[ArgumentParser]) -> None:
    parser = subparsers.add_parser("classify", help="Show the pathology and strategy order of PDFs")
    parser.add_argument("inputs", nargs="+", help="Input PDF files")
    parser.set_defaults(handler=_run)


def _run(args) -> int:
    settings = RecoverySettings.from_env()
    classifier = Classifier.from_settings(settings)
    for path in args.inputs:
        data = Path(path).read_bytes()
        pathology = classifier.classify(data, Path(path).name)
        expected = estimate_page_count(data, cap=settings.max_estimated_pages)
        order = ", ".join(
            name.value for name in ORDERINGS[pathology] if name not in settings.disabled_strategies
        )
        print(f"{Path(path).name}: {pathology.value}, expected pages: {expected or 'unknown'}")
        print(f"  strategies: {order}")
    return 0
