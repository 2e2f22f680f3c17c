"""CLI helpers for consolidating PDFs."""

from __future__ import annotations

from argparse import ArgumentParser, _SubParsersAction
from pathlib import Path

from ...config import RecoverySettings
from ...exceptions import DocumentRecoveryError
from ...recovery import MergeOrchestrator
from ...types import InputDocument


def configure_parser(subparsers: _SubParsersAction[ArgumentParser]) -> None:
    parser = subparsers.add_parser("merge", help="Recover and merge PDFs into one document")
    parser.add_argument("inputs", nargs="+", help="Input PDF files, in merge order")
    parser.add_argument("-o", "--output", required=True, help="Output PDF path")
    parser.add_argument("--title", help="Title stored in the merged document metadata")
    parser.set_defaults(handler=_run)


def _run(args) -> int:
    settings = RecoverySettings.from_env()
    if args.title:
        settings = settings.with_updates(document_title=args.title)

    documents = [
        InputDocument(data=Path(path).read_bytes(), display_name=Path(path).name, ordinal_index=index)
        for index, path in enumerate(args.inputs)
    ]
    with MergeOrchestrator(settings) as orchestrator:
        try:
            merged = orchestrator.merge(documents)
        except DocumentRecoveryError as exc:
            print(f"{exc.error_kind.value}: {exc.message}")
            return 2

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(merged.data)
    for name, method in zip(args.inputs, merged.recovery_methods):
        print(f"{Path(name).name}: {method}")
    print(f"Wrote {merged.total_pages} page(s) to {output}")
    return 0
