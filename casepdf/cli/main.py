"""Command line interface for the casepdf recovery engine."""

from __future__ import annotations

import argparse
import logging
from typing import Sequence

from ..core.utils import get_logger
from ..exceptions import CasePdfError
from .commands import classify, merge

COMMAND_MODULES = [merge, classify]


def _create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="casepdf", description="Recover and consolidate PDF documents")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True
    for module in COMMAND_MODULES:
        module.configure_parser(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _create_parser()
    args = parser.parse_args(argv)
    logger = get_logger("casepdf")
    logger.setLevel(logging.DEBUG if args.verbose else logging.INFO)
    try:
        return args.handler(args)
    except CasePdfError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
