"""Runtime configuration for the casepdf recovery engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Mapping

from .exceptions import ConfigurationError
from .types import StrategyName

ENV_PREFIX = "CASEPDF_"


@dataclass(frozen=True)
class RecoverySettings:
    """Tunable limits and names used across the recovery pipeline.

    Every field can be overridden from the environment with
    :meth:`from_env`, using the upper-cased field name prefixed with
    ``CASEPDF_`` (for example ``CASEPDF_MAX_WORKERS=2``).
    """

    max_workers: int = 4
    max_external_processes: int = 2
    render_timeout: float = 30.0
    tool_timeout: float = 20.0
    temp_root: Path | None = None
    classifier_window_bytes: int = 1024 * 1024
    max_estimated_pages: int = 5000
    # Calibration needed: both implausibility thresholds are guesses.
    min_page_ratio: float = 1.0
    bytes_per_page_estimate: int = 150_000
    separator_name_length: int = 60
    footer_name_length: int = 40
    document_title: str = "Legal Service Document"
    document_creator: str = "casepdf"
    disabled_strategies: frozenset[StrategyName] = field(default_factory=frozenset)
    overrides_file: Path | None = None
    qpdf_executables: tuple[str, ...] = ("qpdf",)
    ghostscript_executables: tuple[str, ...] = ("gs", "gswin64c", "gswin32c")
    chromium_executables: tuple[str, ...] = (
        "chromium",
        "chromium-browser",
        "google-chrome",
        "google-chrome-stable",
    )

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        if self.max_external_processes < 1:
            raise ConfigurationError("max_external_processes must be at least 1")
        if self.render_timeout <= 0 or self.tool_timeout <= 0:
            raise ConfigurationError("Timeouts must be positive")
        if self.classifier_window_bytes < 1024:
            raise ConfigurationError("classifier_window_bytes must be at least 1024")
        if not 0 < self.min_page_ratio <= 1:
            raise ConfigurationError("min_page_ratio must be in (0, 1]")
        if self.bytes_per_page_estimate < 1:
            raise ConfigurationError("bytes_per_page_estimate must be positive")

    def with_updates(self, **changes: object) -> "RecoverySettings":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RecoverySettings":
        """Build settings from ``CASEPDF_*`` variables, falling back to defaults."""

        source = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name, parser in _ENV_PARSERS.items():
            raw = source.get(ENV_PREFIX + name.upper())
            if raw is None or not raw.strip():
                continue
            try:
                values[name] = parser(raw.strip())
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}"
                ) from exc
        return cls(**values)


def _parse_names(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _parse_strategies(raw: str) -> frozenset[StrategyName]:
    return frozenset(StrategyName(name) for name in _parse_names(raw))


_ENV_PARSERS: dict[str, Callable[[str], object]] = {
    "max_workers": int,
    "max_external_processes": int,
    "render_timeout": float,
    "tool_timeout": float,
    "temp_root": Path,
    "classifier_window_bytes": int,
    "max_estimated_pages": int,
    "min_page_ratio": float,
    "bytes_per_page_estimate": int,
    "separator_name_length": int,
    "footer_name_length": int,
    "document_title": str,
    "document_creator": str,
    "disabled_strategies": _parse_strategies,
    "overrides_file": Path,
    "qpdf_executables": _parse_names,
    "ghostscript_executables": _parse_names,
    "chromium_executables": _parse_names,
}


__all__ = ["RecoverySettings", "ENV_PREFIX"]
