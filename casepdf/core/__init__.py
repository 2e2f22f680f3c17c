"""Core helpers shared across casepdf."""

from __future__ import annotations

from .utils import get_logger, pdf_date, truncate, utcnow

__all__ = ["get_logger", "pdf_date", "truncate", "utcnow"]
