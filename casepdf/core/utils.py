"""Utilities shared by the casepdf packages."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

ELLIPSIS = "..."


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
    return logger


def truncate(text: str, limit: int) -> str:
    """Return *text* shortened to at most *limit* characters.

    An ellipsis marks the cut. Limits too small to hold the ellipsis cut
    the text without one.
    """

    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    if limit <= len(ELLIPSIS):
        return text[:limit]
    return text[: limit - len(ELLIPSIS)].rstrip() + ELLIPSIS


def pdf_date(moment: datetime) -> str:
    """Format *moment* using the PDF date syntax (``D:YYYYMMDDHHmmSSZ``)."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("D:%Y%m%d%H%M%SZ")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["get_logger", "truncate", "pdf_date", "utcnow"]
