"""Structural introspection helpers for raw and parsed PDF documents.

The byte-level helpers never parse the document; they scan the raw stream
for markers so they keep working when the object graph is too damaged for
:mod:`pypdf` to load. The parsed-level helpers wrap :class:`pypdf.PdfReader`
with the two tolerance levels the strategies need.
"""

from __future__ import annotations

import io
import logging
import re
from typing import Callable, Iterable, Optional

from pypdf import PageObject, PasswordType, PdfReader, PdfWriter
from pypdf.errors import FileNotDecryptedError, PdfReadError

LOGGER = logging.getLogger("casepdf.recovery.inspection")

PDF_HEADER = b"%PDF-"
EOF_MARKER = b"%%EOF"
ENCRYPT_MARKER = re.compile(rb"/Encrypt(?![A-Za-z])")
HEADER_SEARCH_BYTES = 1024

LETTER_SIZE: tuple[float, float] = (612.0, 792.0)

_OBJECT_HEADER = re.compile(rb"(\d+)\s+\d+\s+obj\b")
_PAGE_TYPE = re.compile(rb"/Type\s*/Page(?![A-Za-z])")
_PAGES_TYPE = re.compile(rb"/Type\s*/Pages(?![A-Za-z])")
_COUNT = re.compile(rb"/Count\s+(\d+)")
_OBJECT_BODY_LIMIT = 4096


def scan_windows(data: bytes, window: int) -> tuple[bytes, bytes]:
    """Return the bounded head and tail windows of *data*."""

    if len(data) <= window:
        return data, data
    return data[:window], data[-window:]


def has_pdf_header(data: bytes) -> bool:
    return PDF_HEADER in data[:HEADER_SEARCH_BYTES]


def has_eof_marker(tail: bytes) -> bool:
    return EOF_MARKER in tail


def has_encryption_marker(*windows: bytes) -> bool:
    return any(ENCRYPT_MARKER.search(window) for window in windows)


def estimate_page_count(data: bytes, *, cap: int = 5000) -> Optional[int]:
    """Estimate how many pages *data* should contain without parsing it.

    Two independent signals are combined: the number of distinct object
    numbers whose dictionary declares ``/Type /Page`` (an incremental update
    that rewrites a page keeps its object number, so it is counted once) and
    the largest ``/Count`` of a ``/Type /Pages`` node. ``None`` is returned
    when neither marker is present, for example when the page objects live
    inside compressed object streams.
    """

    page_objects: set[int] = set()
    tree_count = 0
    headers = list(_OBJECT_HEADER.finditer(data))
    for position, match in enumerate(headers):
        end = headers[position + 1].start() if position + 1 < len(headers) else len(data)
        body = data[match.end() : min(end, match.end() + _OBJECT_BODY_LIMIT)]
        for terminator in (b"endobj", b"stream"):
            cut = body.find(terminator)
            if cut != -1:
                body = body[:cut]
        if _PAGES_TYPE.search(body):
            counts = [int(value) for value in _COUNT.findall(body)]
            if counts:
                tree_count = max(tree_count, max(counts))
        elif _PAGE_TYPE.search(body):
            page_objects.add(int(match.group(1)))

    estimate = max(len(page_objects), tree_count)
    LOGGER.debug(
        "Byte scan found %d page object(s) and a page tree count of %d",
        len(page_objects),
        tree_count,
    )
    if estimate == 0:
        return None
    return min(estimate, cap)


def open_reader(data: bytes, *, strict: bool) -> PdfReader:
    """Parse *data* with :mod:`pypdf`.

    In strict mode encrypted documents are rejected outright. In relaxed
    mode an empty user password is tried, which unlocks documents that are
    only permission-restricted.
    """

    reader = PdfReader(io.BytesIO(data), strict=strict)
    if reader.is_encrypted:
        if strict:
            raise PdfReadError("Document is encrypted")
        LOGGER.debug("Attempting to decrypt encrypted PDF with an empty password")
        if reader.decrypt("") == PasswordType.NOT_DECRYPTED:
            raise FileNotDecryptedError("Document requires a password")
    return reader


def try_open_reader(data: bytes) -> PdfReader | None:
    """Return a relaxed reader for *data* or ``None`` when it cannot be parsed."""

    try:
        reader = open_reader(data, strict=False)
        len(reader.pages)
    except Exception as exc:  # pragma: no cover - dependency exceptions vary
        LOGGER.debug("Relaxed parse failed: %s", exc)
        return None
    return reader


def page_size(page: PageObject) -> tuple[float, float]:
    """Return the width and height of *page*, defaulting to US Letter."""

    try:
        box = page.mediabox
        width, height = abs(float(box.width)), abs(float(box.height))
    except Exception:  # pragma: no cover - damaged media boxes vary
        return LETTER_SIZE
    if not width or not height:
        return LETTER_SIZE
    return width, height


def visible_size(page: PageObject) -> tuple[float, float]:
    """Return the width and height of the crop box of *page*.

    The crop box falls back to the media box when a page does not set one.
    """

    try:
        box = page.cropbox
        width, height = abs(float(box.width)), abs(float(box.height))
    except Exception:  # pragma: no cover - damaged crop boxes vary
        return page_size(page)
    if not width or not height:
        return page_size(page)
    return width, height


def has_visible_content(page: PageObject) -> bool:
    """Return ``True`` when *page* references fonts or graphics objects."""

    try:
        resources = page.get("/Resources")
        if resources is None:
            return False
        resources = resources.get_object()
        fonts = resources.get("/Font")
        xobjects = resources.get("/XObject")
        return bool(fonts and fonts.get_object()) or bool(xobjects and xobjects.get_object())
    except Exception as exc:  # pragma: no cover - dependency exceptions vary
        LOGGER.debug("Visible-content check failed: %s", exc)
        return False


def any_visible_content(pages: Iterable[PageObject]) -> bool:
    return any(has_visible_content(page) for page in pages)


def copy_page_checked(
    writer: PdfWriter,
    page: PageObject,
    decorate: Callable[[PageObject], None] | None = None,
) -> PageObject:
    """Copy *page* into *writer* only if it serializes on its own.

    :mod:`pypdf` resolves most object references lazily, so a page can be
    added to a writer and only fail once the writer is serialized. The page
    is first copied to a scratch writer and *decorate* is applied there; the
    scratch copy is added to *writer* only after it has been written out, so
    *writer* never receives an undecorated or unserializable page.
    """

    scratch = PdfWriter()
    staged = scratch.add_page(page)
    if decorate is not None:
        decorate(staged)
    scratch.write(io.BytesIO())
    return writer.add_page(staged)


def writer_bytes(writer: PdfWriter) -> bytes:
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def count_pages(data: bytes) -> int:
    """Return the number of pages a relaxed parse of *data* yields."""

    reader = try_open_reader(data)
    if reader is None:
        return 0
    return len(reader.pages)


__all__ = [
    "LETTER_SIZE",
    "scan_windows",
    "has_pdf_header",
    "has_eof_marker",
    "has_encryption_marker",
    "estimate_page_count",
    "open_reader",
    "try_open_reader",
    "page_size",
    "visible_size",
    "has_visible_content",
    "any_visible_content",
    "copy_page_checked",
    "writer_bytes",
    "count_pages",
]
