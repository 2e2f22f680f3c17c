"""Synthesized pages: placeholders, separators and footer overlays.

Pages are drawn with :mod:`reportlab` into an in-memory buffer and read back
with :mod:`pypdf`, so they can be added to any :class:`pypdf.PdfWriter`.
"""

from __future__ import annotations

import io
from typing import Callable, Optional

from pypdf import PageObject, PdfReader, Transformation
from reportlab.lib import colors
from reportlab.pdfgen import canvas

from .inspection import LETTER_SIZE, visible_size

FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
FOOTER_FONT_SIZE = 8
FOOTER_BASELINE = 18
MARGIN = 54

Size = tuple[float, float]
Drawer = Callable[[canvas.Canvas, float, float], None]


def _text(value: str) -> str:
    # Standard fonts are WinAnsi encoded.
    return value.encode("cp1252", "replace").decode("cp1252")


def _render(size: Size, draw: Drawer) -> PageObject:
    width, height = size
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(width, height), pageCompression=1)
    draw(pdf, width, height)
    pdf.showPage()
    pdf.save()
    return PdfReader(io.BytesIO(buffer.getvalue())).pages[0]


def _notice_page(size: Size, heading: str, lines: list[str], *, accent=colors.darkred) -> PageObject:
    def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
        top = height * 0.62
        pdf.setStrokeColor(accent)
        pdf.setLineWidth(2)
        pdf.rect(MARGIN / 2, MARGIN / 2, width - MARGIN, height - MARGIN)
        pdf.setFillColor(accent)
        pdf.setFont(BOLD_FONT, 18)
        pdf.drawCentredString(width / 2, top, _text(heading))
        pdf.setFillColor(colors.black)
        pdf.setFont(FONT, 11)
        for offset, line in enumerate(lines, start=1):
            pdf.drawCentredString(width / 2, top - 28 - offset * 16, _text(line))

    return _render(size, draw)


def missing_object_page(page_number: int, size: Size = LETTER_SIZE) -> PageObject:
    """Placeholder for a page whose object graph could not be recovered."""

    return _notice_page(
        size,
        f"Page {page_number}",
        [
            "Missing object: this page could not be recovered",
            "from the source document.",
        ],
    )


def protected_content_page(page_number: int, size: Size = LETTER_SIZE) -> PageObject:
    return _notice_page(
        size,
        "Content protected — manual review required",
        [f"Page {page_number} of the source document could not be extracted."],
    )


def reconstruction_page(page_number: int, page_count: int, size: Size = LETTER_SIZE) -> PageObject:
    return _notice_page(
        size,
        "Placeholder page",
        [
            f"Page {page_number} of {page_count}",
            "This is a placeholder due to corruption of the source document.",
            "Obtain a clean copy of the original to review this page.",
        ],
    )


def page_error_page(document_name: str, local_number: int, size: Size = LETTER_SIZE) -> PageObject:
    """Placeholder for a recovered page that could not be merged."""

    return _notice_page(
        size,
        "Page could not be merged",
        [
            f"Page {local_number} of {document_name}",
            "was recovered but could not be composed into this document.",
        ],
    )


def separator_page(
    ordinal: int,
    display_name: str,
    method_name: str,
    *,
    placeholder_pages: int = 0,
) -> PageObject:
    """Cover sheet placed before every document but the first."""

    def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
        top = height - 2.5 * MARGIN
        pdf.setFont(BOLD_FONT, 24)
        pdf.drawCentredString(width / 2, top, f"Document {ordinal}")
        pdf.setFont(FONT, 14)
        pdf.drawCentredString(width / 2, top - 36, _text(display_name))
        pdf.setFont(FONT, 10)
        pdf.setFillColor(colors.dimgrey)
        pdf.drawCentredString(width / 2, top - 60, _text(f"Recovery method: {method_name}"))
        pdf.setFillColor(colors.black)
        if placeholder_pages:
            banner_y = top - 130
            pdf.setFillColor(colors.lightyellow)
            pdf.setStrokeColor(colors.darkorange)
            pdf.rect(MARGIN, banner_y - 12, width - 2 * MARGIN, 44, fill=1)
            pdf.setFillColor(colors.darkred)
            pdf.setFont(BOLD_FONT, 12)
            pdf.drawCentredString(
                width / 2,
                banner_y + 14,
                "WARNING: this document contains placeholder pages",
            )
            pdf.setFont(FONT, 10)
            pdf.drawCentredString(
                width / 2,
                banner_y - 2,
                f"{placeholder_pages} page(s) could not be recovered and were replaced.",
            )

    return _render(LETTER_SIZE, draw)


def footer_overlay(size: Size, merged_label: str, local_label: Optional[str] = None) -> PageObject:
    def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
        pdf.setFont(FONT, FOOTER_FONT_SIZE)
        pdf.setFillColor(colors.black)
        pdf.drawRightString(width - MARGIN / 2, FOOTER_BASELINE, _text(merged_label))
        if local_label:
            pdf.drawString(MARGIN / 2, FOOTER_BASELINE, _text(local_label))

    return _render(size, draw)


def stamp_footer(page: PageObject, merged_label: str, local_label: Optional[str] = None) -> None:
    """Overlay the running footer on *page* in place.

    The overlay covers the crop box, the area viewers actually display, so
    the footer stays visible on pages cropped inside their media box.
    """

    if page.get("/Rotate"):
        page.transfer_rotation_to_content()
    width, height = visible_size(page)
    overlay = footer_overlay((width, height), merged_label, local_label)
    box = page.cropbox
    origin_x, origin_y = float(min(box.left, box.right)), float(min(box.bottom, box.top))
    if origin_x or origin_y:
        page.merge_transformed_page(overlay, Transformation().translate(origin_x, origin_y))
    else:
        page.merge_page(overlay)


__all__ = [
    "missing_object_page",
    "protected_content_page",
    "reconstruction_page",
    "page_error_page",
    "separator_page",
    "footer_overlay",
    "stamp_footer",
]
