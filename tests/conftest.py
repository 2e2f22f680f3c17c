from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Callable

import pytest
from pypdf import PdfReader, PdfWriter
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from casepdf.config import RecoverySettings  # noqa: E402
from casepdf.recovery.external import ExternalSlots, RenderResult, ToolRunner  # noqa: E402
from casepdf.recovery.strategies import RecoveryEnvironment  # noqa: E402


def build_text_pdf(pages: int, label: str = "Sample", size: tuple[float, float] = letter) -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=size)
    for number in range(1, pages + 1):
        pdf.setFont("Helvetica", 14)
        pdf.drawString(72, size[1] - 72, f"{label} page {number}")
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def build_damaged_pdf(page_objects: int) -> bytes:
    """Page dictionaries with no catalog, page tree or cross-reference table."""

    parts = [b"%PDF-1.4\n"]
    for number in range(1, page_objects + 1):
        parts.append(
            b"%d 0 obj\n<< /Type /Page /MediaBox [0 0 612 792] /Contents %d 0 R >>\nendobj\n"
            % (number, number + 100)
        )
    parts.append(b"%%EOF\n")
    return b"".join(parts)


def build_partial_pdf(real_pages: int, lost_pages: int) -> bytes:
    """A readable document plus page objects the cross-reference table omits.

    The extra objects sit in an appended section that reuses the original
    ``startxref`` pointer, so parsers see *real_pages* pages while a byte scan
    finds ``real_pages + lost_pages`` page dictionaries.
    """

    data = build_text_pdf(real_pages)
    trailer = data[data.rfind(b"startxref"):]
    lost = b"".join(
        b"%d 0 obj\n<< /Type /Page /MediaBox [0 0 612 792] /Contents %d 0 R >>\nendobj\n"
        % (900 + number, 950 + number)
        for number in range(lost_pages)
    )
    return data + b"\n" + lost + trailer


class FakeRenderer:
    """Render collaborator returning a fixed text document."""

    def __init__(self, pages: int = 2, success: bool = True) -> None:
        self.pages = pages
        self.success = success
        self.calls: list[str] = []
        self.closed = False

    def render(self, data, display_name, timeout, *, cancel_event=None) -> RenderResult:
        self.calls.append(display_name)
        if not self.success:
            return RenderResult(False, message="render refused")
        rendered = build_text_pdf(self.pages, label="Rendered")
        return RenderResult(True, rendered, self.pages)

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def text_pdf() -> Callable[..., bytes]:
    return build_text_pdf


@pytest.fixture()
def damaged_pdf() -> Callable[[int], bytes]:
    return build_damaged_pdf


@pytest.fixture()
def single_page_pdf() -> bytes:
    return build_text_pdf(1)


@pytest.fixture()
def blank_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def _encrypt(data: bytes, user_password: str, owner_password: str) -> bytes:
    writer = PdfWriter()
    for page in PdfReader(io.BytesIO(data)).pages:
        writer.add_page(page)
    writer.encrypt(user_password=user_password, owner_password=owner_password)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture()
def encrypted_pdf() -> bytes:
    """Requires a user password, so no local strategy can open it."""

    return _encrypt(build_text_pdf(3), "secret", "owner")


@pytest.fixture()
def restricted_pdf() -> bytes:
    """Permission-restricted only: the empty user password opens it."""

    return _encrypt(build_text_pdf(2), "", "owner")


@pytest.fixture()
def offline_settings(tmp_path: Path) -> RecoverySettings:
    return RecoverySettings(
        max_workers=2,
        temp_root=tmp_path / "work",
        qpdf_executables=("casepdf-missing-qpdf",),
        ghostscript_executables=("casepdf-missing-gs",),
        chromium_executables=("casepdf-missing-chromium",),
    )


@pytest.fixture()
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture()
def environment_factory(offline_settings: RecoverySettings):
    def _create(settings: RecoverySettings | None = None, *, renderer=None, runner=None) -> RecoveryEnvironment:
        settings = settings or offline_settings
        return RecoveryEnvironment(
            settings=settings,
            runner=runner or ToolRunner(),
            renderer=renderer,
            slots=ExternalSlots(settings.max_external_processes),
        )

    return _create


def page_texts(data: bytes) -> list[str]:
    return [page.extract_text() or "" for page in PdfReader(io.BytesIO(data)).pages]
