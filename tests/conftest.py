from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest
from reportlab.pdfgen import canvas

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from font_resolver import bundled_font_path


TEMPLATE_SIZE = (420.0, 298.0)


def make_template_pdf(width: float = TEMPLATE_SIZE[0], height: float = TEMPLATE_SIZE[1], pages: int = 1) -> bytes:
    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=(width, height))
    for page_no in range(pages):
        c.setFont("Helvetica", 10)
        c.drawString(20, 20, f"Gala dinner - table card {page_no + 1}")
        c.rect(10, 10, width - 20, height - 20)
        c.showPage()
    c.save()
    return packet.getvalue()


@pytest.fixture
def template_pdf() -> bytes:
    return make_template_pdf()


@pytest.fixture
def vera_font() -> bytes:
    return bundled_font_path().read_bytes()


@pytest.fixture
def polish_csv() -> bytes:
    text = (
        "Tytuł,Imię,Nazwisko\n"
        "dr,Jan,Kowalski\n"
        "mgr,Anna,Nowak\n"
        ",Zofia,Wiśniewska\n"
    )
    return text.encode("utf-8")
