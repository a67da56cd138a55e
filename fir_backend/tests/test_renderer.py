"""
FIR Document Renderer Tests
===========================
"""

import re
from datetime import datetime

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from fir_backend.renderer import FOOTER, MARGIN, render_fir_pdf
from fir_backend.schemas import FirOutput


def _fir(**overrides):
    data = {
        "id": 1,
        "fir_id": "FIR-20240315-482",
        "crime": "theft",
        "ipc_sections": ["IPC 379", "IPC 411"],
        "summary": "Mobile phone stolen from a parked scooter near the market.",
        "priority": 3,
        "date_time": "2024-03-15T18:30:00",
        "location": "Sector 17 market, Chandigarh",
        "status": "UNDER_INVESTIGATION",
        "created_at": datetime(2024, 3, 15, 19, 5),
        "updated_at": datetime(2024, 3, 16, 10, 0),
    }
    data.update(overrides)
    return FirOutput(**data)


def test_renders_pdf_bytes():
    content = render_fir_pdf(_fir())
    assert content.startswith(b"%PDF")
    assert content.rstrip().endswith(b"%%EOF")


def test_optional_fields_may_be_missing():
    content = render_fir_pdf(_fir(date_time=None, location=None))
    assert content.startswith(b"%PDF")


def _page_count(content: bytes) -> int:
    return int(re.search(rb"/Count (\d+) /Kids", content).group(1))


def test_long_summary_spills_onto_more_pages():
    assert _page_count(render_fir_pdf(_fir())) == 1
    assert _page_count(render_fir_pdf(_fir(summary="The complainant stated that " * 600))) >= 2


def test_accepts_orm_record(store, fir_payload):
    fir = store.create_fir(fir_payload())
    assert render_fir_pdf(fir).startswith(b"%PDF")


@pytest.fixture
def drawn(monkeypatch):
    """Record strings drawn on the canvas and page breaks"""
    calls = {"text": [], "centred": [], "pages": 0}
    draw_string = canvas.Canvas.drawString
    draw_centred = canvas.Canvas.drawCentredString
    show_page = canvas.Canvas.showPage

    def record_string(self, x, y, text, *args, **kwargs):
        calls["text"].append((x, text, self._fontname, self._fontsize))
        return draw_string(self, x, y, text, *args, **kwargs)

    def record_centred(self, x, y, text, *args, **kwargs):
        calls["centred"].append(text)
        return draw_centred(self, x, y, text, *args, **kwargs)

    def record_page(self):
        calls["pages"] += 1
        return show_page(self)

    monkeypatch.setattr(canvas.Canvas, "drawString", record_string)
    monkeypatch.setattr(canvas.Canvas, "drawCentredString", record_centred)
    monkeypatch.setattr(canvas.Canvas, "showPage", record_page)
    return calls


def test_long_location_and_sections_stay_inside_margins(drawn):
    render_fir_pdf(_fir(
        location="House 12, Lane 4, Near the old water tank, Sector 17 market, " * 6,
        ipc_sections=[f"IPC {n}" for n in range(300, 360)],
    ))

    right_edge = A4[0] - MARGIN
    assert any(text.startswith("Location:") for _, text, _, _ in drawn["text"])
    for x, text, font, size in drawn["text"]:
        if x == MARGIN:
            assert x + stringWidth(text, font, size) <= right_edge + 0.01


def test_footer_on_every_page(drawn):
    render_fir_pdf(_fir(summary="The complainant stated that " * 600))

    # showPage also runs once from save() when the last page is flushed
    assert drawn["pages"] >= 2
    assert drawn["centred"].count(FOOTER) == drawn["pages"]
