"""
FIR Document Renderer
=====================

Printable PDF for a single FIR. Pure function of the record: no storage
access, no side effects.
"""

from io import BytesIO
from typing import Any, List, Optional

from reportlab.lib.colors import black, grey
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

TITLE = "FIRST INFORMATION REPORT (FIR)"
FOOTER = "This is an official document. Tampering with this document is a punishable offense."

MARGIN = 50
BOTTOM_MARGIN = 80
FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"


def _format_date(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "strftime"):
        return value.strftime("%d %B %Y")
    return str(value)


def render_fir_pdf(fir: Any) -> bytes:
    """
    Render ``fir`` (an ORM ``Fir`` or a ``FirOutput``) as A4 PDF bytes.

    Incident date/time and location are printed only when present. Long
    values wrap to the page width and flow onto further pages; every page
    carries the footer.
    """
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"{TITLE} {fir.fir_id}")

    width, height = A4
    text_width = width - 2 * MARGIN
    y = height - MARGIN

    def draw_footer():
        c.setFont(FONT, 8)
        c.setFillColor(grey)
        c.drawCentredString(width / 2, 30, FOOTER)
        c.setFillColor(black)

    def new_page():
        nonlocal y
        draw_footer()
        c.showPage()
        y = height - MARGIN

    def draw_text(text: str, size: int = 12, font: str = FONT, gap: int = 6):
        nonlocal y
        if y < BOTTOM_MARGIN:
            new_page()
        c.setFont(font, size)
        c.drawString(MARGIN, y, text)
        y -= size + gap

    def draw_wrapped(text: str, size: int = 11):
        lines: List[str] = simpleSplit(text or "", FONT, size, text_width) or [""]
        for line in lines:
            draw_text(line, size, gap=4)

    def draw_field(label: str, value: Optional[str]):
        text = f"{label}: {value or ''}"
        for line in simpleSplit(text, FONT, 12, text_width) or [""]:
            draw_text(line, 12)

    # Title
    c.setFont(FONT_BOLD, 18)
    c.drawCentredString(width / 2, y, TITLE)
    y -= 40

    draw_field("FIR ID", fir.fir_id)
    draw_field("Date", _format_date(fir.created_at))
    draw_field("Crime Type", fir.crime)
    draw_field("IPC Sections", ", ".join(fir.ipc_sections or []))
    if fir.date_time:
        draw_field("Date and Time of Incident", fir.date_time)
    if fir.location:
        draw_field("Location", fir.location)

    y -= 10
    draw_text("Summary:", 12, FONT_BOLD)
    draw_wrapped(fir.summary)

    y -= 10
    draw_field("Current Status", fir.status)

    # Signature lines need room for both blocks
    if y < BOTTOM_MARGIN + 60:
        new_page()
    y -= 40
    c.setStrokeColor(black)
    c.line(MARGIN, y, MARGIN + 180, y)
    c.line(width - MARGIN - 180, y, width - MARGIN, y)
    c.setFont(FONT, 10)
    c.drawString(MARGIN, y - 14, "Complainant Signature")
    c.drawString(width - MARGIN - 180, y - 14, "Officer Signature")

    draw_footer()
    c.save()
    buf.seek(0)
    return buf.read()
