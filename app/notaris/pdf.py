"""
Shared reportlab helpers for the ledger, report and invoice exports.
"""
from __future__ import annotations

import io
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

GRID_STYLE = [
    ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f0f0f0")),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("ALIGN", (0, 0), (-1, 0), "CENTER"),
    ("FONTSIZE", (0, 0), (-1, -1), 9),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ("TOPPADDING", (0, 0), (-1, -1), 4),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
]


def styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("NotarisTitle", parent=base["Title"], fontSize=14, spaceAfter=4),
        "subtitle": ParagraphStyle("NotarisSubtitle", parent=base["Normal"], fontSize=10, alignment=1, spaceAfter=10),
        "heading": base["Heading3"],
        "normal": base["Normal"],
        "cell": ParagraphStyle("NotarisCell", parent=base["Normal"], fontSize=9, leading=11),
        "signature": ParagraphStyle("NotarisSignature", parent=base["Normal"], fontSize=10, leftIndent=10 * cm),
    }


def format_rupiah(value: Decimal | float | int | None) -> str:
    amount = int(round(float(value or 0)))
    return "Rp " + f"{amount:,}".replace(",", ".")


def format_date_id(value: date | datetime | None) -> str:
    """dd/mm/yyyy as printed in Indonesian ledgers."""
    if value is None:
        return "-"
    return value.strftime("%d/%m/%Y")


def grid_table(headers: list[str], rows: list[list[Any]], col_widths: list[float] | None = None, extra_style: list | None = None) -> Table:
    st = styles()
    body = [[Paragraph(escape(c), st["cell"]) if isinstance(c, str) and len(c) > 30 else c for c in row] for row in rows]
    t = Table([headers] + body, colWidths=col_widths, repeatRows=1)
    t.setStyle(TableStyle(GRID_STYLE + (extra_style or [])))
    return t


def _footer(canvas, doc) -> None:
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(colors.grey)
    width, _ = doc.pagesize
    canvas.drawString(doc.leftMargin, 1 * cm, "Dicetak pada: " + datetime.now().strftime("%d/%m/%Y %H:%M"))
    canvas.drawRightString(width - doc.rightMargin, 1 * cm, f"Halaman {doc.page}")
    canvas.restoreState()


def render_pdf(story: list, *, is_landscape: bool = False, title: str = "") -> bytes:
    buf = io.BytesIO()
    pagesize = landscape(A4) if is_landscape else A4
    doc = SimpleDocTemplate(
        buf,
        pagesize=pagesize,
        leftMargin=1.5 * cm,
        rightMargin=1.5 * cm,
        topMargin=1.5 * cm,
        bottomMargin=1.5 * cm,
        title=title,
    )
    doc.build(story, onFirstPage=_footer, onLaterPages=_footer)
    return buf.getvalue()


def header_story(title: str, subtitle: str | None = None) -> list:
    st = styles()
    story: list = [Paragraph(title, st["title"])]
    if subtitle:
        story.append(Paragraph(subtitle, st["subtitle"]))
    story.append(Spacer(1, 0.3 * cm))
    return story
