from __future__ import annotations

from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, Spacer, Table, TableStyle

from app.notaris.constants import BULAN_NAMES
from app.notaris.modules.invoices.models import Invoice
from app.notaris.pdf import format_rupiah, grid_table, header_story, render_pdf, styles


def _long_date(value) -> str:
    if value is None:
        return "-"
    return f"{value.day} {BULAN_NAMES[value.month]} {value.year}"


def invoice_pdf(inv: Invoice) -> bytes:
    st = styles()
    story = header_story("INVOICE", f"No. {inv.invoice_number}")

    client = inv.client
    bill_to = ["<b>Kepada:</b>", escape(client.user.name) if client else "-"]
    if client and client.company_name:
        bill_to.append(escape(client.company_name))
    info = [f"<b>Tanggal:</b> {_long_date(inv.created_at)}"]
    if inv.due_date:
        info.append(f"<b>Jatuh Tempo:</b> {_long_date(inv.due_date)}")
    info.append(f"<b>Status:</b> {inv.status}")
    head = Table(
        [[Paragraph("<br/>".join(bill_to), st["normal"]), Paragraph("<br/>".join(info), st["normal"])]],
        colWidths=[9 * cm, None],
    )
    head.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    story += [head, Spacer(1, 0.5 * cm)]

    rows = [
        [idx + 1, item.description, item.quantity, format_rupiah(item.unit_price), format_rupiah(item.amount)]
        for idx, item in enumerate(inv.items)
    ]
    story.append(
        grid_table(
            ["No", "Deskripsi", "Qty", "Harga", "Jumlah"],
            rows,
            col_widths=[1.2 * cm, None, 1.5 * cm, 3.5 * cm, 3.5 * cm],
            extra_style=[("ALIGN", (0, 1), (0, -1), "CENTER"), ("ALIGN", (2, 1), (2, -1), "CENTER"), ("ALIGN", (3, 1), (-1, -1), "RIGHT")],
        )
    )
    story.append(Spacer(1, 0.4 * cm))

    totals = [
        ["Subtotal:", format_rupiah(inv.subtotal)],
        [f"Pajak ({Decimal(inv.tax_percent or 0).normalize():f}%):", format_rupiah(inv.tax_amount)],
    ]
    if inv.discount_amount:
        totals.append(["Diskon:", "- " + format_rupiah(inv.discount_amount)])
    totals.append(["Total:", format_rupiah(inv.total_amount)])
    if inv.paid_amount and inv.paid_amount > 0:
        totals.append(["Dibayar:", format_rupiah(inv.paid_amount)])
        totals.append(["Sisa:", format_rupiah(Decimal(inv.total_amount) - Decimal(inv.paid_amount))])
    t = Table(totals, colWidths=[4 * cm, 4 * cm], hAlign="RIGHT")
    t.setStyle(TableStyle([("ALIGN", (1, 0), (1, -1), "RIGHT"), ("FONTNAME", (0, 0), (-1, -1), "Helvetica-Bold")]))
    story.append(t)

    if inv.notes:
        story += [Spacer(1, 0.6 * cm), Paragraph("<b>Catatan:</b>", st["normal"]), Paragraph(escape(inv.notes), st["normal"])]
    return render_pdf(story, title=f"Invoice {inv.invoice_number}")
