"""
PDF renderings of the repertorium, the klapper and the monthly report
submitted to the Majelis Pengawas Daerah.
"""
from __future__ import annotations

from datetime import date
from typing import Any

from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, Spacer

from app.notaris.constants import BULAN_NAMES
from app.notaris.modules.ledger.models import Klapper, Repertorium
from app.notaris.modules.ledger.service import period_label
from app.notaris.pdf import format_date_id, grid_table, header_story, render_pdf, styles

NIHIL = "N I H I L"


def repertorium_pdf(entries: list[Repertorium], tahun: int, bulan: int | None = None) -> bytes:
    story = header_story("BUKU REPERTORIUM", f"{period_label(tahun, bulan)}, sesuai Pasal 58 UU No. 2 Tahun 2014")
    headers = ["No.", "No. Bln", "Tanggal", "Sifat Akta", "Nama Penghadap", "Keterangan"]
    if entries:
        rows = [
            [
                e.nomor_urut,
                e.nomor_bulanan,
                format_date_id(e.tanggal),
                e.sifat_akta + (" (PPAT)" if e.is_ppat else ""),
                ", ".join(e.nama_penghadap or []),
                e.keterangan or "-",
            ]
            for e in entries
        ]
    else:
        rows = [["", "", "", NIHIL, "", ""]]
    story.append(
        grid_table(
            headers,
            rows,
            col_widths=[1.5 * cm, 1.8 * cm, 3 * cm, 5 * cm, 8 * cm, None],
            extra_style=[("ALIGN", (0, 1), (1, -1), "CENTER")],
        )
    )
    return render_pdf(story, is_landscape=True, title="Buku Repertorium")


def klapper_pdf(entries: list[Klapper], tahun: int, bulan: int | None = None) -> bytes:
    story = header_story("BUKU KLAPPER", f"Indeks Alfabetis Penghadap, {period_label(tahun, bulan)}")
    headers = ["Huruf", "Nama Penghadap", "Sifat Akta", "No. Akta", "Tanggal"]
    if entries:
        rows = [[k.huruf_awal, k.nama_penghadap, k.sifat_akta, k.nomor_akta, format_date_id(k.tanggal_akta)] for k in entries]
    else:
        rows = [["", "", NIHIL, "", ""]]
    story.append(
        grid_table(
            headers,
            rows,
            col_widths=[1.5 * cm, 6 * cm, 5 * cm, 2 * cm, 3 * cm],
            extra_style=[("ALIGN", (0, 1), (0, -1), "CENTER"), ("ALIGN", (3, 1), (3, -1), "CENTER")],
        )
    )
    return render_pdf(story, title="Buku Klapper")


def monthly_report_pdf(summary: dict[str, Any], tahun: int, bulan: int) -> bytes:
    st = styles()
    story = header_story("LAPORAN BULANAN NOTARIS", f"Bulan {BULAN_NAMES[bulan]} {tahun}, untuk Majelis Pengawas Daerah")

    story.append(Paragraph("I. Rekapitulasi Akta", st["heading"]))
    by_jenis = summary["akta_by_jenis"]
    if by_jenis:
        rows: list[list[Any]] = [[idx + 1, jenis, count] for idx, (jenis, count) in enumerate(by_jenis)]
    else:
        rows = [["", "Tidak ada akta (NIHIL)", 0]]
    rows.append(["", "TOTAL", summary["repertorium_count"]])
    story.append(
        grid_table(
            ["No.", "Jenis Akta", "Jumlah"],
            rows,
            col_widths=[1.5 * cm, None, 2.5 * cm],
            extra_style=[("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"), ("ALIGN", (2, 1), (2, -1), "CENTER")],
        )
    )
    story.append(Spacer(1, 0.6 * cm))

    story.append(Paragraph("II. Rekapitulasi Klapper", st["heading"]))
    story.append(Paragraph(f"Total penghadap tercatat di Klapper: {summary['klapper_count']} orang", st["normal"]))
    story.append(Spacer(1, 1.2 * cm))

    signature = [
        f"..................., {date.today().day} {BULAN_NAMES[date.today().month]} {date.today().year}",
        "Notaris,",
        "<br/><br/><br/>_________________________",
        "Nama:",
    ]
    for line in signature:
        story.append(Paragraph(line, st["signature"]))
    return render_pdf(story, title="Laporan Bulanan Notaris")
