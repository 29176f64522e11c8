from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import String, cast, func, or_

from app.notaris.audit import record_event
from app.notaris.constants import BULAN_NAMES
from app.notaris.modules.documents.models import Document
from app.notaris.modules.ledger.models import Klapper, Repertorium
from app.notaris.utils import clean_str, iso, missing_references, parse_bool, parse_date, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.notaris.models import User


def period_label(tahun: int, bulan: int | None) -> str:
    if bulan:
        return f"Bulan {BULAN_NAMES[bulan]} {tahun}"
    return f"Tahun {tahun}"


def period_suffix(tahun: int, bulan: int | None) -> str:
    return f"{tahun}_{bulan:02d}" if bulan else str(tahun)


def parse_period(args) -> tuple[int, int | None]:
    """(tahun, bulan) from query args; tahun defaults to the current year. Raises ValueError."""
    tahun = parse_int(args.get("tahun"), date.today().year)
    bulan = parse_int(args.get("bulan"))
    if bulan is not None and not 1 <= bulan <= 12:
        raise ValueError("bulan must be between 1 and 12.")
    return tahun, bulan


def serialize_repertorium(r: Repertorium) -> dict[str, Any]:
    return {
        "id": r.id,
        "nomor_urut": r.nomor_urut,
        "nomor_bulanan": r.nomor_bulanan,
        "tanggal": iso(r.tanggal),
        "sifat_akta": r.sifat_akta,
        "nama_penghadap": list(r.nama_penghadap or []),
        "keterangan": r.keterangan,
        "is_ppat": r.is_ppat,
        "bulan": r.bulan,
        "tahun": r.tahun,
        "document_id": r.document_id,
        "created_by": r.created_by.name if r.created_by else None,
        "created_at": iso(r.created_at),
    }


def serialize_klapper(k: Klapper) -> dict[str, Any]:
    return {
        "id": k.id,
        "huruf_awal": k.huruf_awal,
        "nama_penghadap": k.nama_penghadap,
        "sifat_akta": k.sifat_akta,
        "nomor_akta": k.nomor_akta,
        "tanggal_akta": iso(k.tanggal_akta),
        "bulan": k.bulan,
        "tahun": k.tahun,
        "repertorium_id": k.repertorium_id,
    }


# -- repertorium -----------------------------------------------------------


def repertorium_query(s: "Session", tahun: int, bulan: int | None = None, *, is_ppat: Any = None, search: str | None = None) -> "Query":
    q = s.query(Repertorium).filter(Repertorium.tahun == tahun)
    if bulan:
        q = q.filter(Repertorium.bulan == bulan)
    if is_ppat not in (None, ""):
        q = q.filter(Repertorium.is_ppat.is_(parse_bool(is_ppat)))
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                Repertorium.sifat_akta.ilike(like),
                Repertorium.keterangan.ilike(like),
                cast(Repertorium.nama_penghadap, String).ilike(like),
            )
        )
    return q.order_by(Repertorium.nomor_urut.asc())


def repertorium_stats(s: "Session", tahun: int) -> dict[str, Any]:
    total, last = s.query(func.count(Repertorium.id), func.max(Repertorium.nomor_urut)).filter(Repertorium.tahun == tahun).one()
    per_bulan = {m: 0 for m in range(1, 13)}
    for bulan, count in (
        s.query(Repertorium.bulan, func.count(Repertorium.id)).filter(Repertorium.tahun == tahun).group_by(Repertorium.bulan).all()
    ):
        per_bulan[int(bulan)] = int(count)
    return {"total_akta": int(total or 0), "last_nomor": int(last or 0), "per_bulan": per_bulan}


def validate_repertorium_payload(s: "Session", payload: dict) -> tuple[list[str], list[str]]:
    """Returns (errors, cleaned penghadap names)."""
    errors = []
    names_raw = payload.get("nama_penghadap")
    if isinstance(names_raw, str):
        names_raw = [names_raw]
    names = [str(n).strip() for n in (names_raw or []) if str(n).strip()]
    if not clean_str(payload.get("sifat_akta")) or not names:
        errors.append("Sifat akta dan nama penghadap wajib diisi.")
    try:
        parse_date(payload.get("tanggal"))
    except ValueError:
        errors.append("tanggal must be YYYY-MM-DD.")
    errors.extend(missing_references(s, payload, {"document_id": (Document, "Document not found.")}))
    return errors, names


def next_numbers(s: "Session", tahun: int, bulan: int) -> tuple[int, int]:
    last_urut = s.query(func.max(Repertorium.nomor_urut)).filter(Repertorium.tahun == tahun).scalar()
    last_bulanan = s.query(func.max(Repertorium.nomor_bulanan)).filter(Repertorium.tahun == tahun, Repertorium.bulan == bulan).scalar()
    return (last_urut or 0) + 1, (last_bulanan or 0) + 1


def create_repertorium(s: "Session", payload: dict, names: list[str], user: "User") -> Repertorium:
    """
    Append a deed to the register and index every penghadap in the klapper.
    Numbers are allocated from the current max, so callers commit promptly.
    """
    tanggal = parse_date(payload.get("tanggal")) or date.today()
    tahun, bulan = tanggal.year, tanggal.month
    nomor_urut, nomor_bulanan = next_numbers(s, tahun, bulan)
    sifat_akta = clean_str(payload.get("sifat_akta")) or ""
    now = datetime.utcnow()

    entry = Repertorium(
        nomor_urut=nomor_urut,
        nomor_bulanan=nomor_bulanan,
        tanggal=tanggal,
        sifat_akta=sifat_akta,
        nama_penghadap=names,
        keterangan=clean_str(payload.get("keterangan")),
        is_ppat=parse_bool(payload.get("is_ppat")),
        bulan=bulan,
        tahun=tahun,
        document_id=parse_int(payload.get("document_id")),
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(entry)
    s.flush()
    for nama in names:
        entry.klapper.append(
            Klapper(
                huruf_awal=nama[0].upper(),
                nama_penghadap=nama,
                sifat_akta=sifat_akta,
                nomor_akta=nomor_urut,
                tanggal_akta=tanggal,
                bulan=bulan,
                tahun=tahun,
            )
        )
    s.flush()
    record_event(
        s,
        actor=user,
        action="repertorium.create",
        entity_type="Repertorium",
        entity_id=entry.id,
        metadata={"nomor_urut": nomor_urut, "tahun": tahun, "penghadap": len(names)},
    )
    return entry


# -- klapper ---------------------------------------------------------------


def klapper_query(s: "Session", tahun: int, bulan: int | None = None, *, huruf: str | None = None, search: str | None = None) -> "Query":
    q = s.query(Klapper).filter(Klapper.tahun == tahun)
    if bulan:
        q = q.filter(Klapper.bulan == bulan)
    if huruf:
        q = q.filter(Klapper.huruf_awal == huruf[:1].upper())
    if search:
        q = q.filter(Klapper.nama_penghadap.ilike(f"%{search}%"))
    return q.order_by(Klapper.huruf_awal.asc(), Klapper.nama_penghadap.asc())


def alphabet_stats(s: "Session", tahun: int) -> dict[str, int]:
    rows = s.query(Klapper.huruf_awal, func.count(Klapper.id)).filter(Klapper.tahun == tahun).group_by(Klapper.huruf_awal).all()
    return {huruf: int(count) for huruf, count in sorted(rows)}


# -- monthly report --------------------------------------------------------


def monthly_summary(s: "Session", tahun: int, bulan: int) -> dict[str, Any]:
    entries = repertorium_query(s, tahun, bulan).all()
    by_jenis = (
        s.query(Repertorium.sifat_akta, func.count(Repertorium.id))
        .filter(Repertorium.tahun == tahun, Repertorium.bulan == bulan)
        .group_by(Repertorium.sifat_akta)
        .order_by(func.count(Repertorium.id).desc(), Repertorium.sifat_akta.asc())
        .all()
    )
    klapper_count = s.query(func.count(Klapper.id)).filter(Klapper.tahun == tahun, Klapper.bulan == bulan).scalar() or 0
    return {
        "entries": entries,
        "repertorium_count": len(entries),
        "akta_by_jenis": [(jenis, int(count)) for jenis, count in by_jenis],
        "klapper_count": int(klapper_count),
    }
