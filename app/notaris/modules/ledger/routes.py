from __future__ import annotations

import io
import logging
from datetime import date

from flask import Blueprint, jsonify, request, send_file
from sqlalchemy.exc import IntegrityError

from app.notaris.audit import record_event
from app.notaris.constants import ADMIN_ROLES, STAFF_ROLES
from app.notaris.db import db_session
from app.notaris.modules.ledger.exports import klapper_pdf, monthly_report_pdf, repertorium_pdf
from app.notaris.modules.ledger.service import (
    alphabet_stats,
    create_repertorium,
    klapper_query,
    monthly_summary,
    parse_period,
    period_suffix,
    repertorium_query,
    repertorium_stats,
    serialize_klapper,
    serialize_repertorium,
    validate_repertorium_payload,
)
from app.notaris.rbac import current_user, require_feature, require_role
from app.notaris.utils import json_body, page_args, paginate, parse_int

bp = Blueprint("ledger", __name__)
logger = logging.getLogger(__name__)


def _pdf_response(data: bytes, filename: str):
    return send_file(io.BytesIO(data), mimetype="application/pdf", as_attachment=True, download_name=filename)


def _period_or_400():
    try:
        return parse_period(request.args), None
    except ValueError as e:
        return None, (jsonify({"error": str(e)}), 400)


@bp.get("/repertorium")
@require_role(*STAFF_ROLES)
@require_feature("repertorium")
def repertorium_list():
    period, err = _period_or_400()
    if err:
        return err
    tahun, bulan = period
    s = db_session()
    page, limit = page_args(default_limit=50)
    q = repertorium_query(
        s,
        tahun,
        bulan,
        is_ppat=request.args.get("is_ppat"),
        search=(request.args.get("search") or "").strip() or None,
    )
    rows, meta = paginate(q, page, limit)
    return jsonify({"data": [serialize_repertorium(r) for r in rows], "meta": meta, "stats": repertorium_stats(s, tahun)})


@bp.post("/repertorium")
@require_role(*STAFF_ROLES)
@require_feature("repertorium")
def repertorium_create():
    payload = json_body()
    s = db_session()
    errors, names = validate_repertorium_payload(s, payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    try:
        entry = create_repertorium(s, payload, names, current_user())
        s.commit()
    except IntegrityError:
        # another entry took the same nomor between max() and insert
        s.rollback()
        logger.warning("Repertorium number conflict for %s", payload.get("tanggal"))
        return jsonify({"error": "Repertorium number already taken. Please try again."}), 409
    return jsonify({"entry": serialize_repertorium(entry)}), 201


@bp.get("/repertorium/export")
@require_role(*STAFF_ROLES)
@require_feature("repertorium")
def repertorium_export():
    period, err = _period_or_400()
    if err:
        return err
    tahun, bulan = period
    s = db_session()
    entries = repertorium_query(s, tahun, bulan).all()
    data = repertorium_pdf(entries, tahun, bulan)
    record_event(s, actor=current_user(), action="repertorium.export", entity_type="Repertorium", metadata={"tahun": tahun, "bulan": bulan, "rows": len(entries)})
    s.commit()
    return _pdf_response(data, f"repertorium_{period_suffix(tahun, bulan)}.pdf")


@bp.get("/klapper")
@require_role(*STAFF_ROLES)
@require_feature("klapper")
def klapper_list():
    period, err = _period_or_400()
    if err:
        return err
    tahun, bulan = period
    s = db_session()
    page, limit = page_args(default_limit=100, max_limit=500)
    q = klapper_query(
        s,
        tahun,
        bulan,
        huruf=(request.args.get("huruf") or "").strip() or None,
        search=(request.args.get("search") or "").strip() or None,
    )
    rows, meta = paginate(q, page, limit)
    return jsonify({"data": [serialize_klapper(k) for k in rows], "meta": meta, "alphabet_stats": alphabet_stats(s, tahun)})


@bp.get("/klapper/export")
@require_role(*STAFF_ROLES)
@require_feature("klapper")
def klapper_export():
    period, err = _period_or_400()
    if err:
        return err
    tahun, bulan = period
    s = db_session()
    entries = klapper_query(s, tahun, bulan).all()
    data = klapper_pdf(entries, tahun, bulan)
    record_event(s, actor=current_user(), action="klapper.export", entity_type="Klapper", metadata={"tahun": tahun, "bulan": bulan, "rows": len(entries)})
    s.commit()
    return _pdf_response(data, f"klapper_{period_suffix(tahun, bulan)}.pdf")


@bp.get("/reports/monthly/export")
@require_role(*ADMIN_ROLES)
def monthly_report_export():
    today = date.today()
    tahun = parse_int(request.args.get("tahun"), today.year)
    bulan = parse_int(request.args.get("bulan"), today.month)
    if not 1 <= bulan <= 12:
        return jsonify({"error": "bulan must be between 1 and 12."}), 400
    s = db_session()
    data = monthly_report_pdf(monthly_summary(s, tahun, bulan), tahun, bulan)
    record_event(s, actor=current_user(), action="report.monthly_export", entity_type="Repertorium", metadata={"tahun": tahun, "bulan": bulan})
    s.commit()
    return _pdf_response(data, f"laporan_bulanan_{tahun}_{bulan:02d}.pdf")
