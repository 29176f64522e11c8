from __future__ import annotations

import io
import logging
from datetime import datetime

from flask import Blueprint, abort, jsonify, request, send_file
from sqlalchemy.exc import IntegrityError

from app.notaris.audit import record_event
from app.notaris.constants import ADMIN_ROLES, ROLE_CLIENT, STAFF_ROLES
from app.notaris.db import db_session
from app.notaris.modules.invoices.exports import invoice_pdf
from app.notaris.modules.invoices.models import Invoice, ServiceFee
from app.notaris.modules.invoices.service import (
    InvoiceError,
    apply_service_fee_payload,
    create_invoice,
    record_payment,
    serialize_invoice,
    serialize_payment,
    serialize_service_fee,
    update_invoice,
)
from app.notaris.rbac import current_user, require_feature, require_login, require_role
from app.notaris.utils import json_body, page_args, paginate

bp = Blueprint("invoices", __name__)
logger = logging.getLogger(__name__)


def _get_invoice_or_404(invoice_id: int) -> Invoice:
    inv = db_session().get(Invoice, invoice_id)
    if inv is None:
        abort(404, description="Invoice not found")
    u = current_user()
    if u.role == ROLE_CLIENT:
        own = u.client_profile.id if u.client_profile else None
        if own is None or inv.client_id != own:
            abort(403, description="Forbidden")
    return inv


@bp.get("/invoices")
@require_login
@require_feature("billing")
def invoices_list():
    s = db_session()
    u = current_user()
    page, limit = page_args()
    q = s.query(Invoice)
    if u.role == ROLE_CLIENT:
        if u.client_profile is None:
            return jsonify({"invoices": [], "total": 0, "page": page, "limit": limit})
        q = q.filter(Invoice.client_id == u.client_profile.id)
    status = (request.args.get("status") or "").strip().upper()
    if status:
        q = q.filter(Invoice.status == status)
    rows, meta = paginate(q.order_by(Invoice.created_at.desc(), Invoice.id.desc()), page, limit)
    return jsonify({"invoices": [serialize_invoice(i) for i in rows], "total": meta["total"], "page": page, "limit": limit})


@bp.post("/invoices")
@require_role(*STAFF_ROLES)
@require_feature("billing")
def invoices_create():
    s = db_session()
    try:
        inv = create_invoice(s, json_body(), current_user())
        s.commit()
    except InvoiceError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    except IntegrityError:
        # invoice_number is unique; a concurrent create took the same one
        s.rollback()
        logger.warning("Invoice number conflict on create")
        return jsonify({"error": "Invoice number already taken. Please try again."}), 409
    return jsonify({"success": True, "invoice": serialize_invoice(inv, detail=True)}), 201


@bp.get("/invoices/<int:invoice_id>")
@require_login
@require_feature("billing")
def invoices_detail(invoice_id: int):
    return jsonify({"invoice": serialize_invoice(_get_invoice_or_404(invoice_id), detail=True)})


@bp.patch("/invoices/<int:invoice_id>")
@require_role(*STAFF_ROLES)
@require_feature("billing")
def invoices_update(invoice_id: int):
    inv = _get_invoice_or_404(invoice_id)
    s = db_session()
    try:
        update_invoice(s, inv, json_body(), current_user())
    except InvoiceError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"success": True, "invoice": serialize_invoice(inv, detail=True)})


@bp.delete("/invoices/<int:invoice_id>")
@require_role(*ADMIN_ROLES)
@require_feature("billing")
def invoices_delete(invoice_id: int):
    inv = _get_invoice_or_404(invoice_id)
    s = db_session()
    record_event(s, actor=current_user(), action="invoice.delete", entity_type="Invoice", entity_id=inv.id, metadata={"invoice_number": inv.invoice_number})
    s.delete(inv)
    s.commit()
    return jsonify({"success": True})


@bp.post("/invoices/<int:invoice_id>/payments")
@require_role(*STAFF_ROLES)
@require_feature("billing")
def invoices_payment(invoice_id: int):
    inv = _get_invoice_or_404(invoice_id)
    s = db_session()
    try:
        payment = record_payment(s, inv, json_body(), current_user())
    except InvoiceError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"success": True, "payment": serialize_payment(payment), "invoice": serialize_invoice(inv, detail=True)}), 201


@bp.get("/invoices/<int:invoice_id>/export")
@require_login
@require_feature("billing")
def invoices_export(invoice_id: int):
    inv = _get_invoice_or_404(invoice_id)
    data = invoice_pdf(inv)
    return send_file(io.BytesIO(data), mimetype="application/pdf", as_attachment=True, download_name=f"invoice_{inv.invoice_number}.pdf")


# -- service fees ----------------------------------------------------------


@bp.get("/service-fees")
@require_role(*STAFF_ROLES)
@require_feature("billing")
def service_fees_list():
    s = db_session()
    rows = s.query(ServiceFee).filter(ServiceFee.is_active.is_(True)).order_by(ServiceFee.category.asc(), ServiceFee.name.asc()).all()
    return jsonify({"service_fees": [serialize_service_fee(f) for f in rows]})


@bp.post("/service-fees")
@require_role(*ADMIN_ROLES)
@require_feature("billing")
def service_fees_create():
    s = db_session()
    fee = ServiceFee(created_at=datetime.utcnow())
    errors = apply_service_fee_payload(fee, json_body())
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    s.add(fee)
    s.flush()
    record_event(s, actor=current_user(), action="service_fee.create", entity_type="ServiceFee", entity_id=fee.id, metadata={"name": fee.name})
    s.commit()
    return jsonify({"service_fee": serialize_service_fee(fee)}), 201


@bp.put("/service-fees/<int:fee_id>")
@require_role(*ADMIN_ROLES)
@require_feature("billing")
def service_fees_update(fee_id: int):
    s = db_session()
    fee = s.get(ServiceFee, fee_id)
    if fee is None:
        abort(404, description="Service fee not found")
    errors = apply_service_fee_payload(fee, json_body())
    if errors:
        s.rollback()
        return jsonify({"error": errors[0], "errors": errors}), 400
    record_event(s, actor=current_user(), action="service_fee.update", entity_type="ServiceFee", entity_id=fee.id)
    s.commit()
    return jsonify({"service_fee": serialize_service_fee(fee)})


@bp.delete("/service-fees/<int:fee_id>")
@require_role(*ADMIN_ROLES)
@require_feature("billing")
def service_fees_delete(fee_id: int):
    s = db_session()
    fee = s.get(ServiceFee, fee_id)
    if fee is None:
        abort(404, description="Service fee not found")
    s.delete(fee)
    record_event(s, actor=current_user(), action="service_fee.delete", entity_type="ServiceFee", entity_id=fee_id)
    s.commit()
    return jsonify({"success": True})
