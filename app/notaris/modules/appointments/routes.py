from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, jsonify, request

from app.notaris.audit import record_event
from app.notaris.constants import ADMIN_ROLES, ROLE_STAFF, STAFF_ROLES
from app.notaris.db import db_session
from app.notaris.models import StaffProfile
from app.notaris.modules.appointments.models import Appointment, Service, StaffAvailability
from app.notaris.modules.appointments.service import (
    AppointmentPermissionError,
    apply_service_payload,
    build_availability,
    cancel_appointment,
    create_appointment,
    list_availability,
    serialize_appointment,
    serialize_availability,
    serialize_service,
    update_appointment,
    validate_appointment_payload,
)
from app.notaris.modules.documents.service import can_access, resolve_client_id, scope_to_user
from app.notaris.rbac import current_user, is_staff, require_feature, require_login, require_role
from app.notaris.utils import json_body, parse_datetime, parse_int

bp = Blueprint("appointments", __name__)


def _get_appt_or_404(appt_id: int) -> Appointment:
    appt = db_session().get(Appointment, appt_id)
    if appt is None:
        abort(404, description="Appointment not found")
    if not can_access(current_user(), appt, include_unassigned=False):
        abort(403, description="Access denied")
    return appt


@bp.get("/appointments")
@require_login
@require_feature("appointments")
def appointments_list():
    s = db_session()
    q = s.query(Appointment).filter(Appointment.cancelled_at.is_(None))
    q = scope_to_user(q, Appointment, current_user(), include_unassigned=False)

    status = (request.args.get("status") or "").strip().upper()
    if status:
        q = q.filter(Appointment.status == status)
    try:
        start = parse_datetime(request.args.get("from"))
        end = parse_datetime(request.args.get("to"))
    except ValueError:
        return jsonify({"error": "from/to must be ISO timestamps."}), 400
    if start:
        q = q.filter(Appointment.scheduled_at >= start)
    if end:
        q = q.filter(Appointment.scheduled_at <= end)

    rows = q.order_by(Appointment.scheduled_at.asc(), Appointment.id.asc()).all()
    return jsonify({"data": [serialize_appointment(a) for a in rows]})


@bp.post("/appointments")
@require_login
@require_feature("appointments")
def appointments_create():
    payload = json_body()
    s = db_session()
    u = current_user()
    client_id, err = resolve_client_id(s, u, payload)
    if err:
        return jsonify({"error": err}), 400
    errors = validate_appointment_payload(s, payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    appt = create_appointment(s, payload, u, client_id)
    s.commit()
    return jsonify({"appointment": serialize_appointment(appt)}), 201


@bp.get("/appointments/<int:appt_id>")
@require_login
@require_feature("appointments")
def appointments_detail(appt_id: int):
    return jsonify({"appointment": serialize_appointment(_get_appt_or_404(appt_id))})


@bp.put("/appointments/<int:appt_id>")
@require_login
@require_feature("appointments")
def appointments_update(appt_id: int):
    appt = _get_appt_or_404(appt_id)
    s = db_session()
    try:
        changes = update_appointment(s, appt, json_body(), current_user())
    except AppointmentPermissionError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 403
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"appointment": serialize_appointment(appt), "changed": sorted(changes)})


@bp.delete("/appointments/<int:appt_id>")
@require_login
@require_feature("appointments")
def appointments_cancel(appt_id: int):
    appt = _get_appt_or_404(appt_id)
    s = db_session()
    cancel_appointment(s, appt, current_user())
    s.commit()
    return jsonify({"success": True})


# -- services --------------------------------------------------------------


@bp.get("/services")
@require_login
def services_list():
    s = db_session()
    rows = s.query(Service).filter(Service.is_active.is_(True)).order_by(Service.name.asc()).all()
    return jsonify({"services": [serialize_service(svc) for svc in rows]})


@bp.post("/services")
@require_role(*ADMIN_ROLES)
@require_feature("services")
def services_create():
    s = db_session()
    svc = Service(created_at=datetime.utcnow())
    errors = apply_service_payload(svc, json_body())
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    s.add(svc)
    s.flush()
    record_event(s, actor=current_user(), action="service.create", entity_type="Service", entity_id=svc.id, metadata={"name": svc.name})
    s.commit()
    return jsonify({"service": serialize_service(svc)}), 201


@bp.put("/services/<int:service_id>")
@require_role(*ADMIN_ROLES)
@require_feature("services")
def services_update(service_id: int):
    s = db_session()
    svc = s.get(Service, service_id)
    if svc is None:
        abort(404, description="Service not found")
    errors = apply_service_payload(svc, json_body())
    if errors:
        s.rollback()
        return jsonify({"error": errors[0], "errors": errors}), 400
    record_event(s, actor=current_user(), action="service.update", entity_type="Service", entity_id=svc.id)
    s.commit()
    return jsonify({"service": serialize_service(svc)})


@bp.delete("/services/<int:service_id>")
@require_role(*ADMIN_ROLES)
@require_feature("services")
def services_delete(service_id: int):
    s = db_session()
    svc = s.get(Service, service_id)
    if svc is None:
        abort(404, description="Service not found")
    # appointments keep pointing at it, so retire rather than delete
    svc.is_active = False
    svc.updated_at = datetime.utcnow()
    record_event(s, actor=current_user(), action="service.delete", entity_type="Service", entity_id=svc.id)
    s.commit()
    return jsonify({"success": True})


# -- staff availability ----------------------------------------------------


def _target_staff_id(requested) -> int:
    """
    Staff manage their own schedule; admins may name any staff member.
    Aborts 404 when no staff profile can be resolved.
    """
    u = current_user()
    requested_id = parse_int(requested)
    own_id = u.staff_profile.id if u.staff_profile else None
    if u.role == ROLE_STAFF:
        if requested_id is not None and requested_id != own_id:
            abort(403, description="Staff may only manage their own availability")
        requested_id = own_id
    elif requested_id is None:
        requested_id = own_id
    if requested_id is None or db_session().get(StaffProfile, requested_id) is None:
        abort(404, description="Staff not found")
    return requested_id


@bp.get("/staff-availability")
@require_login
@require_feature("staff_availability", "appointments")
def availability_get():
    requested = request.args.get("staff_id")
    if is_staff(current_user()):
        staff_id = _target_staff_id(requested)
    else:
        # clients look up a named staff member when booking
        staff_id = parse_int(requested)
        if staff_id is None or db_session().get(StaffProfile, staff_id) is None:
            abort(404, description="Staff not found")
    rows = list_availability(db_session(), staff_id)
    return jsonify({"availability": [serialize_availability(r) for r in rows]})


@bp.post("/staff-availability")
@require_role(*STAFF_ROLES)
@require_feature("staff_availability")
def availability_create():
    payload = json_body()
    staff_id = _target_staff_id(payload.get("staff_id"))
    s = db_session()
    try:
        row = build_availability(staff_id, payload)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.add(row)
    s.flush()
    record_event(s, actor=current_user(), action="availability.create", entity_type="StaffProfile", entity_id=staff_id)
    s.commit()
    return jsonify({"availability": serialize_availability(row)}), 201


@bp.put("/staff-availability")
@require_role(*STAFF_ROLES)
@require_feature("staff_availability")
def availability_replace():
    payload = json_body()
    staff_id = _target_staff_id(payload.get("staff_id"))
    entries = payload.get("entries") or []
    if not isinstance(entries, list):
        return jsonify({"error": "entries must be a list."}), 400
    try:
        rows = [build_availability(staff_id, e) for e in entries if isinstance(e, dict)]
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    s = db_session()
    s.query(StaffAvailability).filter(StaffAvailability.staff_id == staff_id).delete(synchronize_session=False)
    s.add_all(rows)
    s.flush()
    record_event(s, actor=current_user(), action="availability.replace", entity_type="StaffProfile", entity_id=staff_id, metadata={"entries": len(rows)})
    s.commit()
    return jsonify({"availability": [serialize_availability(r) for r in list_availability(s, staff_id)]})
