from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from app.notaris.audit import record_event
from app.notaris.constants import ADMIN_ROLES, APPOINTMENT_STATUSES, ROLE_CLIENT, ROLE_STAFF
from app.notaris.models import Branch, StaffProfile
from app.notaris.modules.appointments.models import Appointment, Service, StaffAvailability
from app.notaris.modules.documents.models import Document
from app.notaris.utils import clean_str, iso, missing_references, money, parse_bool, parse_datetime, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.notaris.models import User


class AppointmentPermissionError(Exception):
    """Raised when a role tries to change a field it does not own."""


def serialize_service(svc: Service) -> dict[str, Any]:
    return {
        "id": svc.id,
        "name": svc.name,
        "description": svc.description,
        "duration_minutes": svc.duration_minutes,
        "price": money(svc.price) if svc.price is not None else None,
        "is_active": svc.is_active,
    }


def serialize_appointment(a: Appointment) -> dict[str, Any]:
    return {
        "id": a.id,
        "scheduled_at": iso(a.scheduled_at),
        "duration_minutes": a.duration_minutes,
        "status": a.status,
        "notes": a.notes,
        "document_id": a.document_id,
        "branch_id": a.branch_id,
        "cancelled_at": iso(a.cancelled_at),
        "created_at": iso(a.created_at),
        "client": {"id": a.client.id, "name": a.client.user.name} if a.client else None,
        "staff": {"id": a.staff.id, "name": a.staff.user.name} if a.staff else None,
        "service": {"id": a.service.id, "name": a.service.name} if a.service else None,
    }


def serialize_availability(row: StaffAvailability) -> dict[str, Any]:
    return {
        "id": row.id,
        "staff_id": row.staff_id,
        "day_of_week": row.day_of_week,
        "start_time": row.start_time,
        "end_time": row.end_time,
        "is_available": row.is_available,
    }


APPOINTMENT_REFERENCES = {
    "staff_id": (StaffProfile, "Staff not found."),
    "branch_id": (Branch, "Branch not found."),
    "document_id": (Document, "Document not found."),
}


def validate_appointment_payload(s: "Session", payload: dict) -> list[str]:
    errors = []
    service_id = parse_int(payload.get("service_id"))
    if service_id is None:
        errors.append("service_id is required.")
    elif s.get(Service, service_id) is None:
        errors.append("Service not found.")
    if not payload.get("scheduled_at"):
        errors.append("scheduled_at is required.")
    else:
        try:
            parse_datetime(payload.get("scheduled_at"))
        except ValueError:
            errors.append("scheduled_at must be an ISO timestamp.")
    errors.extend(missing_references(s, payload, APPOINTMENT_REFERENCES))
    return errors


def create_appointment(s: "Session", payload: dict, user: "User", client_id: int) -> Appointment:
    svc = s.get(Service, parse_int(payload.get("service_id")))
    staff_id = parse_int(payload.get("staff_id")) if user.role != ROLE_CLIENT else None
    now = datetime.utcnow()
    appt = Appointment(
        client_id=client_id,
        staff_id=staff_id,
        service_id=svc.id if svc else None,
        branch_id=parse_int(payload.get("branch_id")),
        document_id=parse_int(payload.get("document_id")),
        scheduled_at=parse_datetime(payload.get("scheduled_at")),
        duration_minutes=parse_int(payload.get("duration_minutes")) or (svc.duration_minutes if svc else 30),
        status="PENDING",
        notes=clean_str(payload.get("notes")),
        created_at=now,
        updated_at=now,
    )
    s.add(appt)
    s.flush()
    record_event(
        s,
        actor=user,
        action="appointment.create",
        entity_type="Appointment",
        entity_id=appt.id,
        metadata={"client_id": client_id, "scheduled_at": iso(appt.scheduled_at)},
    )
    return appt


def update_appointment(s: "Session", appt: Appointment, payload: dict, user: "User") -> dict[str, Any]:
    """
    Field ownership by role: admins change anything, staff change status and
    notes, clients reschedule and annotate. Raises ValueError on bad input and
    AppointmentPermissionError when a client touches the status.
    """
    new_status = clean_str(payload.get("status"))
    if user.role == ROLE_CLIENT and new_status and new_status != appt.status:
        raise AppointmentPermissionError("Clients cannot change appointment status.")
    if new_status and new_status not in APPOINTMENT_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(APPOINTMENT_STATUSES)}")

    if user.role in ADMIN_ROLES:
        allowed = ("scheduled_at", "duration_minutes", "status", "notes", "staff_id")
    elif user.role == ROLE_STAFF:
        allowed = ("status", "notes")
    else:
        allowed = ("scheduled_at", "notes")

    changes: dict[str, Any] = {}
    for field in allowed:
        if field not in payload:
            continue
        raw = payload.get(field)
        if field == "scheduled_at":
            if not raw:
                continue
            val: Any = parse_datetime(raw)
        elif field in ("duration_minutes", "staff_id"):
            val = parse_int(raw)
            if val is None and field == "duration_minutes":
                continue
            if field == "staff_id" and val is not None and s.get(StaffProfile, val) is None:
                raise ValueError("Staff not found.")
        elif field == "status":
            if not new_status:
                continue
            val = new_status
        else:
            val = clean_str(raw)
        old = getattr(appt, field)
        if val != old:
            changes[field] = {"old": str(old) if old is not None else None, "new": str(val) if val is not None else None}
            setattr(appt, field, val)

    if changes:
        appt.updated_at = datetime.utcnow()
        record_event(s, actor=user, action="appointment.update", entity_type="Appointment", entity_id=appt.id, metadata={"changes": changes})
    return changes


def cancel_appointment(s: "Session", appt: Appointment, user: "User") -> None:
    now = datetime.utcnow()
    appt.status = "CANCELLED"
    appt.cancelled_at = now
    appt.updated_at = now
    record_event(s, actor=user, action="appointment.cancel", entity_type="Appointment", entity_id=appt.id)


def apply_service_payload(svc: Service, payload: dict) -> list[str]:
    errors = []
    if "name" in payload or svc.id is None:
        name = clean_str(payload.get("name"))
        if not name:
            errors.append("Name is required.")
        else:
            svc.name = name
    if "description" in payload:
        svc.description = clean_str(payload.get("description"))
    if "duration_minutes" in payload or svc.duration_minutes is None:
        svc.duration_minutes = parse_int(payload.get("duration_minutes"), 30) or 30
    if "price" in payload:
        raw = payload.get("price")
        if raw in (None, ""):
            svc.price = None
        else:
            try:
                svc.price = Decimal(str(raw))
            except InvalidOperation:
                errors.append("price must be a number.")
    if "is_active" in payload:
        svc.is_active = parse_bool(payload.get("is_active"), default=True)
    svc.updated_at = datetime.utcnow()
    return errors


def build_availability(staff_id: int, entry: dict) -> StaffAvailability:
    """Validate one availability entry; raises ValueError when incomplete."""
    day = parse_int(entry.get("day_of_week"))
    start = clean_str(entry.get("start_time"))
    end = clean_str(entry.get("end_time"))
    if day is None or not start or not end:
        raise ValueError("day_of_week, start_time and end_time are required.")
    if not 0 <= day <= 6:
        raise ValueError("day_of_week must be between 0 and 6.")
    for t in (start, end):
        datetime.strptime(t, "%H:%M")
    return StaffAvailability(
        staff_id=staff_id,
        day_of_week=day,
        start_time=start,
        end_time=end,
        is_available=parse_bool(entry.get("is_available"), default=True),
    )


def list_availability(s: "Session", staff_id: int) -> list[StaffAvailability]:
    return (
        s.query(StaffAvailability)
        .filter(StaffAvailability.staff_id == staff_id)
        .order_by(StaffAvailability.day_of_week.asc(), StaffAvailability.start_time.asc())
        .all()
    )
