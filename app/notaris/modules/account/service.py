from __future__ import annotations

import secrets
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from werkzeug.security import check_password_hash, generate_password_hash

from app.notaris.audit import record_event
from app.notaris.constants import ROLE_ADMIN, ROLE_CLIENT, ROLE_STAFF, ROLE_SUPER_ADMIN
from app.notaris.models import ClientProfile, StaffProfile, User
from app.notaris.utils import clean_str, iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.notaris.modules.messaging.models import NotificationSetting


def _stamp() -> str:
    # epoch millis plus a short random tail so same-millisecond inserts stay unique
    return f"{int(time.time() * 1000)}{secrets.randbelow(1000):03d}"


def new_client_number() -> str:
    return f"CLT{_stamp()}"


def new_employee_id() -> str:
    return f"EMP{_stamp()}"


def normalize_email(email: Any) -> str:
    return (str(email or "")).strip().lower()


def email_taken(s: "Session", email: str, *, exclude_user_id: int | None = None) -> bool:
    q = s.query(User.id).filter(User.email == normalize_email(email))
    if exclude_user_id is not None:
        q = q.filter(User.id != exclude_user_id)
    return q.first() is not None


def serialize_user(u: User, *, include_profile: bool = True) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "role": u.role,
        "phone": u.phone,
        "avatar_url": u.avatar_url,
        "is_active": u.is_active,
        "created_at": iso(u.created_at),
    }
    if include_profile:
        sp = u.staff_profile
        cp = u.client_profile
        out["staff"] = (
            {
                "id": sp.id,
                "employee_id": sp.employee_id,
                "position": sp.position,
                "branch_id": sp.branch_id,
                "branch_name": sp.branch.name if sp.branch else None,
            }
            if sp
            else None
        )
        out["client"] = (
            {
                "id": cp.id,
                "client_number": cp.client_number,
                "company_name": cp.company_name,
                "address": cp.address,
                "id_number": cp.id_number,
            }
            if cp
            else None
        )
    return out


def create_user(
    s: "Session",
    *,
    name: str,
    email: str,
    password: str,
    role: str,
    phone: str | None = None,
    position: str | None = None,
    branch_id: int | None = None,
    company_name: str | None = None,
    address: str | None = None,
    id_number: str | None = None,
) -> User:
    """Create a user plus the staff/client profile its role needs."""
    now = datetime.utcnow()
    user = User(
        name=name.strip(),
        email=normalize_email(email),
        password_hash=generate_password_hash(password),
        role=role,
        phone=clean_str(phone),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    ensure_profile(s, user, position=position, branch_id=branch_id, company_name=company_name, address=address, id_number=id_number)
    return user


def ensure_profile(
    s: "Session",
    user: User,
    *,
    position: str | None = None,
    branch_id: int | None = None,
    company_name: str | None = None,
    address: str | None = None,
    id_number: str | None = None,
) -> None:
    if user.role in (ROLE_STAFF, ROLE_ADMIN) and user.staff_profile is None:
        user.staff_profile = StaffProfile(
            user_id=user.id,
            employee_id=new_employee_id(),
            position=clean_str(position),
            branch_id=branch_id,
        )
    elif user.role == ROLE_CLIENT and user.client_profile is None:
        user.client_profile = ClientProfile(
            user_id=user.id,
            client_number=new_client_number(),
            company_name=clean_str(company_name),
            address=clean_str(address),
            id_number=clean_str(id_number),
        )
    s.flush()


def validate_registration(payload: dict, *, min_password: int) -> list[str]:
    errors = []
    if not clean_str(payload.get("name")):
        errors.append("Name is required.")
    if not normalize_email(payload.get("email")):
        errors.append("Email is required.")
    password = payload.get("password") or ""
    if not password:
        errors.append("Password is required.")
    elif len(password) < min_password:
        errors.append(f"Password must be at least {min_password} characters.")
    return errors


def has_super_admin(s: "Session") -> bool:
    return (
        s.query(User.id)
        .filter(User.role == ROLE_SUPER_ADMIN, User.deleted_at.is_(None))
        .first()
        is not None
    )


def update_profile(s: "Session", user: User, payload: dict) -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}

    new_name = clean_str(payload.get("name"))
    if new_name and new_name != user.name:
        changes["name"] = {"old": user.name, "new": new_name}
        user.name = new_name

    for field in ("phone", "avatar_url"):
        if field in payload:
            new_val = clean_str(payload.get(field))
            if new_val != getattr(user, field):
                changes[field] = {"old": getattr(user, field), "new": new_val}
                setattr(user, field, new_val)

    cp = user.client_profile
    if cp is not None:
        for field in ("company_name", "address", "id_number"):
            if field in payload:
                new_val = clean_str(payload.get(field))
                if new_val != getattr(cp, field):
                    changes[field] = {"old": getattr(cp, field), "new": new_val}
                    setattr(cp, field, new_val)

    if changes:
        user.updated_at = datetime.utcnow()
        record_event(s, actor=user, action="profile.update", entity_type="User", entity_id=user.id, metadata={"changes": changes})
    return changes


def change_password(s: "Session", user: User, current_password: str, new_password: str) -> str | None:
    """Returns an error message, or None on success."""
    if not current_password or not new_password:
        return "Current password and new password are required."
    if len(new_password) < 8:
        return "New password must be at least 8 characters."
    if not check_password_hash(user.password_hash, current_password):
        return "Current password is incorrect."
    user.password_hash = generate_password_hash(new_password)
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="profile.password_change", entity_type="User", entity_id=user.id)
    return None


# -- notification settings -------------------------------------------------


def get_or_create_notification_settings(s: "Session", user: User) -> "NotificationSetting":
    from app.notaris.modules.messaging.models import NotificationSetting

    row = s.query(NotificationSetting).filter(NotificationSetting.user_id == user.id).one_or_none()
    if row is None:
        row = NotificationSetting(user_id=user.id, email_enabled=True, sms_enabled=False, push_enabled=True)
        s.add(row)
        s.flush()
    return row


def serialize_notification_settings(row: "NotificationSetting") -> dict[str, Any]:
    return {
        "email_enabled": row.email_enabled,
        "sms_enabled": row.sms_enabled,
        "push_enabled": row.push_enabled,
        "quiet_hours_start": row.quiet_hours_start,
        "quiet_hours_end": row.quiet_hours_end,
    }


def validate_quiet_hour(value: Any) -> str | None:
    """Accepts HH:MM or empty; raises ValueError otherwise."""
    v = clean_str(value)
    if v is None:
        return None
    datetime.strptime(v, "%H:%M")
    return v
