from datetime import date, datetime, time, timedelta

from flask import Blueprint, abort, g, jsonify, request
from sqlalchemy import or_
from werkzeug.security import generate_password_hash

from app.notaris.audit import record_event, serialize_event
from app.notaris.constants import ADMIN_ROLES, RESERVED_SETTING_KEYS, ROLE_SUPER_ADMIN, ROLES
from app.notaris.db import db_session
from app.notaris.models import AuditEvent, Branch, SiteSetting, User
from app.notaris.modules.account.service import create_user, email_taken, ensure_profile, normalize_email, serialize_user
from app.notaris.rbac import require_feature, require_role
from app.notaris.site_settings import set_setting
from app.notaris.utils import clean_str, iso, json_body, missing_references, page_args, paginate, parse_bool, parse_int

bp = Blueprint("admin", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _is_valid_email(email: str) -> bool:
    import re
    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    return bool(re.match(pattern, email))


def _get_user_or_404(user_id: int) -> User:
    user = db_session().get(User, user_id)
    if user is None or user.deleted_at is not None:
        abort(404, description="User not found")
    if _current_user().role != ROLE_SUPER_ADMIN and user.role == ROLE_SUPER_ADMIN:
        abort(403, description="Forbidden")
    return user


# -- users -----------------------------------------------------------------


@bp.get("/users")
@require_role(*ADMIN_ROLES)
@require_feature("user_management")
def users_list():
    s = db_session()
    u = _current_user()
    page, limit = page_args()
    q = s.query(User).filter(User.deleted_at.is_(None))
    if u.role != ROLE_SUPER_ADMIN:
        q = q.filter(User.role != ROLE_SUPER_ADMIN)
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(User.name.ilike(like), User.email.ilike(like)))
    role = (request.args.get("role") or "").strip().upper()
    if role:
        q = q.filter(User.role == role)
    rows, meta = paginate(q.order_by(User.created_at.desc(), User.id.desc()), page, limit)
    return jsonify({"data": [serialize_user(x) for x in rows], "meta": meta})


@bp.post("/users")
@require_role(*ADMIN_ROLES)
@require_feature("user_management")
def users_create():
    s = db_session()
    u = _current_user()
    payload = json_body()

    name = clean_str(payload.get("name"))
    email = normalize_email(payload.get("email"))
    password = payload.get("password") or ""
    role = (clean_str(payload.get("role")) or "").upper()

    errors = []
    if not name:
        errors.append("Name is required.")
    if not email:
        errors.append("Email is required.")
    elif not _is_valid_email(email):
        errors.append("Invalid email format.")
    elif email_taken(s, email):
        errors.append("An account with this email already exists.")
    if not password:
        errors.append("Password is required.")
    elif len(password) < 8:
        errors.append("Password must be at least 8 characters.")
    if role not in ROLES:
        errors.append(f"Invalid role. Must be one of: {', '.join(ROLES)}")
    errors.extend(missing_references(s, payload, {"branch_id": (Branch, "Branch not found.")}))
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    if role == ROLE_SUPER_ADMIN and u.role != ROLE_SUPER_ADMIN:
        abort(403, description="Only a super admin can create super admins")

    new_user = create_user(
        s,
        name=name,
        email=email,
        password=password,
        role=role,
        phone=payload.get("phone"),
        position=payload.get("position"),
        branch_id=parse_int(payload.get("branch_id")),
        company_name=payload.get("company_name"),
        address=payload.get("address"),
        id_number=payload.get("id_number"),
    )
    record_event(s, actor=u, action="user.create", entity_type="User", entity_id=new_user.id, metadata={"email": email, "role": role})
    s.commit()
    return jsonify({"user": serialize_user(new_user)}), 201


@bp.get("/users/<int:user_id>")
@require_role(*ADMIN_ROLES)
@require_feature("user_management")
def users_detail(user_id: int):
    return jsonify({"user": serialize_user(_get_user_or_404(user_id))})


@bp.put("/users/<int:user_id>")
@require_role(*ADMIN_ROLES)
@require_feature("user_management")
def users_update(user_id: int):
    s = db_session()
    u = _current_user()
    user = _get_user_or_404(user_id)
    payload = json_body()

    before = {"name": user.name, "email": user.email, "role": user.role, "is_active": user.is_active}

    errors = []
    if "name" in payload:
        name = clean_str(payload.get("name"))
        if not name:
            errors.append("Name is required.")
        else:
            user.name = name
    if "email" in payload:
        email = normalize_email(payload.get("email"))
        if not email or not _is_valid_email(email):
            errors.append("Invalid email format.")
        elif email_taken(s, email, exclude_user_id=user.id):
            errors.append("An account with this email already exists.")
        else:
            user.email = email
    if "role" in payload:
        role = (clean_str(payload.get("role")) or "").upper()
        if role not in ROLES:
            errors.append(f"Invalid role. Must be one of: {', '.join(ROLES)}")
        elif role != user.role:
            if user.id == u.id:
                return jsonify({"error": "You cannot change your own role."}), 403
            if role == ROLE_SUPER_ADMIN and u.role != ROLE_SUPER_ADMIN:
                abort(403, description="Only a super admin can grant super admin")
            user.role = role
    if "password" in payload and payload.get("password"):
        if len(payload["password"]) < 8:
            errors.append("Password must be at least 8 characters.")
        else:
            user.password_hash = generate_password_hash(payload["password"])
    if "phone" in payload:
        user.phone = clean_str(payload.get("phone"))
    if "is_active" in payload:
        if user.id == u.id and not parse_bool(payload.get("is_active"), default=True):
            errors.append("You cannot deactivate your own account.")
        else:
            user.is_active = parse_bool(payload.get("is_active"), default=True)
    errors.extend(missing_references(s, payload, {"branch_id": (Branch, "Branch not found.")}))
    if errors:
        s.rollback()
        return jsonify({"error": errors[0], "errors": errors}), 400

    ensure_profile(s, user)
    if user.staff_profile is not None:
        if "position" in payload:
            user.staff_profile.position = clean_str(payload.get("position"))
        if "branch_id" in payload:
            user.staff_profile.branch_id = parse_int(payload.get("branch_id"))
    user.updated_at = datetime.utcnow()

    after = {"name": user.name, "email": user.email, "role": user.role, "is_active": user.is_active}
    record_event(s, actor=u, action="user.update", entity_type="User", entity_id=user.id, metadata={"before": before, "after": after})
    s.commit()
    return jsonify({"user": serialize_user(user)})


@bp.delete("/users/<int:user_id>")
@require_role(*ADMIN_ROLES)
@require_feature("user_management")
def users_delete(user_id: int):
    s = db_session()
    u = _current_user()
    user = _get_user_or_404(user_id)
    if user.id == u.id:
        return jsonify({"error": "You cannot delete your own account."}), 400
    if user.role == ROLE_SUPER_ADMIN:
        remaining = s.query(User).filter(User.role == ROLE_SUPER_ADMIN, User.deleted_at.is_(None)).count()
        if remaining <= 1:
            return jsonify({"error": "Cannot delete the last super admin."}), 400

    user.deleted_at = datetime.utcnow()
    user.is_active = False
    record_event(s, actor=u, action="user.delete", entity_type="User", entity_id=user.id, metadata={"email": user.email})
    s.commit()
    return jsonify({"success": True})


# -- branches --------------------------------------------------------------


def _serialize_branch(b: Branch) -> dict:
    return {
        "id": b.id,
        "name": b.name,
        "address": b.address,
        "phone": b.phone,
        "email": b.email,
        "is_active": b.is_active,
        "created_at": iso(b.created_at),
    }


def _apply_branch_payload(b: Branch, payload: dict) -> list[str]:
    errors = []
    if "name" in payload or b.id is None:
        name = clean_str(payload.get("name"))
        if not name:
            errors.append("Name is required.")
        else:
            b.name = name
    for field in ("address", "phone", "email"):
        if field in payload:
            setattr(b, field, clean_str(payload.get(field)))
    if "is_active" in payload:
        b.is_active = parse_bool(payload.get("is_active"), default=True)
    b.updated_at = datetime.utcnow()
    return errors


@bp.get("/branches")
@require_role(*ADMIN_ROLES)
@require_feature("branches")
def branches_list():
    rows = db_session().query(Branch).order_by(Branch.name.asc()).all()
    return jsonify({"branches": [_serialize_branch(b) for b in rows]})


@bp.post("/branches")
@require_role(*ADMIN_ROLES)
@require_feature("branches")
def branches_create():
    s = db_session()
    b = Branch(is_active=True, created_at=datetime.utcnow())
    errors = _apply_branch_payload(b, json_body())
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    s.add(b)
    s.flush()
    record_event(s, actor=_current_user(), action="branch.create", entity_type="Branch", entity_id=b.id, metadata={"name": b.name})
    s.commit()
    return jsonify({"branch": _serialize_branch(b)}), 201


@bp.put("/branches/<int:branch_id>")
@require_role(*ADMIN_ROLES)
@require_feature("branches")
def branches_update(branch_id: int):
    s = db_session()
    b = s.get(Branch, branch_id)
    if b is None:
        abort(404, description="Branch not found")
    errors = _apply_branch_payload(b, json_body())
    if errors:
        s.rollback()
        return jsonify({"error": errors[0], "errors": errors}), 400
    record_event(s, actor=_current_user(), action="branch.update", entity_type="Branch", entity_id=b.id)
    s.commit()
    return jsonify({"branch": _serialize_branch(b)})


@bp.delete("/branches/<int:branch_id>")
@require_role(*ADMIN_ROLES)
@require_feature("branches")
def branches_delete(branch_id: int):
    s = db_session()
    b = s.get(Branch, branch_id)
    if b is None:
        abort(404, description="Branch not found")
    s.delete(b)
    record_event(s, actor=_current_user(), action="branch.delete", entity_type="Branch", entity_id=branch_id, metadata={"name": b.name})
    s.commit()
    return jsonify({"success": True})


# -- audit trail -----------------------------------------------------------


@bp.get("/audit-logs")
@require_role(*ADMIN_ROLES)
@require_feature("audit_logs")
def audit_list():
    """
    Filters: action (contains), entity_type, user_id, from/to (YYYY-MM-DD, inclusive).
    """
    s = db_session()
    page, limit = page_args(default_limit=50)
    q = s.query(AuditEvent)

    action = (request.args.get("action") or "").strip()
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    entity_type = (request.args.get("entity_type") or "").strip()
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    user_id = parse_int(request.args.get("user_id"))
    if user_id is not None:
        q = q.filter(AuditEvent.actor_user_id == user_id)

    date_from = _parse_date(request.args.get("from") or "")
    date_to = _parse_date(request.args.get("to") or "")
    if (request.args.get("from") or "").strip() and not date_from:
        return jsonify({"error": "from must be YYYY-MM-DD"}), 400
    if (request.args.get("to") or "").strip() and not date_to:
        return jsonify({"error": "to must be YYYY-MM-DD"}), 400
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    rows, meta = paginate(q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()), page, limit)
    return jsonify({"data": [serialize_event(ev) for ev in rows], "meta": meta})


# -- site settings ---------------------------------------------------------


@bp.get("/settings")
@require_role(*ADMIN_ROLES)
@require_feature("settings")
def settings_get():
    rows = (
        db_session()
        .query(SiteSetting)
        .filter(SiteSetting.key.not_in(RESERVED_SETTING_KEYS))
        .order_by(SiteSetting.key.asc())
        .all()
    )
    return jsonify({"settings": [{"key": r.key, "value": r.value, "is_public": r.is_public, "updated_at": iso(r.updated_at)} for r in rows]})


@bp.put("/settings")
@require_role(*ADMIN_ROLES)
@require_feature("settings")
def settings_put():
    """
    Body: {"settings": [{"key", "value", "is_public"?}, ...]}.
    """
    entries = json_body().get("settings")
    if not isinstance(entries, list) or not entries:
        return jsonify({"error": "settings must be a non-empty list."}), 400

    s = db_session()
    keys = []
    for entry in entries:
        key = clean_str(entry.get("key")) if isinstance(entry, dict) else None
        if not key:
            s.rollback()
            return jsonify({"error": "Each setting needs a key."}), 400
        if key in RESERVED_SETTING_KEYS:
            s.rollback()
            return jsonify({"error": f"Setting '{key}' is managed by its own endpoint."}), 400
        is_public = parse_bool(entry.get("is_public")) if "is_public" in entry else None
        set_setting(s, key, "" if entry.get("value") is None else str(entry.get("value")), is_public=is_public)
        keys.append(key)
    record_event(s, actor=_current_user(), action="settings.update", entity_type="SiteSetting", metadata={"keys": keys})
    s.commit()
    return jsonify({"success": True, "keys": keys})
