from datetime import datetime

from flask import Blueprint, jsonify

from app.notaris.db import db_session
from app.notaris.modules.account.service import (
    change_password,
    get_or_create_notification_settings,
    serialize_notification_settings,
    serialize_user,
    update_profile,
    validate_quiet_hour,
)
from app.notaris.rbac import current_user, require_login
from app.notaris.utils import json_body, parse_bool

bp = Blueprint("account", __name__)


@bp.get("/profile")
@require_login
def profile_get():
    return jsonify({"user": serialize_user(current_user())})


@bp.patch("/profile")
@require_login
def profile_patch():
    s = db_session()
    u = current_user()
    changes = update_profile(s, u, json_body())
    s.commit()
    return jsonify({"user": serialize_user(u), "changed": sorted(changes)})


@bp.post("/profile/password")
@require_login
def profile_password():
    payload = json_body()
    s = db_session()
    u = current_user()
    error = change_password(s, u, payload.get("current_password") or "", payload.get("new_password") or "")
    if error:
        return jsonify({"error": error}), 400
    s.commit()
    return jsonify({"success": True})


@bp.get("/notification-settings")
@require_login
def notification_settings_get():
    s = db_session()
    row = get_or_create_notification_settings(s, current_user())
    s.commit()
    return jsonify({"settings": serialize_notification_settings(row)})


@bp.put("/notification-settings")
@require_login
def notification_settings_put():
    payload = json_body()
    s = db_session()
    row = get_or_create_notification_settings(s, current_user())
    for field in ("email_enabled", "sms_enabled", "push_enabled"):
        if field in payload:
            setattr(row, field, parse_bool(payload.get(field)))
    try:
        for field in ("quiet_hours_start", "quiet_hours_end"):
            if field in payload:
                setattr(row, field, validate_quiet_hour(payload.get(field)))
    except ValueError:
        s.rollback()
        return jsonify({"error": "Quiet hours must use HH:MM."}), 400
    row.updated_at = datetime.utcnow()
    s.commit()
    return jsonify({"settings": serialize_notification_settings(row)})
