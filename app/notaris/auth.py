from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from app.notaris.audit import record_event
from app.notaris.constants import ROLE_CLIENT, ROLE_SUPER_ADMIN
from app.notaris.db import db_session
from app.notaris.mailer import send_password_reset_email
from app.notaris.models import PasswordResetToken, User
from app.notaris.modules.account.service import (
    create_user,
    email_taken,
    has_super_admin,
    normalize_email,
    serialize_user,
    validate_registration,
)
from app.notaris.modules.license.service import get_license_status
from app.notaris.rbac import current_user
from app.notaris.security import ensure_csrf_token, hash_token, new_reset_token
from app.notaris.utils import client_ip, json_body

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
_RESET_TOKEN_TTL = timedelta(hours=1)
FORGOT_PASSWORD_MESSAGE = "If the email is registered, a password reset link has been sent."


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        return
    if not user or not user.is_active or user.deleted_at is not None:
        session.pop("user_id", None)
        return
    g.current_user = user


@bp.get("/csrf")
def csrf():
    return jsonify({"csrf_token": ensure_csrf_token()})


@bp.get("/me")
def me():
    u = current_user()
    if u is None:
        return jsonify({"error": "Unauthorized"}), 401
    return jsonify({"user": serialize_user(u)})


@bp.post("/login")
def login_post():
    payload = json_body()
    email = normalize_email(payload.get("email"))
    password = payload.get("password") or ""
    ip = client_ip() or "unknown"

    if _check_rate_limit(ip):
        return jsonify({"error": "Too many login attempts. Please wait 5 minutes."}), 429

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if (
            not user
            or not user.is_active
            or user.deleted_at is not None
            or not check_password_hash(user.password_hash, password)
        ):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            return jsonify({"error": "Invalid credentials."}), 401

        if user.role != ROLE_SUPER_ADMIN and not get_license_status(s)["has_active_license"]:
            record_event(s, actor=user, action="auth.login_blocked", entity_type="User", entity_id=user.id, reason="No active license")
            s.commit()
            return jsonify({"error": "No active license. Contact the office administrator."}), 403

        session["user_id"] = user.id
        _login_attempts[ip].clear()
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=user.id)
        s.commit()
        return jsonify({"user": serialize_user(user), "csrf_token": ensure_csrf_token()})
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    user = current_user()
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=user.id)
        s.commit()
    session.pop("user_id", None)
    return jsonify({"success": True})


@bp.post("/register")
def register():
    payload = json_body()
    errors = validate_registration(payload, min_password=6)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    s = db_session()
    if email_taken(s, payload["email"]):
        return jsonify({"error": "Email is already registered."}), 400

    user = create_user(
        s,
        name=payload["name"],
        email=payload["email"],
        password=payload["password"],
        role=ROLE_CLIENT,
        phone=payload.get("phone"),
    )
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=user.id, metadata={"email": user.email})
    s.commit()
    return jsonify({"user": serialize_user(user)}), 201


@bp.post("/forgot-password")
def forgot_password():
    email = normalize_email(json_body().get("email"))
    if not email:
        return jsonify({"error": "Email is required."}), 400

    s = db_session()
    user = s.query(User).filter(User.email == email, User.deleted_at.is_(None)).one_or_none()
    if user is not None:
        raw, digest = new_reset_token()
        s.add(PasswordResetToken(user_id=user.id, token_hash=digest, expires_at=datetime.utcnow() + _RESET_TOKEN_TTL))
        record_event(s, actor=user, action="auth.password_reset_requested", entity_type="User", entity_id=user.id)
        s.commit()
        app_url = (current_app.config.get("APP_URL") or "").rstrip("/")
        ok, msg = send_password_reset_email(user.email, user.name, f"{app_url}/reset-password?token={raw}")
        if not ok:
            current_app.logger.warning("Password reset email not delivered (user_id=%s): %s", user.id, msg)
    # same answer either way so the endpoint does not reveal which emails have accounts
    return jsonify({"message": FORGOT_PASSWORD_MESSAGE})


@bp.post("/reset-password")
def reset_password():
    payload = json_body()
    token = (payload.get("token") or "").strip()
    password = payload.get("password") or ""
    if not token:
        return jsonify({"error": "Token is required."}), 400
    if len(password) < 8:
        return jsonify({"error": "Password must be at least 8 characters."}), 400

    s = db_session()
    now = datetime.utcnow()
    row = (
        s.query(PasswordResetToken)
        .filter(
            PasswordResetToken.token_hash == hash_token(token),
            PasswordResetToken.used_at.is_(None),
            PasswordResetToken.expires_at > now,
        )
        .one_or_none()
    )
    user = s.get(User, row.user_id) if row else None
    if row is None or user is None or user.deleted_at is not None:
        return jsonify({"error": "Reset link is invalid or has expired."}), 400

    user.password_hash = generate_password_hash(password)
    user.updated_at = now
    row.used_at = now
    record_event(s, actor=user, action="auth.password_reset", entity_type="User", entity_id=user.id)
    s.commit()
    return jsonify({"success": True})


@bp.get("/setup")
def setup_status():
    return jsonify({"has_admin": has_super_admin(db_session())})


@bp.post("/setup")
def setup():
    s = db_session()
    if has_super_admin(s):
        return jsonify({"error": "Setup has already been completed."}), 403

    payload = json_body()
    errors = validate_registration(payload, min_password=8)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    if email_taken(s, payload["email"]):
        return jsonify({"error": "Email is already registered."}), 400

    user = create_user(s, name=payload["name"], email=payload["email"], password=payload["password"], role=ROLE_SUPER_ADMIN)
    user.email_verified_at = datetime.utcnow()
    record_event(s, actor=user, action="auth.setup", entity_type="User", entity_id=user.id)
    s.commit()
    return jsonify({"user": serialize_user(user)}), 201
