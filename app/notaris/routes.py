from flask import Blueprint, jsonify

from app.notaris.db import db_session
from app.notaris.models import SiteSetting
from app.notaris.modules.license.service import get_license_status

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container liveness checks. No DB access.
    """
    return "ok", 200


@bp.get("/api/public/settings")
def public_settings():
    s = db_session()
    rows = s.query(SiteSetting).filter(SiteSetting.is_public.is_(True)).order_by(SiteSetting.key.asc()).all()
    return jsonify({r.key: r.value for r in rows})


@bp.get("/api/license-status")
def license_status():
    status = get_license_status(db_session())
    return jsonify({
        "has_active_license": status["has_active_license"],
        "package_type": status["package_type"],
        "is_expired": status["is_expired"],
    })
