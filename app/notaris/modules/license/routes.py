from flask import Blueprint, jsonify

from app.notaris.constants import ROLE_SUPER_ADMIN
from app.notaris.db import db_session
from app.notaris.modules.license.service import (
    LicenseError,
    activate_license,
    active_license,
    current_domain,
    deactivate_licenses,
    invalidate_license_cache,
    serialize_license,
    verify_active_license,
)
from app.notaris.rbac import current_user, require_role
from app.notaris.utils import json_body

bp = Blueprint("license", __name__)


@bp.get("/admin/license")
@require_role(ROLE_SUPER_ADMIN)
def license_get():
    s = db_session()
    lic = active_license(s)
    return jsonify({
        "license": serialize_license(lic) if lic else None,
        "current_domain": current_domain(),
    })


@bp.post("/admin/license")
@require_role(ROLE_SUPER_ADMIN)
def license_activate():
    payload = json_body()
    s = db_session()
    try:
        lic = activate_license(s, payload.get("license_key") or "", current_user())
    except LicenseError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    s.commit()
    invalidate_license_cache()
    return jsonify({"success": True, "license": serialize_license(lic)})


@bp.delete("/admin/license")
@require_role(ROLE_SUPER_ADMIN)
def license_deactivate():
    s = db_session()
    n = deactivate_licenses(s, current_user())
    s.commit()
    invalidate_license_cache()
    return jsonify({"success": True, "deactivated": n})


@bp.post("/admin/license/verify")
@require_role(ROLE_SUPER_ADMIN)
def license_verify():
    s = db_session()
    result = verify_active_license(s)
    s.commit()
    invalidate_license_cache()
    return jsonify(result)
