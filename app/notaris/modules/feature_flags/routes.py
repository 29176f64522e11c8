from flask import Blueprint, jsonify

from app.notaris.constants import ROLE_SUPER_ADMIN
from app.notaris.db import db_session
from app.notaris.modules.feature_flags.definitions import FEATURES, package_catalog
from app.notaris.modules.feature_flags.service import (
    enabled_features_for_role,
    get_flags,
    update_flags,
    validate_flags_payload,
)
from app.notaris.rbac import current_user, require_login, require_role
from app.notaris.utils import json_body

bp = Blueprint("feature_flags", __name__)


@bp.get("/feature-flags")
@require_login
def flags_get():
    s = db_session()
    u = current_user()
    return jsonify({
        "flags": get_flags(s),
        "features": [f.to_dict() for f in FEATURES],
        "packages": package_catalog(),
        "my_features": enabled_features_for_role(s, u.role),
    })


@bp.put("/feature-flags")
@require_role(ROLE_SUPER_ADMIN)
def flags_put():
    payload = json_body()
    errors = validate_flags_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    s = db_session()
    data = update_flags(s, payload, current_user())
    s.commit()
    return jsonify({"flags": data})
