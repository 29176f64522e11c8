from flask import Blueprint, jsonify

from app.notaris.constants import ADMIN_ROLES
from app.notaris.db import db_session
from app.notaris.modules.reports.service import dashboard_stats, overview
from app.notaris.rbac import current_user, require_feature, require_login, require_role

bp = Blueprint("reports", __name__)


@bp.get("/reports")
@require_role(*ADMIN_ROLES)
@require_feature("reports")
def reports_overview():
    return jsonify(overview(db_session()))


@bp.get("/dashboard/stats")
@require_login
def dashboard():
    return jsonify(dashboard_stats(db_session(), current_user()))
