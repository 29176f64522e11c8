import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session
from sqlalchemy import inspect as sa_inspect
from werkzeug.exceptions import HTTPException

from app.notaris.config import load_config
from app.notaris.db import init_db, teardown_db_session
from app.notaris.routes import bp as routes_bp
from app.notaris.auth import bp as auth_bp, load_current_user
from app.notaris.admin import bp as admin_bp
from app.notaris.modules.account.routes import bp as account_bp
from app.notaris.modules.license.routes import bp as license_bp
from app.notaris.modules.feature_flags.routes import bp as feature_flags_bp
from app.notaris.modules.documents.routes import bp as documents_bp
from app.notaris.modules.appointments.routes import bp as appointments_bp
from app.notaris.modules.ledger.routes import bp as ledger_bp
from app.notaris.modules.invoices.routes import bp as invoices_bp
from app.notaris.modules.messaging.routes import bp as messaging_bp
from app.notaris.modules.chatbot.routes import bp as chatbot_bp
from app.notaris.modules.reports.routes import bp as reports_bp

# tables whose absence means migrations have not been applied
CORE_TABLES = (
    "users",
    "site_settings",
    "licenses",
    "documents",
    "appointments",
    "repertorium",
    "invoices",
    "conversations",
    "chat_sessions",
)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    # CSRF protection (minimal)
    from app.notaris.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # login/logout/register and friends authenticate the session itself
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return jsonify({"error": "CSRF token missing or invalid."}), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    for bp in (
        account_bp,
        license_bp,
        feature_flags_bp,
        documents_bp,
        appointments_bp,
        ledger_bp,
        invoices_bp,
        messaging_bp,
        chatbot_bp,
        reports_bp,
    ):
        app.register_blueprint(bp, url_prefix="/api")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    # Schema health: detect a database that has not been migrated.
    app.config.setdefault("_schema_health_ok", True)
    app.config.setdefault("_schema_health_missing", [])

    def _run_schema_health_check() -> None:
        missing: list[str] = []
        try:
            insp = sa_inspect(app.extensions["sqlalchemy_engine"])
            missing = [t for t in CORE_TABLES if not insp.has_table(t)]
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)
        if missing:
            app.config["_schema_health_ok"] = False
            app.config["_schema_health_missing"] = missing
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
        else:
            app.config["_schema_health_ok"] = True
            app.config["_schema_health_missing"] = []

    _run_schema_health_check()
    app.extensions["schema_health_check"] = _run_schema_health_check

    @app.before_request
    def _schema_health_guardrail():  # type: ignore[no-redef]
        if app.config.get("_schema_health_ok"):
            return None
        if request.path.startswith("/api/"):
            return jsonify({"error": "schema out of date", "missing": app.config.get("_schema_health_missing") or []}), 500
        return None

    def _json_error(e: HTTPException, fallback: str):
        return jsonify({"error": e.description or fallback}), e.code

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        return _json_error(e, "Bad request")

    @app.errorhandler(401)
    def _err_401(e):  # type: ignore[no-redef]
        return _json_error(e, "Unauthorized")

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing_role = getattr(g, "missing_role", None)
        missing_feature = getattr(g, "missing_feature", None)
        if missing_role or missing_feature:
            app.logger.warning(
                "Forbidden: missing_role=%s missing_feature=%s request_id=%s",
                missing_role,
                missing_feature,
                getattr(g, "request_id", None),
            )
        return _json_error(e, "Forbidden")

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return _json_error(e, "Not found")

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return _json_error(e, "Method not allowed")

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return _json_error(e, "File too large.")

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error"}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
