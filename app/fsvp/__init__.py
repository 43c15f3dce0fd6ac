import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from app.fsvp.config import load_config
from app.fsvp.db import init_db, rollback_db_session, teardown_db_session
from app.fsvp.errors import ComplianceError
from app.fsvp.routes import bp as routes_bp
from app.fsvp.auth import bp as auth_bp, load_current_user
from app.fsvp.modules.vendors.api import bp as vendors_bp
from app.fsvp.modules.products.api import bp as products_bp
from app.fsvp.modules.documents.api import bp as documents_bp
from app.fsvp.modules.audit_trail.api import bp as audit_trail_bp

_HEALTH_PATHS = ("/health", "/healthz")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.json.sort_keys = False

    level = getattr(logging, app.config["LOG_LEVEL"], logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger("app.fsvp").setLevel(level)

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

    # Storage config check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(vendors_bp, url_prefix="/api")
    app.register_blueprint(products_bp, url_prefix="/api")
    app.register_blueprint(documents_bp, url_prefix="/api")
    app.register_blueprint(audit_trail_bp, url_prefix="/api")

    def _load_user_wrapper():
        if request.path.startswith(_HEALTH_PATHS):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)

    from app.fsvp.security import validate_csrf

    @app.before_request
    def _csrf_guard():
        if not app.config.get("CSRF_ENABLED"):
            return None
        if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
            return None
        # login/register/logout run before a token can exist
        if request.path.startswith("/api/auth/"):
            return None
        if not validate_csrf(request):
            app.logger.warning("CSRF token missing or invalid (path=%s request_id=%s)", request.path, getattr(g, "request_id", None))
            return {"message": "CSRF token missing or invalid."}, 403
        return None

    @app.after_request
    def _request_id_header(response):
        rid = getattr(g, "request_id", None)
        if rid:
            response.headers["X-Request-ID"] = rid
        return response

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ComplianceError)
    def _err_compliance(e: ComplianceError):  # type: ignore[no-redef]
        rollback_db_session()
        if e.status_code >= 500:
            app.logger.exception("Internal error (request_id=%s): %s", getattr(g, "request_id", None), e.message)
            return {"message": "Internal server error"}, e.status_code
        return {"message": e.message}, e.status_code

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        max_mb = int(app.config["MAX_UPLOAD_BYTES"]) // (1024 * 1024)
        return {"message": f"File too large. Maximum size is {max_mb}MB."}, 413

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return {"message": e.description or e.name}, e.code or 500

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        rollback_db_session()
        # Ensure stack trace shows in logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return {"message": "Internal server error"}, 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
