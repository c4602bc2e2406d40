import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from app.crm.auth import bp as auth_bp, load_current_user
from app.crm.config import load_config
from app.crm.db import init_db, teardown_db_session
from app.crm.errors import HTTP_STATUS_CODES, CRMError, Internal
from app.crm.modules.customer_history.admin import bp as customer_history_bp
from app.crm.modules.customers.admin import bp as customers_bp
from app.crm.modules.reports.admin import bp as reports_bp
from app.crm.modules.users.admin import bp as users_bp
from app.crm.routes import bp as routes_bp


def _error_body(code: str, message: str) -> dict:
    return {"code": code, "message": message, "request_id": getattr(g, "request_id", None)}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(seconds=app.config["TOKEN_MAX_AGE_SECONDS"])
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

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

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(users_bp, url_prefix="/auth")
    app.register_blueprint(customers_bp)
    app.register_blueprint(customer_history_bp)
    app.register_blueprint(reports_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.after_request
    def _echo_request_id(resp):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        if rid:
            resp.headers["X-Request-ID"] = rid
        return resp

    @app.errorhandler(CRMError)
    def _err_crm(e: CRMError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("%s on %s %s (request_id=%s): %s", e.code, request.method, request.path, getattr(g, "request_id", None), e.message)
        return {**e.to_dict(), "request_id": getattr(g, "request_id", None)}, e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        status = e.code or 500
        code = HTTP_STATUS_CODES.get(status, "internal" if status >= 500 else "invalid_argument")
        return _error_body(code, e.description or e.name), status

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in logs.
        app.logger.exception("Unhandled exception (request_id=%s)", getattr(g, "request_id", None))
        return _error_body(Internal.code, Internal.default_message), 500

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
