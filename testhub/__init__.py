"""
testhub
Flask Application Factory.

Usage:
    from testhub import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import atexit
import logging
import os

from flask import Flask, abort, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from testhub.config import config
from testhub.core.exceptions import (
    ConflictError,
    ForbiddenError,
    ImportFailedError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from testhub.middleware.jwt_auth import init_jwt_middleware
from testhub.middleware.logging_config import configure_logging
from testhub.middleware.rate_limiter import init_rate_limits
from testhub.middleware.timing import init_query_timing, init_request_timing
from testhub.models import db
from testhub.services.storage_service import build_storage
from testhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # limits are attached per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)

# Mutating endpoints that accept a raw (non-JSON) request body
_RAW_BODY_PREFIXES = ("/api/v1/imports/",)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Object storage (one client per app) ──────────────────────────────
    storage = build_storage(app.config)
    app.extensions["object_storage"] = storage
    atexit.register(storage.close)

    # ── Request / query timing ───────────────────────────────────────────
    init_request_timing(app)
    with app.app_context():
        init_query_timing(db.engine, app.config.get("SLOW_QUERY_MS", 1000))

    # ── JWT auth middleware (sets g.principal) ───────────────────────────
    init_jwt_middleware(app)

    # ── Request guard (Content-Type on mutating API calls) ───────────────
    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            if request.path.startswith(_RAW_BODY_PREFIXES):
                return None
            ct = request.content_type or ""
            if request.content_length and "json" not in ct and "multipart/form-data" not in ct:
                abort(415, description="Content-Type must be application/json")
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from testhub.models import auth as _auth_models                # noqa: F401
    from testhub.models import test_group as _test_group_models    # noqa: F401
    from testhub.models import test_case as _test_case_models      # noqa: F401
    from testhub.models import test_result as _test_result_models  # noqa: F401
    from testhub.models import import_result as _import_models     # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from testhub.blueprints.auth_bp import auth_bp
    from testhub.blueprints.import_bp import import_bp
    from testhub.blueprints.report_bp import report_bp
    from testhub.blueprints.result_bp import result_bp
    from testhub.blueprints.test_case_bp import test_case_bp
    from testhub.blueprints.test_group_bp import test_group_bp
    from testhub.blueprints.upload_bp import upload_bp
    from testhub.blueprints.user_bp import user_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(test_group_bp)
    app.register_blueprint(test_case_bp)
    app.register_blueprint(result_bp)
    app.register_blueprint(report_bp)
    app.register_blueprint(import_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(upload_bp)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "testhub"}

    _register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app


def _register_error_handlers(app):
    """Map service exceptions and HTTP errors to JSON bodies."""

    @app.errorhandler(UnauthorizedError)
    def _unauthorized(e):
        return api_error(E.UNAUTHORIZED, str(e))

    @app.errorhandler(ForbiddenError)
    def _forbidden(e):
        details = None
        if e.test_group_id is not None:
            details = {"required": e.action, "test_group_id": e.test_group_id}
        return api_error(E.FORBIDDEN, str(e), details=details)

    @app.errorhandler(NotFoundError)
    def _not_found(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(ValidationError)
    def _validation(e):
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)

    @app.errorhandler(ConflictError)
    def _conflict(e):
        code = E.CONFLICT_VERSION if e.field == "version" else E.CONFLICT_DUPLICATE
        return api_error(code, str(e), details={"field": e.field, "value": e.value})

    @app.errorhandler(ImportFailedError)
    def _import_failed(e):
        return api_error(E.IMPORT_FAILED, str(e))

    @app.errorhandler(StorageError)
    def _storage(e):
        logger.error("Storage failure on %s %s: %s", request.method, request.path, e)
        return api_error(E.STORAGE, "Storage operation failed")

    @app.errorhandler(SQLAlchemyError)
    def _database(e):
        db.session.rollback()
        logger.exception("Database failure on %s %s", request.method, request.path)
        return api_error(E.DATABASE, "Database operation failed")

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "path": request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large")

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return jsonify({"error": e.description}), 415

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests", "retry_after": e.description}), 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
