"""
EWC API Tester
Flask Application Factory.

Usage:
    from ewc_tester import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from ewc_tester.config import config
from ewc_tester.middleware.jwt_auth import init_jwt_middleware
from ewc_tester.middleware.logging_config import configure_logging
from ewc_tester.middleware.rate_limiter import init_rate_limits
from ewc_tester.middleware.security_headers import init_security_headers
from ewc_tester.middleware.timing import init_request_timing
from ewc_tester.models import db

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
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


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
    # Instantiated so ProductionConfig can refuse to start without its secrets
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)
    if config_name == "development" and not os.getenv("ENCRYPTION_KEY"):
        app.logger.warning("ENCRYPTION_KEY not set; using the development key")

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware ───────────────────────────────────────────────────────
    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from ewc_tester.models import auth as _auth_models             # noqa: F401
    from ewc_tester.models import environment as _environment_models  # noqa: F401
    from ewc_tester.models import testing as _testing_models       # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if config_name != "testing":
        with app.app_context():
            uri = app.config["SQLALCHEMY_DATABASE_URI"]
            if uri.startswith("sqlite:///") and ":memory:" not in uri:
                os.makedirs(os.path.dirname(uri[len("sqlite:///"):]), exist_ok=True)
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from ewc_tester.blueprints import register_error_handlers
    from ewc_tester.blueprints.auth_bp import auth_bp
    from ewc_tester.blueprints.credential_bp import credential_bp
    from ewc_tester.blueprints.environment_bp import environment_bp
    from ewc_tester.blueprints.health_bp import health_bp
    from ewc_tester.blueprints.report_bp import report_bp
    from ewc_tester.blueprints.result_bp import result_bp
    from ewc_tester.blueprints.salesforce_auth_bp import salesforce_auth_bp
    from ewc_tester.blueprints.tests_bp import tests_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(salesforce_auth_bp)
    app.register_blueprint(environment_bp)
    app.register_blueprint(credential_bp)
    app.register_blueprint(tests_bp)
    app.register_blueprint(result_bp)
    app.register_blueprint(report_bp)

    register_error_handlers(app)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        original = getattr(e, "original_exception", None) or e
        logger.error("500 error on %s %s: %s", request.method, request.path, original,
                     exc_info=original if isinstance(original, BaseException) else None)
        db.session.rollback()
        return {"error": str(original) or "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
