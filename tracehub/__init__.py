"""
TraceHub
Flask Application Factory.

Usage:
    from tracehub import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from tracehub.config import config
from tracehub.middleware.jwt_auth import init_jwt_middleware
from tracehub.middleware.logging_config import configure_logging
from tracehub.middleware.timing import init_request_timing
from tracehub.models import db
from tracehub.utils.errors import register_error_handlers

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


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to the APP_ENV env var, or "development".

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiate so ProductionConfig can refuse to start without its secrets
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(os.path.dirname(uri[len("sqlite:///"):]), exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing + acting principal ────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from tracehub.models import audit as _audit_models            # noqa: F401
    from tracehub.models import auth as _auth_models              # noqa: F401
    from tracehub.models import requirement as _requirement_models  # noqa: F401
    from tracehub.models import risk as _risk_models              # noqa: F401
    from tracehub.models import sequence as _sequence_models      # noqa: F401
    from tracehub.models import testing as _testing_models        # noqa: F401
    from tracehub.models import trace as _trace_models            # noqa: F401

    if app.config.get("AUTO_CREATE_TABLES"):
        with app.app_context():
            db.create_all()
            app.logger.debug("db.create_all() completed")

    # ── Blueprints ───────────────────────────────────────────────────────
    from tracehub.blueprints.lifecycle_bp import lifecycle_bp
    from tracehub.blueprints.testing_bp import testing_bp
    from tracehub.blueprints.traceability_bp import traceability_bp

    app.register_blueprint(lifecycle_bp)
    app.register_blueprint(traceability_bp)
    app.register_blueprint(testing_bp)

    register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("create-user")
    def create_user_cmd():
        """Create a local user (reads TRACEHUB_USER_EMAIL / TRACEHUB_USER_PASSWORD)."""
        from tracehub.services.auth_service import create_user

        user = create_user(
            os.environ["TRACEHUB_USER_EMAIL"],
            os.environ["TRACEHUB_USER_PASSWORD"],
            full_name=os.getenv("TRACEHUB_USER_NAME"),
        )
        logger.info("Created user %s (id=%s)", user.email, user.id)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "TraceHub"}

    return app
