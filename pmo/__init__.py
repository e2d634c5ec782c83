"""
PMO Portfolio API
Flask Application Factory.

Usage:
    from pmo import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from pmo.config import config
from pmo.middleware.error_handlers import register_error_handlers
from pmo.middleware.jwt_auth import init_jwt_middleware
from pmo.middleware.logging_config import configure_logging
from pmo.middleware.rate_limiter import init_rate_limits
from pmo.middleware.timing import init_request_timing
from pmo.models import db
from pmo.services.audit_service import AuditTrail
from pmo.services.file_store import FileStore

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
    default_limits=[],                     # no global limit: apply per-blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)
audit_trail = AuditTrail()
file_store = FileStore()


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
    audit_trail.init_app(app)
    file_store.init_app(app)

    # ── Request timing, then authentication ──────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    register_error_handlers(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from pmo.models import audit as _audit_models           # noqa: F401
    from pmo.models import auth as _auth_models             # noqa: F401
    from pmo.models import contract as _contract_models     # noqa: F401
    from pmo.models import document as _document_models     # noqa: F401
    from pmo.models import project as _project_models       # noqa: F401

    # ── Auto-create tables and reference rows ────────────────────────────
    with app.app_context():
        from pmo.services.reference_service import seed_reference_data

        db.create_all()
        seed_reference_data()

    # ── Blueprints ───────────────────────────────────────────────────────
    from pmo.blueprints.auth_bp import auth_bp
    from pmo.blueprints.dashboard_bp import dashboard_bp
    from pmo.blueprints.documents_bp import documents_bp
    from pmo.blueprints.health_bp import health_bp
    from pmo.blueprints.projects_bp import projects_bp
    from pmo.blueprints.providers_bp import providers_bp
    from pmo.blueprints.reference_bp import reference_bp
    from pmo.blueprints.reports_bp import reports_bp
    from pmo.blueprints.users_bp import users_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(providers_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(reference_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-reference")
    def seed_reference_cmd():
        """Insert missing roles, project statuses and directions."""
        from pmo.services.reference_service import seed_reference_data
        inserted = seed_reference_data()
        logger.info("Reference data: %s", inserted)

    @app.cli.command("create-admin")
    def create_admin_cmd():
        """Create a functional admin from ADMIN_EMAIL / ADMIN_PASSWORD."""
        from pmo.services.user_service import bootstrap_admin
        user = bootstrap_admin(os.environ["ADMIN_EMAIL"], os.environ["ADMIN_PASSWORD"])
        logger.info("Functional admin ready: %s", user.email)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
