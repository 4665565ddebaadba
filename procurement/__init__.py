"""
Office Procurement Platform
Flask Application Factory.

Usage:
    from procurement import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from procurement.config import config
from procurement.middleware.jwt_auth import init_jwt_middleware
from procurement.middleware.logging_config import configure_logging
from procurement.middleware.org_context import init_org_context
from procurement.middleware.rate_limiter import init_rate_limits
from procurement.middleware.timing import init_request_timing
from procurement.models import db
from procurement.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


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
    default_limits=[],                     # no global limit - credential routes only
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: "development", "testing" or "production".
                     Defaults to the APP_ENV env variable.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    os.makedirs(app.instance_path, exist_ok=True)

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

    # ── Middleware chain: timing → JWT → organization context ───────────
    init_request_timing(app)
    init_jwt_middleware(app)
    init_org_context(app)

    @app.before_request
    def _guard_request():
        # Content-Type validation for mutating methods
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.get_data(cache=True) and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    register_error_handlers(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from procurement.models import audit as _audit_models          # noqa: F401
    from procurement.models import auth as _auth_models            # noqa: F401
    from procurement.models import reference as _reference_models  # noqa: F401
    from procurement.models import request as _request_models      # noqa: F401
    from procurement.models import workflow as _workflow_models    # noqa: F401

    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from procurement.blueprints.auth_bp import auth_bp
    from procurement.blueprints.end_users_bp import end_users_bp
    from procurement.blueprints.health_bp import health_bp
    from procurement.blueprints.permissions_bp import permissions_bp
    from procurement.blueprints.reference_bp import reference_bp
    from procurement.blueprints.requests_bp import requests_bp
    from procurement.blueprints.roles_bp import roles_bp
    from procurement.blueprints.workflows_bp import workflows_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(roles_bp)
    app.register_blueprint(permissions_bp)
    app.register_blueprint(end_users_bp)
    app.register_blueprint(workflows_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(reference_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-permissions")
    def seed_permissions_cmd():
        """Insert any missing permission catalogue rows."""
        from procurement.services.organization_service import seed_permission_catalogue
        count = seed_permission_catalogue()
        db.session.commit()
        logger.info("Seeded %s new permissions.", count)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
