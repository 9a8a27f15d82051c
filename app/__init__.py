"""
Client Portal
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event

from app.auth import init_auth
from app.config import config
from app.middleware.diagnostics import run_startup_diagnostics
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.models import db

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
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def load_workflow_catalog(app):
    """Seed (if empty), load and validate the status catalog into app.extensions.

    Must run inside an app context. Raises CatalogConfigurationError when the
    catalog is unusable; the app refuses to start in that case.
    """
    from app.services.status_catalog import load_status_catalog, seed_status_catalog, validate_catalog

    if seed_status_catalog():
        db.session.commit()
    catalog = load_status_catalog()
    validate_catalog(catalog)
    app.extensions["status_catalog"] = catalog
    return catalog


def _register_cli(app):
    @app.cli.command("seed-status-catalog")
    def seed_status_catalog_cmd():
        """Insert the default status catalog (no-op when already seeded)."""
        from app.services.status_catalog import seed_status_catalog
        count = seed_status_catalog()
        db.session.commit()
        logger.info("Seeded %s status types.", count)

    @app.cli.command("backfill-project-status")
    @click.option("--actor-id", type=int, default=None, help="User recorded as the author (default: first admin).")
    def backfill_project_status_cmd(actor_id):
        """Initialize status data for projects that have none."""
        from app.models.portal import User
        from app.services.notification_dispatch import NotificationDispatcher
        from app.services.project_service import backfill_project_statuses
        from app.services.project_status_service import ProjectStatusService
        from app.services.status_catalog import get_status_catalog

        if actor_id is None:
            admin = User.query.filter_by(role="admin").order_by(User.id).first()
            if admin is None:
                raise click.ClickException("No admin user found; pass --actor-id")
            actor_id = admin.id

        # Backfill must not message every client about a status they already had
        svc = ProjectStatusService(get_status_catalog(), NotificationDispatcher([], run_async=False))
        count = backfill_project_statuses(svc, actor_id)
        logger.info("Backfilled status data for %s projects.", count)


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

    # ── Request timing + actor resolution ────────────────────────────────
    init_request_timing(app)
    init_auth(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)  # 1 MB

    @app.before_request
    def _guard_request():
        from flask import abort
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import portal as _portal_models                  # noqa: F401
    from app.models import project_status as _project_status_models  # noqa: F401

    # ── Tables + status catalog ──────────────────────────────────────────
    with app.app_context():
        db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
        if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
            os.makedirs(os.path.dirname(db_uri[len("sqlite:///"):]) or ".", exist_ok=True)
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

        load_workflow_catalog(app)

    # ── Notification dispatch ────────────────────────────────────────────
    from app.services.notification_dispatch import build_dispatcher
    app.extensions["notification_dispatcher"] = build_dispatcher(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.health_bp import health_bp
    from app.blueprints.project_status_bp import project_status_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(project_status_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    _register_cli(app)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description or "Unsupported media type"}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
