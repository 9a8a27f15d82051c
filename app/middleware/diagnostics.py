"""
Startup diagnostics — runs once when the Flask app starts.

Checks the database and the loaded status catalog, and logs a summary banner.
"""

import logging
import sys

from flask import Flask

from app.models import db

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except Exception as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        # ── Status catalog ───────────────────────────────────────────
        catalog = app.extensions.get("status_catalog")
        if catalog is None:
            catalog_status = "NOT LOADED"
            issues.append("Status catalog not loaded — run 'flask seed-status-catalog'")
        else:
            catalog_status = f"{len(catalog)} statuses, {len(catalog.transitions)} transitions"

        # ── Notification hooks ───────────────────────────────────────
        dispatcher = app.extensions.get("notification_dispatcher")
        hooks = ", ".join(h.name for h in dispatcher.hooks) if dispatcher else "none"

        auth_enabled = str(app.config.get("API_AUTH_ENABLED", "false")).lower() == "true"

        # ── Banner ───────────────────────────────────────────────────
        db_line = f"{db_type} ({db_status})"
        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  Client Portal — Startup Diagnostics                         ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {db_line:<46s}║
║  Catalog     : {catalog_status:<46s}║
║  Hooks       : {hooks[:46]:<46s}║
║  API keys    : {'ENABLED' if auth_enabled else 'DISABLED (X-User-Id)':<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("All startup checks passed")
