"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def rate_limit_key():
    """Limit per actor when one is resolved, else per remote IP."""
    actor_id = getattr(g, "actor_id", None)
    if actor_id:
        return f"user:{actor_id}"
    return flask_request.remote_addr or "unknown"


def _is_read_request() -> bool:
    return flask_request.method in ("GET", "HEAD", "OPTIONS")


def _is_write_request() -> bool:
    return not _is_read_request()


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per actor, falling back to remote IP):
        - Write endpoints:  60/minute  (POST/PUT/DELETE)
        - Read endpoints:   200/minute (GET — generous for the SPA)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("project_status")
    if bp:
        limiter.limit(WRITE_LIMIT, key_func=rate_limit_key, exempt_when=_is_read_request)(bp)
        limiter.limit(READ_LIMIT, key_func=rate_limit_key, exempt_when=_is_write_request)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — write: %s, read: %s", WRITE_LIMIT, READ_LIMIT)
