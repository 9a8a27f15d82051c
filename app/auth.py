"""
Client Portal
Authentication & Authorization Middleware.

Provides:
    - Actor resolution into g.current_user for every /api/v1/* request
    - Role-based access control decorator (admin | client)
    - Project ownership check for client users
    - CSRF mitigation for state-changing requests (JSON Content-Type only)

Identity sources:
    - API_AUTH_ENABLED=true  → X-API-Key header (or ?api_key=) mapped to a user id
    - API_AUTH_ENABLED=false → X-User-Id header (development and tests)

Configuration (env vars / app config):
    API_KEYS          — comma-separated "<key>:<user_id>" pairs
                        e.g. "k-admin-1:1,k-acme-7:7"
    API_AUTH_ENABLED  — set to "false" to trust X-User-Id (development only)
"""

import functools
import logging
import os
from typing import Optional

from flask import current_app, g, jsonify, request

from app.models import db
from app.models.portal import Client, User
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Routes under /api/v1 reachable without an actor
_PUBLIC_PREFIXES = ("/api/v1/health",)


def _parse_api_keys() -> dict[str, int]:
    """
    Parse API_KEYS into {key: user_id}.

    Format: "key1:1,key2:7". Entries with a non-numeric user id are skipped.
    """
    raw = os.getenv("API_KEYS") or current_app.config.get("API_KEYS", "")
    if not raw or not raw.strip():
        return {}

    keys = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, _, user_id = entry.rpartition(":")
        if not key or not user_id.strip().isdigit():
            logger.warning("Ignoring malformed API_KEYS entry '%s...'", entry[:8])
            continue
        keys[key.strip()] = int(user_id)
    return keys


def _is_auth_enabled() -> bool:
    """Check whether API-key authentication is enabled (env var or app config)."""
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in ("false", "0", "no", "off")
    try:
        return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in (
            "false", "0", "no", "off",
        )
    except RuntimeError:
        # Outside app context
        return True


def _get_api_key_from_request() -> Optional[str]:
    """Extract API key from request header or query parameter."""
    key = request.headers.get("X-API-Key", "").strip()
    if key:
        return key
    return request.args.get("api_key", "").strip() or None


def _resolve_user_id() -> tuple[Optional[int], Optional[tuple]]:
    """Return (user_id, None) or (None, error_response)."""
    if not _is_auth_enabled():
        raw = request.headers.get("X-User-Id", "").strip()
        if not raw:
            return None, (jsonify({"error": "Authentication required. Provide X-User-Id header."}), 401)
        if not raw.isdigit():
            return None, (jsonify({"error": "X-User-Id must be an integer"}), 400)
        return int(raw), None

    api_key = _get_api_key_from_request()
    if not api_key:
        return None, (jsonify({"error": "Authentication required. Provide X-API-Key header."}), 401)

    api_keys = _parse_api_keys()
    if not api_keys:
        logger.error("API_KEYS is not configured but API_AUTH_ENABLED=true")
        return None, (jsonify({"error": "Server authentication not configured"}), 500)

    user_id = api_keys.get(api_key)
    if user_id is None:
        logger.warning("Invalid API key attempt: %s...", api_key[:8])
        return None, (jsonify({"error": "Invalid API key"}), 401)
    return user_id, None


def current_user() -> Optional[User]:
    return getattr(g, "current_user", None)


# ── Authorization ────────────────────────────────────────────────────────────

def require_role(role: str):
    """
    Decorator: require the resolved actor to hold *role*.

    Usage:
        @bp.route("/projects/<int:project_id>/status", methods=["POST"])
        @require_role("admin")
        def transition(project_id): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            if user.role != role:
                logger.warning(
                    "Access denied: user %s (%s) tried to access '%s'-only endpoint %s",
                    user.id, user.role, role, request.path,
                )
                return api_error(E.FORBIDDEN, "Insufficient permissions")
            return f(*args, **kwargs)
        return decorated
    return decorator


def can_access_project(user: Optional[User], project) -> bool:
    """Admins see everything; a client only the projects of their own client records."""
    if user is None or project is None:
        return False
    if user.is_admin:
        return True
    client = db.session.get(Client, project.client_id)
    return client is not None and client.user_id == user.id


# ── CSRF protection for API ──────────────────────────────────────────────────

def _check_content_type():
    """
    For state-changing requests (POST/PUT/PATCH/DELETE), require
    Content-Type: application/json. HTML forms cannot send that type.
    """
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return jsonify({
                "error": "Content-Type must be application/json for state-changing requests"
            }), 415
    return None


# ── Before-request hook installer ────────────────────────────────────────────

def init_auth(app):
    """
    Install authentication middleware on the Flask app.

    - Resolves g.current_user for /api/v1/* routes
    - Skips health routes and OPTIONS pre-flight requests
    """
    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path.startswith(_PUBLIC_PREFIXES):
            return None
        if request.method == "OPTIONS":
            return None

        csrf_error = _check_content_type()
        if csrf_error:
            return csrf_error

        user_id, error = _resolve_user_id()
        if error:
            return error

        user = db.session.get(User, user_id)
        if user is None:
            logger.warning("Request for unknown user id %s", user_id)
            return api_error(E.UNAUTHENTICATED, "Unknown user")

        g.current_user = user
        g.actor_id = user.id
        return None

    logger.info("Auth middleware installed (api_keys=%s)", _is_auth_enabled())
