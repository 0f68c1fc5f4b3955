"""
Field Activity Call Sampling Service
Authentication & Authorization Middleware.

Provides:
    - API key authentication via X-API-Key header
    - Role → permission mapping and the ``require_permission`` decorator
    - Content-Type enforcement for state-changing requests

Security model:
    - All /api/v1/* endpoints require a valid API key (except /api/v1/health)
    - Sampling Control endpoints additionally require ``config.sampling``
    - The acting user is taken from the X-User header and recorded on runs

Configuration (env vars):
    API_KEYS: comma-separated list of valid API keys
                        e.g. "key1:mis_admin,key2:team_lead,key3:cc_agent"
                        Keys without a role default to 'cc_agent'.
    API_AUTH_ENABLED: set to "false" to disable auth (development only)
"""

import functools
import logging
import os
from typing import Optional

from flask import current_app, g, request

from fieldcall.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── Roles & permissions ──────────────────────────────────────────────────────

ROLES = {"mis_admin", "team_lead", "cc_agent"}
DEFAULT_ROLE = "cc_agent"

ROLE_PERMISSIONS = {
    "cc_agent": {"tasks.view.own", "tasks.submit"},
    "team_lead": {"tasks.view.own", "tasks.view.team", "tasks.reassign", "config.sampling"},
    "mis_admin": {
        "tasks.view.own", "tasks.view.team", "tasks.view.all", "tasks.reassign",
        "config.sampling", "config.system",
    },
}


def _parse_api_keys() -> dict[str, str]:
    """
    Parse API_KEYS env var into {key: role} mapping.

    Format: "key1:mis_admin,key2:team_lead"
    """
    raw = os.getenv("API_KEYS", "")
    if not raw.strip():
        return {}

    keys = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if ":" in entry:
            key, role = entry.rsplit(":", 1)
            role = role.strip().lower()
            if role not in ROLES:
                logger.warning("Unknown role '%s' for API key, defaulting to '%s'", role, DEFAULT_ROLE)
                role = DEFAULT_ROLE
            keys[key.strip()] = role
        else:
            keys[entry] = DEFAULT_ROLE
    return keys


def _is_auth_enabled() -> bool:
    """Check whether authentication is enabled (env var or app config)."""
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in ("false", "0", "no", "off")
    try:
        return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in ("false", "0", "no", "off")
    except RuntimeError:
        # Outside app context
        return True


def _get_api_key_from_request() -> Optional[str]:
    """Extract API key from the request header."""
    return request.headers.get("X-API-Key", "").strip() or None


def current_user_id() -> str:
    """Identifier of the acting user (X-User header, default 'system')."""
    return getattr(g, "current_user_id", None) or request.headers.get("X-User", "").strip() or "system"


def has_permission(role: str | None, codename: str) -> bool:
    return codename in ROLE_PERMISSIONS.get(role or "", set())


_STATUS_CODES = {401: E.UNAUTHORIZED, 403: E.FORBIDDEN, 415: E.UNSUPPORTED_MEDIA, 500: E.INTERNAL}


def _auth_error(message: str, status: int):
    return api_error(_STATUS_CODES[status], message, status=status)


# ── Decorators ───────────────────────────────────────────────────────────────

def require_permission(codename: str):
    """
    Decorator: require the authenticated role to hold a permission.

    Usage:
        @sampling_bp.route("/run", methods=["POST"])
        @require_permission("config.sampling")
        def run_sampling(): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            role = getattr(g, "current_user_role", None)
            if not role:
                return _auth_error("Authentication required", 401)
            if not has_permission(role, codename):
                logger.warning(
                    "Access denied: role '%s' lacks '%s' on %s",
                    role, codename, request.path,
                )
                return _auth_error("Insufficient permissions", 403)
            return f(*args, **kwargs)
        return decorated
    return decorator


# ── CSRF protection for API ──────────────────────────────────────────────────

def _check_content_type():
    """
    For state-changing requests (POST/PUT/PATCH/DELETE), require
    Content-Type: application/json when a body is present.
    """
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return _auth_error("Content-Type must be application/json for state-changing requests", 415)
    return None


# ── App-level before_request hook installer ──────────────────────────────────

def init_auth(app):
    """
    Install authentication middleware on the Flask app.

    Sets g.current_user_role and g.current_user_id for API routes.
    """
    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path == "/api/v1/health":
            return None
        if request.method == "OPTIONS":
            return None

        csrf_error = _check_content_type()
        if csrf_error:
            return csrf_error

        g.current_user_id = request.headers.get("X-User", "").strip() or "system"

        if not _is_auth_enabled():
            g.current_user_role = "mis_admin"
            return None

        api_key = _get_api_key_from_request()
        if not api_key:
            return _auth_error("Authentication required. Provide X-API-Key header.", 401)

        api_keys = _parse_api_keys()
        if not api_keys:
            logger.error("API_KEYS env var is not configured but API_AUTH_ENABLED=true")
            return _auth_error("Server authentication not configured", 500)

        role = api_keys.get(api_key)
        if role is None:
            logger.warning("Invalid API key attempt: %s...", api_key[:8])
            return _auth_error("Invalid API key", 401)

        g.current_user_role = role
        return None

    logger.info("Auth middleware installed (enabled=%s)",
                str(app.config.get("API_AUTH_ENABLED", "true")).lower() not in ("false", "0", "no", "off"))
