"""
CivicFix
Admin API authentication.

Only ``/api/v1/admin/*`` is guarded. Citizens are never authenticated:
they are correlated by user id / device id (see services.identity), and the
health endpoints stay open for probes.

Keys come from the ``API_KEYS`` environment variable, ``<key>:<role>``
comma-separated, e.g. ``"k1:admin,k2:editor,k3"``. A key without a role is a
viewer. Roles nest: admin ⊃ editor ⊃ viewer. Reads need viewer, mutations
editor, deletes admin (enforced per route with ``require_role``).

``API_AUTH_ENABLED=false`` turns the guard off; every request then acts as
admin. The environment variable wins over app config.
"""

import functools
import logging
import os

from flask import current_app, g, jsonify, request

logger = logging.getLogger(__name__)

ADMIN_PREFIX = "/api/v1/admin/"
DEFAULT_ROLE = "viewer"
ROLE_RANK = {"viewer": 1, "editor": 2, "admin": 3}

_FALSEY = ("false", "0", "no", "off")
_WRITE_METHODS = ("POST", "PUT", "PATCH", "DELETE")
_ACCEPTED_BODIES = ("application/json", "multipart/form-data")


def load_api_keys() -> dict[str, str]:
    """``API_KEYS`` → ``{key: role}``. Unknown roles degrade to viewer."""
    keys = {}
    for entry in os.getenv("API_KEYS", "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, _, role = entry.rpartition(":") if ":" in entry else (entry, "", DEFAULT_ROLE)
        role = role.strip().lower()
        if role not in ROLE_RANK:
            logger.warning("API key with unknown role '%s' treated as %s", role, DEFAULT_ROLE)
            role = DEFAULT_ROLE
        keys[key.strip()] = role
    return keys


def auth_enabled() -> bool:
    flag = os.getenv("API_AUTH_ENABLED") or str(current_app.config.get("API_AUTH_ENABLED", "true"))
    return flag.lower() not in _FALSEY


def _presented_key():
    # ?api_key= exists for EventSource clients, which cannot set headers
    return (request.headers.get("X-API-Key") or request.args.get("api_key") or "").strip() or None


def _reject_unsupported_body():
    if request.method not in _WRITE_METHODS or not request.content_length:
        return None
    content_type = request.content_type or ""
    if any(accepted in content_type for accepted in _ACCEPTED_BODIES):
        return None
    return jsonify({"error": "Content-Type must be application/json or multipart/form-data"}), 415


def require_role(minimum_role: str):
    """Route decorator: the caller's role must rank at least ``minimum_role``."""
    needed = ROLE_RANK[minimum_role]

    def decorator(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            role = getattr(g, "current_user_role", None)
            if not role:
                return jsonify({"error": "Authentication required"}), 401
            if ROLE_RANK.get(role, 0) < needed:
                logger.warning("Role %s refused on %s %s (needs %s)",
                               role, request.method, request.path, minimum_role)
                return jsonify({"error": "Insufficient permissions"}), 403
            return view(*args, **kwargs)
        return wrapper
    return decorator


def current_actor(default="Admin") -> str:
    """Name recorded in the activity log: X-Actor header, else role-qualified default."""
    actor = (request.headers.get("X-Actor") or "").strip()
    if actor:
        return actor[:200]
    role = getattr(g, "current_user_role", None)
    if role and role != "admin":
        return f"{default} ({role})"
    return default


def init_auth(app):
    """Install the admin guard as a ``before_request`` hook."""

    @app.before_request
    def _guard_admin_api():
        if not request.path.startswith(ADMIN_PREFIX) or request.method == "OPTIONS":
            return None

        body_error = _reject_unsupported_body()
        if body_error:
            return body_error

        if not auth_enabled():
            g.current_user_role = "admin"
            return None

        key = _presented_key()
        if not key:
            return jsonify({"error": "Authentication required. Provide X-API-Key header."}), 401

        keys = load_api_keys()
        if not keys:
            logger.error("API auth is enabled but API_KEYS is empty")
            return jsonify({"error": "Server authentication not configured"}), 500

        role = keys.get(key)
        if role is None:
            logger.warning("Rejected API key %s...", key[:4])
            return jsonify({"error": "Invalid API key"}), 401

        g.current_user_role = role
        return None

    with app.app_context():
        logger.info("Admin API guard installed (enabled=%s)", auth_enabled())
