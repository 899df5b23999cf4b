"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        - app name + status
    GET /api/v1/health/ready  - readiness probe, 200 while the process serves
    GET /api/v1/health/live   - dependency status (database, upload folder,
                                rate-limit store, change feed); 503 when degraded
    GET /api/v1/health/ai     - classifier configuration (key never returned)
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from civicfix.ai.classifier import describe_configuration
from civicfix.models import db
from civicfix.services.realtime import change_feed

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


def _check_database():
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}, False
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}, True


def _check_uploads():
    folder = current_app.config["UPLOAD_FOLDER"]
    if os.path.isdir(folder) and os.access(folder, os.W_OK):
        return {"status": "ok"}, True
    logger.error("Health check: upload folder %s not writable", folder)
    return {"status": "error", "detail": "upload folder not writable"}, False


def _check_rate_limit_store():
    """Redis is optional; an unreachable store is reported but not fatal."""
    uri = current_app.config.get("RATELIMIT_STORAGE_URI", "memory://")
    if not uri.startswith(("redis://", "rediss://")):
        return {"status": "skipped", "backend": uri.split("://", 1)[0]}
    try:
        import redis
    except ImportError:
        return {"status": "skipped", "detail": "redis package not installed"}
    started = time.perf_counter()
    try:
        redis.from_url(uri, socket_timeout=2).ping()
    except redis.RedisError as exc:
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": "CivicFix"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    database, db_ok = _check_database()
    uploads, uploads_ok = _check_uploads()
    checks = {
        "database": database,
        "uploads": uploads,
        "rate_limit_store": _check_rate_limit_store(),
        "change_feed": {"status": "ok", "subscribers": change_feed.subscriber_count},
        "app": {"name": "CivicFix", "debug": current_app.debug, "testing": current_app.testing},
    }
    healthy = db_ok and uploads_ok
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503


@health_bp.route("/ai", methods=["GET"])
def ai_config():
    """Which classifier would run, with which model chain."""
    return jsonify(describe_configuration(current_app.config)), 200
