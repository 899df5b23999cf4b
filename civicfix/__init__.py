"""
CivicFix
Flask application factory.

    from civicfix import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")
"""

import logging
import os

from flask import Flask, abort, jsonify, request, send_from_directory
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from civicfix.auth import init_auth
from civicfix.config import config
from civicfix.middleware.logging_config import configure_logging
from civicfix.middleware.rate_limiter import init_rate_limits
from civicfix.middleware.timing import init_request_timing
from civicfix.models import db
from civicfix.services.storage import ALLOWED_IMAGE_TYPES

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
# Storage comes from RATELIMIT_STORAGE_URI; limits are applied per blueprint
limiter = Limiter(key_func=get_remote_address, default_limits=[])


def _init_cors(app):
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _init_database(app):
    from civicfix.models import activity, note, notification, report, team  # noqa: F401
    from civicfix.services.realtime import init_realtime

    init_realtime(app)

    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as exc:
            app.logger.warning("db.create_all() failed: %s", exc)


def _register_blueprints(app):
    from civicfix.blueprints.admin_bp import admin_bp
    from civicfix.blueprints.citizen_bp import citizen_bp
    from civicfix.blueprints.health_bp import health_bp

    for bp in (citizen_bp, admin_bp, health_bp):
        app.register_blueprint(bp)

    @app.route("/uploads/<path:filename>")
    def uploaded_file(filename):
        if filename.rsplit(".", 1)[-1].lower() not in ALLOWED_IMAGE_TYPES.values():
            abort(404)
        response = send_from_directory(app.config["UPLOAD_FOLDER"], filename)
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response


def _register_app_errors(app):
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"error": "Request body too large"}), 413

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests", "retry_after": e.description}), 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return jsonify({"error": "Internal server error", "code": "ERR_INTERNAL"}), 500


def create_app(config_name=None):
    """Build the app for ``config_name`` (development | testing | production)."""
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse missing settings
    app.config.from_object(config[config_name]())
    app.config.setdefault("MAX_CONTENT_LENGTH", app.config["UPLOAD_MAX_BYTES"] + 1024 * 1024)

    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    _init_cors(app)
    init_auth(app)
    init_request_timing(app)

    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)
    _init_database(app)
    _register_blueprints(app)
    _register_app_errors(app)

    # Needs the blueprints registered first
    init_rate_limits(app, limiter)

    app.logger.info("CivicFix started (%s, ai=%s)", config_name, app.config.get("AI_PROVIDER"))
    return app
