"""
CivicFix
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name]())

Every setting can be overridden through the environment; see the
attribute comments below for the variable names.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
instance_dir = os.path.join(basedir, "instance")

_SQLITE_DEV = f"sqlite:///{os.path.join(instance_dir, 'civicfix_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Random per-process key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_list(name, default=""):
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_flag(name, default="false"):
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


def _database_url(fallback=None):
    """DATABASE_URL with Heroku/Railway ``postgres://`` rewritten for SQLAlchemy 2."""
    raw = os.getenv("DATABASE_URL", "")
    if not raw:
        return fallback
    return raw.replace("postgres://", "postgresql://", 1)


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # ── Database ─────────────────────────────────────────────────────────
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # ── HTTP surface ─────────────────────────────────────────────────────
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "true")
    # Flask-Limiter backend: redis://… in production, in-process otherwise
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")
    RATELIMIT_ENABLED = True

    # ── Hazard classification ────────────────────────────────────────────
    AI_PROVIDER = os.getenv("AI_PROVIDER", "gemini")          # gemini | local
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    GEMINI_FALLBACK_MODELS = _env_list("GEMINI_FALLBACK_MODELS", "gemini-2.0-flash,gemini-2.5-pro")

    # ── Image storage (served under /uploads) ────────────────────────────
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(instance_dir, "uploads"))
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "")
    UPLOAD_MAX_BYTES = int(os.getenv("UPLOAD_MAX_BYTES", str(10 * 1024 * 1024)))

    # ── Triage ───────────────────────────────────────────────────────────
    AUTO_ASSIGN_ENABLED = _env_flag("AUTO_ASSIGN_ENABLED")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)
    # Admin API open locally unless explicitly switched on
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "false")


class TestingConfig(Config):
    """In-memory SQLite, local stub classifier, no auth, no rate limits."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    API_AUTH_ENABLED = "false"
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = "memory://"
    AI_PROVIDER = "local"
    GEMINI_API_KEY = ""
    PUBLIC_BASE_URL = "http://localhost"
    AUTO_ASSIGN_ENABLED = False


class ProductionConfig(Config):
    """Refuses to start without DATABASE_URL and SECRET_KEY."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # must be set explicitly
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
