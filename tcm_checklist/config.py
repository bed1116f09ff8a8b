"""
Tableau Cloud Migration Checklist: environment configuration.

One class per APP_ENV value. Every knob reads its environment variable once
at import time; tests override by subclassing or by ``app.config`` updates.

Usage:
    from tcm_checklist.config import config
    app.config.from_object(config[os.getenv("APP_ENV", "development")])
"""

import os
import secrets

_PROJECT_ROOT = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
_LOCAL_SQLITE = "sqlite:///" + os.path.join(_PROJECT_ROOT, "instance", "tcm_checklist.db")


def _database_url(default=None):
    """DATABASE_URL with the legacy ``postgres://`` scheme rewritten for SQLAlchemy 2."""
    url = os.getenv("DATABASE_URL", "")
    if not url:
        return default
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


class Config:
    """Settings shared by every environment."""

    DEBUG = False
    TESTING = False
    # Throwaway key unless SECRET_KEY is exported; ProductionConfig insists on it
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # Checklist documents are small; anything larger is a client bug
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL")

    # Recorded as createdBy/updatedBy when a request has no X-User-Email
    DEFAULT_ACTOR = os.getenv("DEFAULT_ACTOR", "system@tcm.local")

    # POST/PUT/DELETE limit per remote address on the migrations blueprint
    WRITE_RATE_LIMIT = os.getenv("WRITE_RATE_LIMIT", "120 per minute")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(default=_LOCAL_SQLITE)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    WRITE_RATE_LIMIT = None
    DEFAULT_ACTOR = "tester@tcm.local"


class ProductionConfig(Config):
    """Instantiated (not just referenced) so the checks below run at startup."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 20,
    }

    def __init__(self):
        missing = [
            name for name, value in (
                ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
                ("SECRET_KEY", os.getenv("SECRET_KEY")),
            ) if not value
        ]
        if missing:
            raise RuntimeError(f"Production requires environment variables: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
