"""
Tableau Cloud Migration Checklist service.

Usage:
    from tcm_checklist import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")

The client-side editing layer lives in ``tcm_checklist.sync`` and talks to
this service through ``tcm_checklist.integrations.checklist_gateway``.
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from tcm_checklist.config import config
from tcm_checklist.middleware.logging_config import configure_logging
from tcm_checklist.middleware.rate_limiter import init_rate_limits
from tcm_checklist.middleware.timing import init_request_timing
from tcm_checklist.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()
# Limits are attached per blueprint in init_rate_limits()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """Build the Flask app for ``config_name`` (development, testing or production)."""
    config_name = config_name or os.getenv("APP_ENV", "development")
    config_class = config[config_name]

    app = Flask(__name__, instance_relative_config=True)
    # ProductionConfig validates its environment in __init__
    app.config.from_object(config_class() if config_name == "production" else config_class)

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    _init_request_guards(app)
    _init_schema(app)
    _register_blueprints(app)
    init_rate_limits(app, limiter)
    _register_http_errors(app)
    _register_cli(app)

    logger.debug("App created config=%s", config_name)
    return app


# ── Setup steps ──────────────────────────────────────────────────────────


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS") or ""
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    elif origins == "*":
        CORS(app)


def _init_request_guards(app):
    @app.before_request
    def _require_json_body():
        if request.method not in ("POST", "PUT", "PATCH") or not request.path.startswith("/api/"):
            return None
        if request.data and not request.is_json:
            abort(415, description="Content-Type must be application/json")
        return None


def _init_schema(app):
    """Create missing tables; Alembic migrations handle changes to existing ones."""
    from tcm_checklist.models import migration as _migration_model  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:
            logger.warning("db.create_all() failed: %s", exc)


def _register_blueprints(app):
    from tcm_checklist.blueprints import register_error_handlers
    from tcm_checklist.blueprints.health_bp import health_bp
    from tcm_checklist.blueprints.migration_bp import migration_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(migration_bp)
    register_error_handlers(app)


def _register_http_errors(app):
    """JSON bodies for framework-level errors under /api/."""

    def _api_error(message, status, **extra):
        if request.path.startswith("/api/"):
            return {"error": message, "message": message, **extra}, status
        return f"<h1>{status}</h1><p>{message}</p>", status

    @app.errorhandler(404)
    def _not_found(e):
        return _api_error("Not found", 404, path=request.path)

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return _api_error("Method not allowed", 405)

    @app.errorhandler(413)
    def _too_large(e):
        return _api_error("Request body too large", 413)

    @app.errorhandler(415)
    def _unsupported_media_type(e):
        return _api_error(e.description, 415)

    @app.errorhandler(429)
    def _rate_limited(e):
        return _api_error("Too many requests", 429, retry_after=e.description)

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("Unhandled error on %s %s", request.method, request.path, exc_info=True)
        return _api_error("Internal server error", 500)


def _register_cli(app):
    @app.cli.command("seed-demo-migration")
    def seed_demo_migration():
        """Create one migration for 'Demo Client' from the default template."""
        from tcm_checklist.services import migration_service

        migration = migration_service.create_migration(
            client_info={"clientName": "Demo Client"},
            actor=app.config["DEFAULT_ACTOR"],
        )
        db.session.commit()
        print(f"Created migration {migration.id}")
