"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in tcm_checklist/__init__.py with no default
limits; this module applies limits per route category.

Usage:
    from tcm_checklist.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_READ_LIMIT = "300/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Migration writes:  WRITE_RATE_LIMIT config (POST/PUT/DELETE)
        - Migration reads:   300/minute (GET)
        - Health check:      exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    write_limit = app.config.get("WRITE_RATE_LIMIT")
    bp = app.blueprints.get("migrations")
    if bp:
        if write_limit:
            limiter.limit(write_limit, methods=["POST", "PUT", "DELETE"])(bp)
        limiter.limit(DEFAULT_READ_LIMIT, methods=["GET"])(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: write: %s, read: %s",
        write_limit or "unlimited", DEFAULT_READ_LIMIT,
    )
