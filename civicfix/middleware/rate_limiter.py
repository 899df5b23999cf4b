"""
Rate limiting configuration.

Applies per-blueprint and per-endpoint rate limits using Flask-Limiter.
The Limiter instance is created in civicfix/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from civicfix.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

SUBMISSION_LIMIT = "10/minute"
ADMIN_LIMIT = "60/minute"
CITIZEN_LIMIT = "120/minute"

# Endpoints that call the vision model and write to storage
_SUBMISSION_ENDPOINTS = ("citizen_bp.submit_report",)


def init_rate_limits(app, limiter):
    """
    Apply rate limits (per remote IP):
        - Report submission: 10/minute  (storage write + AI call)
        - Admin API:         60/minute
        - Citizen API:       120/minute
        - Health check:      exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for endpoint in _SUBMISSION_ENDPOINTS:
        view = app.view_functions.get(endpoint)
        if view:
            app.view_functions[endpoint] = limiter.limit(SUBMISSION_LIMIT)(view)

    bp = app.blueprints.get("admin_bp")
    if bp:
        limiter.limit(ADMIN_LIMIT)(bp)

    bp = app.blueprints.get("citizen_bp")
    if bp:
        limiter.limit(CITIZEN_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured - submit: %s, admin: %s, citizen: %s",
        SUBMISSION_LIMIT, ADMIN_LIMIT, CITIZEN_LIMIT,
    )
