"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in app/__init__.py with no default limits; this module applies
limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

# Blueprints whose routes mutate ledgers or phase state
WRITE_BLUEPRINTS = ("phases", "work_logs", "payments", "progress", "projects")

WRITE_LIMIT = "60/minute"


def principal_rate_limit_key():
    """Rate limit key: authenticated user if known, else remote IP."""
    principal = getattr(g, "principal", None)
    if principal is not None:
        return f"user:{principal.user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per user, falling back to remote IP):
        - Engine blueprints: 60/minute for POST/PUT/DELETE (reads unlimited)
        - Health check:      exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=principal_rate_limit_key,
                          methods=["POST", "PUT", "DELETE"])(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: write %s", WRITE_LIMIT)
