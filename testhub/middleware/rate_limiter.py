"""
Rate limiting configuration.

The Limiter instance is created in testhub/__init__.py with no default
limits; this module applies limits per blueprint once they are registered.

Usage:
    from testhub.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:  LOGIN_RATE_LIMIT (default 10 per minute)

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        logger.info("Rate limiter disabled")
        return

    login_limit = app.config.get("LOGIN_RATE_LIMIT", "10 per minute")
    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit(login_limit)(bp)

    logger.info("Rate limiter configured, auth: %s", login_limit)
