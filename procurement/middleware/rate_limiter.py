"""
Rate limiting configuration.

The Limiter instance is created in procurement/__init__.py with no default
limits; this module applies limits to the credential endpoints.

Usage:
    from procurement.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_LIMIT = "10/minute"
REGISTER_LIMIT = "5/minute"


def init_rate_limits(app, limiter):
    """
    Throttle login and registration per remote IP.  Health is exempt.

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    login_limit = app.config.get("LOGIN_RATE_LIMIT", DEFAULT_LOGIN_LIMIT)
    for endpoint, limit in (
        ("auth.login", login_limit),
        ("auth.register", REGISTER_LIMIT),
    ):
        view = app.view_functions.get(endpoint)
        if view is not None:
            app.view_functions[endpoint] = limiter.limit(limit)(view)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured - login: %s, register: %s", login_limit, REGISTER_LIMIT)
