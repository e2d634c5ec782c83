"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in pmo/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from pmo.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"
UPLOAD_LIMIT = "20/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Login:            LOGIN_RATE_LIMIT, declared on the view in auth_bp
        - Uploads:          20/minute
        - Write blueprints: 60/minute
        - Reports:          200/minute
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("documents")
    if bp:
        limiter.limit(UPLOAD_LIMIT)(bp)

    for bp_name in ("projects", "providers", "users"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ("reports", "dashboard"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limits: login=%s upload=%s write=%s read=%s",
        app.config["LOGIN_RATE_LIMIT"], UPLOAD_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
