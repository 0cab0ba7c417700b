"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in tracker/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from tracker.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:   AUTH_RATE_LIMIT (default 10/minute; brute-force guard)
        - Task / plan APIs: 60/minute
        - User admin:       200/minute
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    auth_limit = app.config.get("AUTH_RATE_LIMIT", "10/minute")
    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit(auth_limit)(bp)

    for bp_name in ("task_bp", "weekly_plan_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("user_bp")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — auth: %s, tasks/plans: %s, users: %s",
        auth_limit, WRITE_LIMIT, READ_LIMIT,
    )
