"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in ewc_tester/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from ewc_tester.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

AUTH_LIMIT = "10/minute"
EXECUTION_LIMIT = "30/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:        10/minute  (credential guessing)
        - Salesforce OAuth:      10/minute
        - Test execution:        30/minute  (each call hits the EWC API)
        - Resource endpoints:    60/minute
        - Results / reports:     200/minute (read-heavy UI)
        - Health check:          exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("auth_bp", "salesforce_auth_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(AUTH_LIMIT)(bp)

    bp = app.blueprints.get("tests_bp")
    if bp:
        limiter.limit(EXECUTION_LIMIT)(bp)

    for bp_name in ("environment_bp", "credential_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ("result_bp", "report_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: auth: %s, execution: %s, write: %s, read: %s",
        AUTH_LIMIT, EXECUTION_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
