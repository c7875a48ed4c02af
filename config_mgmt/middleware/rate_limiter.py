"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in config_mgmt/__init__.py with no default
limits; this module applies granular limits per route category.

Limits are keyed by remote IP (the limiter's ``get_remote_address``).
The ``tenantId`` query parameter is caller-supplied and unauthenticated,
so it never selects the bucket.

Usage:
    from config_mgmt.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Resolution sits on every routed API call, so it gets the generous budget
RESOLVE_LIMIT = "600/minute"
WRITE_LIMIT = "60/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Process mappings:   PROCESS_MAPPING_RATE_LIMIT, default 600/minute
        - Tenants, flags:     WRITE_RATE_LIMIT, default 60/minute
        - Health check:       exempt

    Skipped when RATELIMIT_ENABLED is false (always so in TestingConfig).
    """

    if not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    resolve_limit = app.config.get("PROCESS_MAPPING_RATE_LIMIT", RESOLVE_LIMIT)
    write_limit = app.config.get("WRITE_RATE_LIMIT", WRITE_LIMIT)

    bp = app.blueprints.get("process_mapping")
    if bp:
        limiter.limit(resolve_limit)(bp)

    for bp_name in ("tenant", "feature_flag"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(write_limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: process mappings %s, tenants/flags %s",
        resolve_limit, write_limit,
    )
