"""
Startup diagnostics — runs once when the Flask app starts.

Checks critical dependencies and logs a summary banner.
"""

import logging
import sys

from flask import Flask
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from config_mgmt.models import db
from config_mgmt.services import cache_service

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except SQLAlchemyError as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        # ── Table count ──────────────────────────────────────────────
        try:
            table_count = len(sa_inspect(db.engine).get_table_names())
            if table_count == 0:
                issues.append("No tables found — run 'flask db upgrade'")
        except SQLAlchemyError:
            table_count = "?"

        # ── Resolution cache backend ─────────────────────────────────
        cache = cache_service.health_check()
        cache_status = cache.get("backend", cache.get("status", "?"))
        if cache["status"] != "ok":
            issues.append(f"Cache backend unavailable: {cache.get('detail')}")
        elif cache_status == "memory" and "redis" in str(app.config.get("REDIS_URL", "")):
            issues.append("Redis unreachable — resolution cache is process-local")

        window = "enforced" if app.config.get("MAPPING_ENFORCE_EFFECTIVE_WINDOW") else "ignored"

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  Platform Configuration Management — Startup Diagnostics     ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Tables      : {str(table_count):<46s}║
║  Cache       : {cache_status:<46s}║
║  Cache TTL   : {str(app.config.get('RESOLUTION_CACHE_TTL')) + 's':<46s}║
║  Eff. window : {window:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
