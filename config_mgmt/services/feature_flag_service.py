"""
Feature Flag Service

Provides CRUD for tenant feature flags and the evaluation used by
application code.
"""

import hashlib
import logging
from datetime import datetime, timezone

from config_mgmt.core.exceptions import ConflictError, NotFoundError, ValidationError
from config_mgmt.models import db
from config_mgmt.models.base import as_utc, utcnow
from config_mgmt.models.feature_flag import FeatureFlag
from config_mgmt.services import cache_service
from config_mgmt.services.helpers.payload import (
    check_window,
    expected_version,
    optional_str,
    optional_token,
    optional_uuid,
    parse_bool,
    parse_datetime,
    parse_int,
    require_str,
)
from config_mgmt.services.helpers.persistence import commit_versioned
from config_mgmt.services.tenant_service import get_tenant

logger = logging.getLogger(__name__)


# ── Flag CRUD ────────────────────────────────────────────────────────────


def list_flags(tenant_id=None, environment=None):
    """Return a query over flags, optionally narrowed to a tenant / environment."""
    q = FeatureFlag.query
    if tenant_id is not None:
        q = q.filter(FeatureFlag.tenant_id == tenant_id)
    if environment is not None:
        q = q.filter(FeatureFlag.environment == environment)
    return q.order_by(FeatureFlag.feature_key, FeatureFlag.environment)


def get_flag(flag_id) -> FeatureFlag:
    flag = db.session.get(FeatureFlag, flag_id)
    if flag is None:
        raise NotFoundError(resource="FeatureFlag", resource_id=flag_id)
    return flag


def _find_scoped(tenant_id, feature_key, environment):
    q = FeatureFlag.query.filter_by(tenant_id=tenant_id, feature_key=feature_key)
    if environment is None:
        return q.filter(FeatureFlag.environment.is_(None)).first()
    return q.filter(FeatureFlag.environment == environment).first()


def _parse_payload(data, tenant_id, flag_id=None):
    feature_key = require_str(data, "feature_key", 100)
    environment = optional_token(data, "environment", 30)
    clash = _find_scoped(tenant_id, feature_key, environment)
    if clash is not None and clash.id != flag_id:
        raise ConflictError("FeatureFlag", "feature_key", feature_key)

    segments = data.get("target_user_segments") or []
    if not isinstance(segments, list):
        raise ValidationError("target_user_segments must be a list", details={"target_user_segments": "invalid"})
    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object", details={"metadata": "invalid"})

    fields = {
        "feature_key": feature_key,
        "feature_name": optional_str(data, "feature_name", 200) or feature_key,
        "description": optional_str(data, "description"),
        "enabled": parse_bool(data, "enabled", False),
        "environment": environment,
        "rollout_percentage": parse_int(data, "rollout_percentage", 100, lo=0, hi=100),
        "start_date": parse_datetime(data, "start_date"),
        "end_date": parse_datetime(data, "end_date"),
        "target_user_segments": segments,
        "extra_metadata": metadata,
        "active": parse_bool(data, "active", True),
    }
    check_window("start_date", fields["start_date"], "end_date", fields["end_date"])
    return fields


def create_flag(data) -> FeatureFlag:
    """Create a new feature flag for the tenant named in ``data``."""
    tenant_id = optional_uuid(data, "tenant_id")
    if tenant_id is None:
        raise ValidationError("tenant_id is required", details={"tenant_id": "is required"})
    get_tenant(tenant_id)
    flag = FeatureFlag(tenant_id=tenant_id, **_parse_payload(data, tenant_id))
    db.session.add(flag)
    db.session.commit()
    cache_service.invalidate_flag_cache(tenant_id)
    logger.info("Created feature flag: %s (tenant=%s)", flag.feature_key, tenant_id)
    return flag


def update_flag(flag_id, data) -> FeatureFlag:
    """Full replace; a flag never moves between tenants."""
    flag = get_flag(flag_id)
    wanted = expected_version(data)
    if wanted is not None and wanted != flag.version:
        raise ConflictError("FeatureFlag", "version", str(wanted))
    for name, value in _parse_payload(data, flag.tenant_id, flag_id=flag.id).items():
        setattr(flag, name, value)
    flag.updated_at = utcnow()
    commit_versioned("FeatureFlag", flag_id)
    cache_service.invalidate_flag_cache(flag.tenant_id)
    logger.info("Updated feature flag: %s", flag.feature_key)
    return flag


def delete_flag(flag_id) -> None:
    flag = get_flag(flag_id)
    tenant_id, key = flag.tenant_id, flag.feature_key
    db.session.delete(flag)
    db.session.commit()
    cache_service.invalidate_flag_cache(tenant_id)
    logger.info("Deleted feature flag: %s", key)


# ── Evaluation ───────────────────────────────────────────────────────────


def rollout_bucket(feature_key, subject):
    """Stable 0..99 bucket so a subject keeps its rollout decision."""
    digest = hashlib.sha256(f"{feature_key}:{subject}".encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % 100


def evaluate(flag: FeatureFlag, subject=None, now=None) -> bool:
    if not (flag.active and flag.enabled):
        return False
    now = now or datetime.now(timezone.utc)
    start, end = as_utc(flag.start_date), as_utc(flag.end_date)
    if start is not None and now < start:
        return False
    if end is not None and now >= end:
        return False
    pct = flag.rollout_percentage if flag.rollout_percentage is not None else 100
    if pct >= 100:
        return True
    if pct <= 0 or subject is None:
        return False
    return rollout_bucket(flag.feature_key, subject) < pct


def is_enabled(tenant_id, feature_key, environment=None, subject=None) -> bool:
    """Check whether a flag is on for a tenant.

    Resolution order:
    1. Flag scoped to the requested environment → use it
    2. Otherwise the environment-agnostic flag
    3. No flag → False
    """
    cached = cache_service.get_cached_flag(tenant_id, feature_key, environment, subject)
    if cached is not None:
        return cached

    flag = None
    if environment is not None:
        flag = _find_scoped(tenant_id, feature_key, environment)
    if flag is None:
        flag = _find_scoped(tenant_id, feature_key, None)
    enabled = evaluate(flag, subject) if flag is not None else False
    cache_service.set_cached_flag(tenant_id, feature_key, environment, subject, enabled)
    return enabled
