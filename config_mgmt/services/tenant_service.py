"""
Tenant Service

CRUD for the tenant registry. Deleting a tenant cascades to its process
mappings and feature flags, so its cache entries go with it.
"""

import logging

from config_mgmt.core.exceptions import ConflictError, NotFoundError, ValidationError
from config_mgmt.models import db
from config_mgmt.models.base import utcnow
from config_mgmt.models.tenant import Tenant
from config_mgmt.services import cache_service
from config_mgmt.services.helpers.payload import (
    expected_version,
    optional_str,
    optional_uuid,
    parse_bool,
    require_str,
)
from config_mgmt.services.helpers.persistence import commit_versioned

logger = logging.getLogger(__name__)


def list_tenants(active=None):
    q = Tenant.query
    if active is not None:
        q = q.filter(Tenant.active.is_(active))
    return q.order_by(Tenant.code)


def get_tenant(tenant_id) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    return tenant


def get_tenant_by_code(code):
    return Tenant.query.filter_by(code=code).first()


def _parse_payload(data, tenant_id=None):
    code = require_str(data, "code", 50)
    existing = get_tenant_by_code(code)
    if existing is not None and existing.id != tenant_id:
        raise ConflictError("Tenant", "code", code)

    parent_id = optional_uuid(data, "parent_tenant_id")
    if parent_id is not None:
        if parent_id == tenant_id:
            raise ValidationError("A tenant cannot be its own parent", details={"parent_tenant_id": "self"})
        if db.session.get(Tenant, parent_id) is None:
            raise ValidationError("parent_tenant_id does not reference a tenant", details={"parent_tenant_id": "unknown"})

    currency = optional_str(data, "default_currency_code", 3)
    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object", details={"metadata": "invalid"})

    return {
        "code": code,
        "name": require_str(data, "name", 200),
        "description": optional_str(data, "description"),
        "timezone": optional_str(data, "timezone", 64) or "UTC",
        "default_currency_code": currency.upper() if currency else None,
        "default_language_code": optional_str(data, "default_language_code", 10),
        "tenant_type": optional_str(data, "tenant_type", 50),
        "parent_tenant_id": parent_id,
        "extra_metadata": metadata,
        "active": parse_bool(data, "active", True),
    }


def create_tenant(data) -> Tenant:
    tenant = Tenant(**_parse_payload(data))
    db.session.add(tenant)
    db.session.commit()
    logger.info("Created tenant: %s (%s)", tenant.code, tenant.id)
    return tenant


def update_tenant(tenant_id, data) -> Tenant:
    """Full replace of the tenant's mutable fields."""
    tenant = get_tenant(tenant_id)
    wanted = expected_version(data)
    if wanted is not None and wanted != tenant.version:
        raise ConflictError("Tenant", "version", str(wanted))
    for name, value in _parse_payload(data, tenant_id=tenant.id).items():
        setattr(tenant, name, value)
    tenant.updated_at = utcnow()
    commit_versioned("Tenant", tenant_id)
    logger.info("Updated tenant: %s version=%s", tenant.code, tenant.version)
    return tenant


def delete_tenant(tenant_id) -> None:
    tenant = get_tenant(tenant_id)
    db.session.delete(tenant)
    db.session.commit()
    cache_service.invalidate_tenant_cache(tenant_id)
    logger.info("Deleted tenant: %s", tenant_id)
