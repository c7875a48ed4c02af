"""
API Process Mapping Service

CRUD for API → process routing rules plus the resolution entry point.
All db.session.commit() calls live here; blueprints never commit.

Every write invalidates the resolution cache for the tenants it touches.
Vanilla rows are the fallback for every tenant, so writing one clears
the whole cache.
"""

import logging

from flask import current_app

from config_mgmt.core.exceptions import ConflictError, NotFoundError, ValidationError
from config_mgmt.models import db
from config_mgmt.models.base import utcnow
from config_mgmt.models.process_mapping import HTTP_METHODS, ApiProcessMapping
from config_mgmt.models.tenant import Tenant
from config_mgmt.services.cache_service import resolution_cache
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
from config_mgmt.services.mapping_resolver import MappingResolver
from config_mgmt.services.mapping_store import SqlAlchemyMappingStore

logger = logging.getLogger(__name__)

EXTENSION_KEY = "mapping_resolver"


def init_resolver(app):
    """Attach the MappingResolver used by resolve_mapping() to the app."""
    store = SqlAlchemyMappingStore(
        enforce_effective_window=app.config.get("MAPPING_ENFORCE_EFFECTIVE_WINDOW", False),
    )
    app.extensions[EXTENSION_KEY] = MappingResolver(store, resolution_cache)


def get_resolver() -> MappingResolver:
    return current_app.extensions[EXTENSION_KEY]


# ── Resolution ───────────────────────────────────────────────────────────


def resolve_mapping(tenant_id, operation_id, product_id=None, channel_type=None):
    """Resolve the mapping dict for a request context, or None."""
    return get_resolver().resolve(tenant_id, operation_id, product_id, channel_type)


def invalidate_cache(tenant_id=None):
    if tenant_id is not None:
        logger.info("Invalidating API process mapping cache for tenant: %s", tenant_id)
    else:
        logger.info("Invalidating all API process mapping cache")
    return resolution_cache.invalidate(tenant_id)


def _invalidate_scopes(*tenant_ids):
    if any(t is None for t in tenant_ids):
        resolution_cache.invalidate(None)
        return
    for tenant_id in set(tenant_ids):
        resolution_cache.invalidate(tenant_id)


# ── Queries ──────────────────────────────────────────────────────────────


def get_mapping(mapping_id) -> ApiProcessMapping:
    mapping = db.session.get(ApiProcessMapping, mapping_id)
    if mapping is None:
        raise NotFoundError(resource="ApiProcessMapping", resource_id=mapping_id)
    return mapping


def build_mapping_query(tenant_id=None, operation_id=None, process_id=None, is_active=None, vanilla=None):
    """Equality filters for the list endpoint; None means "don't filter"."""
    m = ApiProcessMapping
    q = m.query
    if vanilla:
        q = q.filter(m.tenant_id.is_(None))
    elif tenant_id is not None:
        q = q.filter(m.tenant_id == tenant_id)
    if operation_id is not None:
        q = q.filter(m.operation_id == operation_id)
    if process_id is not None:
        q = q.filter(m.process_id == process_id)
    if is_active is not None:
        q = q.filter(m.is_active.is_(is_active))
    return q.order_by(m.operation_id, m.priority, m.created_at)


def list_by_tenant(tenant_id):
    return [m.to_dict() for m in build_mapping_query(tenant_id=tenant_id).all()]


def list_vanilla():
    return [m.to_dict() for m in build_mapping_query(vanilla=True, is_active=True).all()]


def list_by_process(process_id):
    return [m.to_dict() for m in build_mapping_query(process_id=process_id).all()]


def exists_by_context(tenant_id, operation_id, product_id=None, channel_type=None):
    """True when an active row with exactly this scope already exists."""
    m = ApiProcessMapping
    q = m.query.filter(
        m.is_active.is_(True),
        m.operation_id == operation_id,
        m.tenant_id.is_(None) if tenant_id is None else m.tenant_id == tenant_id,
        m.product_id.is_(None) if product_id is None else m.product_id == product_id,
        m.channel_type.is_(None) if channel_type is None else m.channel_type == channel_type,
    )
    return db.session.query(q.exists()).scalar()


def count_active_by_process(process_id):
    m = ApiProcessMapping
    return m.query.filter(m.process_id == process_id, m.is_active.is_(True)).count()


# ── Writes ───────────────────────────────────────────────────────────────


def _parse_payload(data: dict) -> dict:
    """Validate a full mapping payload; absent optional fields take defaults."""
    tenant_id = optional_uuid(data, "tenant_id")
    if tenant_id is not None and db.session.get(Tenant, tenant_id) is None:
        raise ValidationError("tenant_id does not reference a tenant", details={"tenant_id": "unknown"})

    http_method = optional_token(data, "http_method", 10)
    if http_method is not None:
        http_method = http_method.upper()
        if http_method not in HTTP_METHODS:
            raise ValidationError(
                f"http_method must be one of {sorted(HTTP_METHODS)}",
                details={"http_method": "invalid"},
            )

    parameters = data.get("parameters") or {}
    if not isinstance(parameters, dict):
        raise ValidationError("parameters must be an object", details={"parameters": "invalid"})

    fields = {
        "tenant_id": tenant_id,
        "product_id": optional_uuid(data, "product_id"),
        "channel_type": optional_token(data, "channel_type", 30),
        "api_path": optional_token(data, "api_path", 500),
        "http_method": http_method,
        "operation_id": require_str(data, "operation_id", 200),
        "process_id": require_str(data, "process_id", 200),
        "process_version": optional_token(data, "process_version", 50),
        "priority": parse_int(data, "priority", 0),
        "is_active": parse_bool(data, "is_active", True),
        "effective_from": parse_datetime(data, "effective_from"),
        "effective_to": parse_datetime(data, "effective_to"),
        "parameters": parameters,
        "description": optional_str(data, "description"),
    }
    check_window("effective_from", fields["effective_from"], "effective_to", fields["effective_to"])
    return fields


def create_mapping(data: dict, actor: str | None = None) -> ApiProcessMapping:
    """Insert a mapping. Defaults: is_active=True, priority=0."""
    fields = _parse_payload(data)
    logger.info(
        "Creating API process mapping: operationId=%s, processId=%s, tenantId=%s",
        fields["operation_id"], fields["process_id"], fields["tenant_id"],
    )
    if exists_by_context(fields["tenant_id"], fields["operation_id"], fields["product_id"], fields["channel_type"]):
        logger.warning(
            "Mapping with identical scope already exists for operation=%s tenant=%s; priority decides",
            fields["operation_id"], fields["tenant_id"],
        )

    mapping = ApiProcessMapping(created_by=actor, updated_by=actor, **fields)
    db.session.add(mapping)
    db.session.commit()
    _invalidate_scopes(mapping.tenant_id)
    logger.info("Created API process mapping: id=%s", mapping.id)
    return mapping


def update_mapping(mapping_id, data: dict, actor: str | None = None) -> ApiProcessMapping:
    """Full-record replace; id, created_at and created_by are preserved."""
    mapping = get_mapping(mapping_id)
    wanted = expected_version(data)
    if wanted is not None and wanted != mapping.version:
        raise ConflictError("ApiProcessMapping", "version", str(wanted))

    fields = _parse_payload(data)
    previous_tenant = mapping.tenant_id
    logger.info("Updating API process mapping: id=%s", mapping_id)
    for name, value in fields.items():
        setattr(mapping, name, value)
    mapping.updated_by = actor
    # forces an UPDATE (and a version bump) even when nothing else changed
    mapping.updated_at = utcnow()
    commit_versioned("ApiProcessMapping", mapping_id)
    _invalidate_scopes(previous_tenant, mapping.tenant_id)
    logger.info("Updated API process mapping: id=%s version=%s", mapping.id, mapping.version)
    return mapping


def delete_mapping(mapping_id) -> None:
    mapping = get_mapping(mapping_id)
    tenant_id = mapping.tenant_id
    logger.info("Deleting API process mapping: id=%s", mapping_id)
    db.session.delete(mapping)
    commit_versioned("ApiProcessMapping", mapping_id)
    _invalidate_scopes(tenant_id)
    logger.info("Deleted API process mapping: id=%s", mapping_id)
