"""
API Process Mapping Blueprint

Routing-rule administration and resolution under
/api/v1/api-process-mappings.

The gateway calls ``GET /resolve`` on every routed request, so that
endpoint goes through the cached MappingResolver; the CRUD endpoints hit
the database directly and invalidate the cache on every write.

Endpoints:
    GET    /resolve?tenantId&operationId&productId&channelType
    POST   /cache/invalidate?tenantId
    GET    /                       list (tenantId, operationId, processId, isActive, vanilla)
    POST   /                       create
    GET    /<id>                   read
    PUT    /<id>                   full replace
    DELETE /<id>                   hard delete
    GET    /tenants/<tenant_id>/mappings
    GET    /vanilla
    GET    /processes/<process_id>
"""

import logging

from flask import Blueprint, jsonify, request

from config_mgmt.blueprints import bool_arg, json_body, paginate_query, parse_uuid, query_arg, uuid_arg
from config_mgmt.services import process_mapping_service as svc
from config_mgmt.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

process_mapping_bp = Blueprint(
    "process_mapping", __name__, url_prefix="/api/v1/api-process-mappings",
)
register_error_handlers(process_mapping_bp, logger)


def _actor():
    return request.headers.get("X-User-Id") or None


# ═════════════════════════════════════════════════════════════════════════
# Resolution
# ═════════════════════════════════════════════════════════════════════════


@process_mapping_bp.route("/resolve", methods=["GET"])
def resolve():
    """Resolve the process that handles an operation for a request context.

    Without tenantId only the vanilla mapping can match.
    """
    tenant_id = uuid_arg("tenant_id")
    operation_id = query_arg("operation_id", required=True)
    product_id = uuid_arg("product_id")
    channel_type = query_arg("channel_type")

    mapping = svc.resolve_mapping(tenant_id, operation_id, product_id, channel_type)
    if mapping is None:
        return api_error(
            E.NOT_FOUND,
            f"No process mapping for operation {operation_id}",
            details={
                "tenant_id": tenant_id,
                "operation_id": operation_id,
                "product_id": product_id,
                "channel_type": channel_type,
            },
        )
    return jsonify(mapping), 200


@process_mapping_bp.route("/cache/invalidate", methods=["POST"])
def invalidate_cache():
    """Drop cached resolutions: one tenant's with ?tenantId=, otherwise all."""
    svc.invalidate_cache(uuid_arg("tenant_id"))
    return "", 204


# ═════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════


@process_mapping_bp.route("", methods=["GET"])
def list_mappings():
    q = svc.build_mapping_query(
        tenant_id=uuid_arg("tenant_id"),
        operation_id=query_arg("operation_id"),
        process_id=query_arg("process_id"),
        is_active=bool_arg("is_active"),
        vanilla=bool_arg("vanilla"),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [m.to_dict() for m in items], "total": total}), 200


@process_mapping_bp.route("", methods=["POST"])
def create_mapping():
    mapping = svc.create_mapping(json_body(), actor=_actor())
    return jsonify(mapping.to_dict()), 201


@process_mapping_bp.route("/<mapping_id>", methods=["GET"])
def get_mapping(mapping_id):
    return jsonify(svc.get_mapping(parse_uuid(mapping_id, "mapping_id")).to_dict()), 200


@process_mapping_bp.route("/<mapping_id>", methods=["PUT"])
def update_mapping(mapping_id):
    mapping = svc.update_mapping(parse_uuid(mapping_id, "mapping_id"), json_body(), actor=_actor())
    return jsonify(mapping.to_dict()), 200


@process_mapping_bp.route("/<mapping_id>", methods=["DELETE"])
def delete_mapping(mapping_id):
    svc.delete_mapping(parse_uuid(mapping_id, "mapping_id"))
    return "", 204


# ═════════════════════════════════════════════════════════════════════════
# Views
# ═════════════════════════════════════════════════════════════════════════


@process_mapping_bp.route("/tenants/<tenant_id>/mappings", methods=["GET"])
def tenant_mappings(tenant_id):
    """Every mapping owned by a tenant, active or not."""
    items = svc.list_by_tenant(parse_uuid(tenant_id, "tenant_id"))
    return jsonify({"items": items, "total": len(items)}), 200


@process_mapping_bp.route("/vanilla", methods=["GET"])
def vanilla_mappings():
    items = svc.list_vanilla()
    return jsonify({"items": items, "total": len(items)}), 200


@process_mapping_bp.route("/processes/<process_id>", methods=["GET"])
def process_mappings(process_id):
    """Mappings that route to a process, with the count still active."""
    items = svc.list_by_process(process_id)
    return jsonify({
        "process_id": process_id,
        "items": items,
        "total": len(items),
        "active_count": svc.count_active_by_process(process_id),
    }), 200
