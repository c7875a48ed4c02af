"""
Tenant Blueprint

CRUD for the tenant registry under /api/v1/tenants.
"""

import logging

from flask import Blueprint, jsonify

from config_mgmt.blueprints import bool_arg, json_body, paginate_query, parse_uuid
from config_mgmt.services import tenant_service as svc
from config_mgmt.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

tenant_bp = Blueprint("tenant", __name__, url_prefix="/api/v1/tenants")
register_error_handlers(tenant_bp, logger)


@tenant_bp.route("", methods=["GET"])
def list_tenants():
    """List tenants; ``?active=true|false`` narrows the result."""
    items, total = paginate_query(svc.list_tenants(active=bool_arg("active")))
    return jsonify({"items": [t.to_dict() for t in items], "total": total}), 200


@tenant_bp.route("", methods=["POST"])
def create_tenant():
    tenant = svc.create_tenant(json_body())
    return jsonify(tenant.to_dict()), 201


@tenant_bp.route("/<tenant_id>", methods=["GET"])
def get_tenant(tenant_id):
    return jsonify(svc.get_tenant(parse_uuid(tenant_id, "tenant_id")).to_dict()), 200


@tenant_bp.route("/<tenant_id>", methods=["PUT"])
def update_tenant(tenant_id):
    tenant = svc.update_tenant(parse_uuid(tenant_id, "tenant_id"), json_body())
    return jsonify(tenant.to_dict()), 200


@tenant_bp.route("/<tenant_id>", methods=["DELETE"])
def delete_tenant(tenant_id):
    """Delete a tenant together with its mappings and flags."""
    svc.delete_tenant(parse_uuid(tenant_id, "tenant_id"))
    return "", 204
