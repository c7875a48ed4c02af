"""
Feature Flag Blueprint

Admin API for tenant feature flags, plus the check endpoint used by
application code.
"""

import logging

from flask import Blueprint, jsonify

from config_mgmt.blueprints import json_body, paginate_query, parse_uuid, query_arg, uuid_arg
from config_mgmt.services import feature_flag_service as svc
from config_mgmt.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

feature_flag_bp = Blueprint("feature_flag", __name__, url_prefix="/api/v1/feature-flags")
register_error_handlers(feature_flag_bp, logger)


# ═══════════════════════════════════════════════════════════════
# Flag CRUD
# ═══════════════════════════════════════════════════════════════

@feature_flag_bp.route("", methods=["GET"])
def list_flags():
    """List flags, optionally for one tenant / environment."""
    q = svc.list_flags(tenant_id=uuid_arg("tenant_id"), environment=query_arg("environment"))
    items, total = paginate_query(q)
    return jsonify({"items": [f.to_dict() for f in items], "total": total}), 200


@feature_flag_bp.route("", methods=["POST"])
def create_flag():
    """Create a new feature flag."""
    flag = svc.create_flag(json_body())
    return jsonify(flag.to_dict()), 201


@feature_flag_bp.route("/<flag_id>", methods=["GET"])
def get_flag(flag_id):
    return jsonify(svc.get_flag(parse_uuid(flag_id, "flag_id")).to_dict()), 200


@feature_flag_bp.route("/<flag_id>", methods=["PUT"])
def update_flag(flag_id):
    flag = svc.update_flag(parse_uuid(flag_id, "flag_id"), json_body())
    return jsonify(flag.to_dict()), 200


@feature_flag_bp.route("/<flag_id>", methods=["DELETE"])
def delete_flag(flag_id):
    svc.delete_flag(parse_uuid(flag_id, "flag_id"))
    return "", 204


# ═══════════════════════════════════════════════════════════════
# Check endpoint (for use by application code)
# ═══════════════════════════════════════════════════════════════

@feature_flag_bp.route("/check/<flag_key>", methods=["GET"])
def check_flag(flag_key):
    """Check if a flag is enabled for the specified tenant."""
    tenant_id = uuid_arg("tenant_id", required=True)
    environment = query_arg("environment")
    subject = query_arg("subject")
    enabled = svc.is_enabled(tenant_id, flag_key, environment=environment, subject=subject)
    return jsonify({
        "key": flag_key,
        "tenant_id": tenant_id,
        "environment": environment,
        "enabled": enabled,
    }), 200
