"""
Platform Configuration Management Service
Blueprint registry and shared request helpers.

Query parameters are accepted in camelCase (``tenantId``) and snake_case
(``tenant_id``); an empty value counts as absent.
"""

import re
import uuid

from flask import request

from config_mgmt.core.exceptions import InvalidParamError

_CAMEL = re.compile(r"_([a-z])")
_UPPER = re.compile(r"([A-Z])")


def _camel(name):
    return _CAMEL.sub(lambda m: m.group(1).upper(), name)


def query_arg(name, required=False):
    """Read ``name`` (snake_case) or its camelCase spelling from the query string."""
    for key in (_camel(name), name):
        value = request.args.get(key)
        if value is not None and value.strip() != "":
            return value.strip()
    if required:
        raise InvalidParamError(_camel(name), "is required", required=True)
    return None


def uuid_arg(name, required=False):
    """Like query_arg but the value must parse as a UUID; returns it normalized."""
    value = query_arg(name, required=required)
    if value is None:
        return None
    return parse_uuid(value, _camel(name))


def parse_uuid(value, param="id"):
    try:
        return str(uuid.UUID(value))
    except (ValueError, TypeError, AttributeError):
        raise InvalidParamError(param, "must be a UUID") from None


def bool_arg(name):
    value = query_arg(name)
    if value is None:
        return None
    lowered = value.lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise InvalidParamError(_camel(name), "must be true or false")


def json_body():
    """Request JSON object with camelCase keys folded to snake_case; anything else is a 400."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidParamError("body", "must be a JSON object", required=data is None)
    body = {}
    for key, value in data.items():
        snake = _UPPER.sub(lambda m: "_" + m.group(1).lower(), key)
        # an explicit snake_case key wins over its camelCase twin
        if snake not in body or snake == key:
            body[snake] = value
    return body


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total
