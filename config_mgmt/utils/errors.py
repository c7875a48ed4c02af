"""Standardised API error responses.

Usage
-----
    from config_mgmt.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "No process mapping resolved")
    return api_error(E.VALIDATION_REQUIRED, "operationId is required")
"""

from __future__ import annotations

from flask import jsonify, request
from werkzeug.exceptions import HTTPException


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400 (malformed request) / 422 (business rule)
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"

    # Store unavailable – HTTP 503
    LOOKUP_FAILED = "ERR_LOOKUP_FAILED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_VERSION: 409,
    E.LOOKUP_FAILED: 503,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp, logger):
    """Attach the shared service-exception handlers to a blueprint."""
    from config_mgmt.core.exceptions import (
        ConflictError,
        InvalidParamError,
        LookupFailedError,
        NotFoundError,
        ValidationError,
    )

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(InvalidParamError)
    def _handle_invalid_param(error: InvalidParamError):
        code = E.VALIDATION_REQUIRED if error.required else E.VALIDATION_INVALID
        return api_error(code, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        code = E.CONFLICT_VERSION if error.field == "version" else E.CONFLICT_DUPLICATE
        return api_error(code, str(error))

    @bp.errorhandler(LookupFailedError)
    def _handle_lookup_failed(error: LookupFailedError):
        logger.error("Mapping store unavailable: %s", error)
        return api_error(E.LOOKUP_FAILED, "Mapping store unavailable")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description or error.name}), error.code
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
