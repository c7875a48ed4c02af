"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from config_mgmt.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    raise ValidationError("operation_id is required", details={"operation_id": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Not used for an empty process-mapping resolution: that is a valid result
    (``None``) and only the HTTP layer turns it into a 404.

    Args:
        resource: Human-readable entity name (e.g. "Tenant", "ApiProcessMapping").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails validation in the service layer.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown keyed by field name.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised on a duplicate unique value or a stale optimistic-lock version.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} conflicts with the stored record"
        super().__init__(msg)


class LookupFailedError(Exception):
    """Raised when the mapping store cannot be reached or fails mid-query.

    Carries no retry logic; the underlying driver error is chained as
    ``__cause__``. Maps to HTTP 503.
    """

    def __init__(self, operation: str, detail: str | None = None) -> None:
        self.operation = operation
        self.detail = detail
        msg = f"Mapping lookup failed during {operation}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class InvalidParamError(Exception):
    """Raised by the HTTP layer for a missing or malformed request parameter.

    Maps to HTTP 400; business-rule failures use ValidationError instead.
    """

    def __init__(self, param: str, message: str, required: bool = False) -> None:
        self.param = param
        self.required = required
        super().__init__(f"{param} {message}")
