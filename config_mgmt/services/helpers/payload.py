"""Small coercion helpers for JSON request payloads.

All of them raise ValidationError with a field-level ``details`` entry so
blueprints can return a structured 422 without extra work.
"""

import uuid
from datetime import datetime, timezone

from config_mgmt.core.exceptions import ValidationError


def _fail(field, message):
    raise ValidationError(f"{field} {message}", details={field: message})


def require_str(data: dict, field: str, max_len: int | None = None) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        _fail(field, "is required")
    value = value.strip()
    if max_len and len(value) > max_len:
        _fail(field, f"must be ≤ {max_len} characters")
    return value


def optional_str(data: dict, field: str, max_len: int | None = None) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        _fail(field, "must be a string")
    if max_len and len(value) > max_len:
        _fail(field, f"must be ≤ {max_len} characters")
    return value


def optional_token(data: dict, field: str, max_len: int | None = None) -> str | None:
    """Like optional_str, but trimmed and a blank value counts as absent."""
    value = optional_str(data, field, max_len)
    if value is None or not value.strip():
        return None
    return value.strip()


def optional_uuid(data: dict, field: str) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        _fail(field, "must be a UUID")


def parse_int(data: dict, field: str, default: int, lo: int | None = None, hi: int | None = None) -> int:
    value = data.get(field)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(field, "must be an integer")
    if lo is not None and value < lo:
        _fail(field, f"must be ≥ {lo}")
    if hi is not None and value > hi:
        _fail(field, f"must be ≤ {hi}")
    return value


def parse_bool(data: dict, field: str, default: bool) -> bool:
    value = data.get(field)
    if value is None:
        return default
    if not isinstance(value, bool):
        _fail(field, "must be a boolean")
    return value


def parse_datetime(data: dict, field: str) -> datetime | None:
    """ISO-8601 string → aware UTC datetime (naive input is taken as UTC)."""
    value = data.get(field)
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        _fail(field, "must be an ISO-8601 datetime")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def check_window(start_field, start, end_field, end):
    if start is not None and end is not None and end <= start:
        raise ValidationError(
            f"{end_field} must be after {start_field}",
            details={end_field: f"must be after {start_field}"},
        )


def expected_version(data: dict) -> int | None:
    """Optional client-supplied version for optimistic locking."""
    return parse_int(data, "version", None, lo=1) if data.get("version") is not None else None
