"""Commit helper for models that carry an optimistic-lock ``version`` column."""

from sqlalchemy.orm.exc import StaleDataError

from config_mgmt.core.exceptions import ConflictError
from config_mgmt.models import db


def commit_versioned(resource, record_id):
    """Commit, turning a concurrent-update version clash into ConflictError."""
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError(resource, "version", str(record_id)) from exc
