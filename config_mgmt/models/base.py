"""
Shared model building blocks.

  - AuditMixin: UUID string primary key + created/updated timestamps
  - TenantModel: abstract base for tables that always belong to a tenant
  - iso(): datetime → ISO-8601 string helper used by every to_dict()
"""

import uuid
from datetime import datetime, timezone

from config_mgmt.models import db


def new_uuid():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def iso(value):
    return value.isoformat() if value else None


class AuditMixin:
    """UUID primary key and system-managed audit timestamps."""

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class TenantModel(AuditMixin, db.Model):
    """Abstract base for tenant-scoped tables."""
    __abstract__ = True

    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
