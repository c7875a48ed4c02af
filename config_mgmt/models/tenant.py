"""
Tenant registry.

A tenant is one bank / financial institution hosted on the platform. Process
mappings and feature flags hang off a tenant and are deleted with it.
"""

from config_mgmt.models import db
from config_mgmt.models.base import AuditMixin, iso


class Tenant(AuditMixin, db.Model):
    __tablename__ = "tenants"

    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    timezone = db.Column(db.String(64), default="UTC")
    default_currency_code = db.Column(db.String(3))
    default_language_code = db.Column(db.String(10))
    tenant_type = db.Column(db.String(50))  # e.g. BANK, FINTECH, SANDBOX
    parent_tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True,
    )
    # "metadata" is reserved on declarative classes
    extra_metadata = db.Column("metadata", db.JSON, default=dict)
    active = db.Column(db.Boolean, nullable=False, default=True)
    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "timezone": self.timezone,
            "default_currency_code": self.default_currency_code,
            "default_language_code": self.default_language_code,
            "tenant_type": self.tenant_type,
            "parent_tenant_id": self.parent_tenant_id,
            "metadata": self.extra_metadata or {},
            "active": self.active,
            "version": self.version,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
