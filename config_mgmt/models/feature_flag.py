"""
Feature Flag Model

Tenant-level feature toggles. A flag may be limited to one deployment
environment, a date window, and a percentage rollout over subjects.
"""

from config_mgmt.models import db
from config_mgmt.models.base import TenantModel, iso


class FeatureFlag(TenantModel):
    """Feature toggle owned by a tenant."""
    __tablename__ = "feature_flags"

    feature_key = db.Column(db.String(100), nullable=False)  # e.g. "instant_payments"
    feature_name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    enabled = db.Column(db.Boolean, nullable=False, default=False)
    environment = db.Column(db.String(30))  # NULL = every environment
    rollout_percentage = db.Column(db.Integer, nullable=False, default=100)
    start_date = db.Column(db.DateTime(timezone=True))
    end_date = db.Column(db.DateTime(timezone=True))
    target_user_segments = db.Column(db.JSON, default=list)
    extra_metadata = db.Column("metadata", db.JSON, default=dict)
    active = db.Column(db.Boolean, nullable=False, default=True)
    version = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "feature_key", "environment", name="uq_feature_flag_scope"),
    )
    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "feature_key": self.feature_key,
            "feature_name": self.feature_name,
            "description": self.description,
            "enabled": self.enabled,
            "environment": self.environment,
            "rollout_percentage": self.rollout_percentage,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "target_user_segments": self.target_user_segments or [],
            "metadata": self.extra_metadata or {},
            "active": self.active,
            "version": self.version,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
