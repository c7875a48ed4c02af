"""
API → process routing model.

An ApiProcessMapping tells the platform which backend process (plugin)
handles an API operation. Scope columns narrow where a row applies:

    tenant_id     NULL → vanilla mapping, the default for every tenant
    product_id    NULL → all products
    channel_type  NULL → all channels (MOBILE, WEB, API, BRANCH, ...)

Several rows may share (tenant_id, operation_id); the resolver picks the
most specific active one, then the lowest priority value.
"""

from config_mgmt.models import db
from config_mgmt.models.base import AuditMixin, iso

HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}

TENANT_WEIGHT = 100
PRODUCT_WEIGHT = 10
CHANNEL_WEIGHT = 1


class ApiProcessMapping(AuditMixin, db.Model):
    __tablename__ = "api_process_mappings"

    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True,
    )
    product_id = db.Column(db.String(36), nullable=True)
    channel_type = db.Column(db.String(30), nullable=True)
    api_path = db.Column(db.String(500))
    http_method = db.Column(db.String(10))
    operation_id = db.Column(db.String(200), nullable=False)
    process_id = db.Column(db.String(200), nullable=False)
    process_version = db.Column(db.String(50))  # NULL = latest
    priority = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    effective_from = db.Column(db.DateTime(timezone=True))
    effective_to = db.Column(db.DateTime(timezone=True))
    parameters = db.Column(db.JSON, default=dict)
    description = db.Column(db.Text)
    created_by = db.Column(db.String(100))
    updated_by = db.Column(db.String(100))
    version = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.Index("ix_apm_operation_tenant", "operation_id", "tenant_id", "is_active"),
        db.Index("ix_apm_process", "process_id"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def is_vanilla(self):
        return self.tenant_id is None

    @property
    def specificity_score(self):
        return specificity_score(self.tenant_id, self.product_id, self.channel_type)

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "channel_type": self.channel_type,
            "api_path": self.api_path,
            "http_method": self.http_method,
            "operation_id": self.operation_id,
            "process_id": self.process_id,
            "process_version": self.process_version,
            "priority": self.priority,
            "is_active": self.is_active,
            "is_vanilla": self.is_vanilla,
            "effective_from": iso(self.effective_from),
            "effective_to": iso(self.effective_to),
            "parameters": self.parameters or {},
            "description": self.description,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "version": self.version,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


def specificity_score(tenant_id, product_id, channel_type):
    """tenant+product+channel > tenant+product > tenant+channel > tenant > vanilla."""
    score = 0
    if tenant_id is not None:
        score += TENANT_WEIGHT
    if product_id is not None:
        score += PRODUCT_WEIGHT
    if channel_type is not None:
        score += CHANNEL_WEIGHT
    return score
