"""
Mapping store — the two queries process-mapping resolution depends on.

    find_best_match(tenant_id, operation_id, product_id, channel_type)
        Active tenant-scoped rows for the operation whose product/channel is a
        wildcard (NULL) or equal to the input, most specific first:
            tenant+product+channel > tenant+product > tenant+channel > tenant
        then priority ASC, then most recently updated. Never vanilla rows.

    find_vanilla_mapping(operation_id)
        The active tenant-less row for the operation (lowest priority wins).

Driver failures surface as LookupFailedError. Nothing here retries.
"""

import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import case, or_
from sqlalchemy.exc import SQLAlchemyError

from config_mgmt.core.exceptions import LookupFailedError
from config_mgmt.models import db
from config_mgmt.models.process_mapping import ApiProcessMapping

logger = logging.getLogger(__name__)


class MappingStore(Protocol):
    def find_best_match(self, tenant_id, operation_id, product_id, channel_type) -> list:
        ...

    def find_vanilla_mapping(self, operation_id):
        ...


class SqlAlchemyMappingStore:
    """MappingStore backed by the ``api_process_mappings`` table."""

    def __init__(self, enforce_effective_window=False, clock=None):
        self.enforce_effective_window = enforce_effective_window
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def find_best_match(self, tenant_id, operation_id, product_id=None, channel_type=None):
        if tenant_id is None:
            return []
        m = ApiProcessMapping
        q = m.query.filter(
            m.is_active.is_(True),
            m.operation_id == operation_id,
            m.tenant_id == tenant_id,
        )
        q = q.filter(_wildcard_or_equal(m.product_id, product_id))
        q = q.filter(_wildcard_or_equal(m.channel_type, channel_type))
        q = self._within_window(q).order_by(
            case((m.product_id.is_(None), 1), else_=0),
            case((m.channel_type.is_(None), 1), else_=0),
            m.priority.asc(),
            m.updated_at.desc(),
            m.id.asc(),
        )
        return self._run("find_best_match", q.all)

    def find_vanilla_mapping(self, operation_id):
        m = ApiProcessMapping
        q = m.query.filter(
            m.is_active.is_(True),
            m.operation_id == operation_id,
            m.tenant_id.is_(None),
        )
        q = self._within_window(q).order_by(m.priority.asc(), m.updated_at.desc(), m.id.asc())
        return self._run("find_vanilla_mapping", q.first)

    def _within_window(self, q):
        if not self.enforce_effective_window:
            return q
        m = ApiProcessMapping
        now = self._clock()
        return q.filter(
            or_(m.effective_from.is_(None), m.effective_from <= now),
            or_(m.effective_to.is_(None), m.effective_to > now),
        )

    def _run(self, operation, fetch):
        try:
            return fetch()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Mapping store %s failed: %s", operation, exc)
            raise LookupFailedError(operation, type(exc).__name__) from exc


def _wildcard_or_equal(column, value):
    if value is None:
        return column.is_(None)
    return or_(column.is_(None), column == value)
