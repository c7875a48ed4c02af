"""
Process-mapping resolution.

Picks the single ApiProcessMapping that should handle a request for
(tenant_id, operation_id, product_id, channel_type):

  1. tenant-scoped candidates from the store, most specific first,
     lowest priority value breaking ties
  2. otherwise the vanilla (tenant-less) mapping for the operation
  3. otherwise None

An empty result is a valid answer, not an error. Results, including
"no mapping", are memoized in the ResolutionCache until invalidated.
"""

import logging

from config_mgmt.core.exceptions import ValidationError
from config_mgmt.services.cache_service import ResolutionCache, ResolutionKey

logger = logging.getLogger(__name__)

PATH_TENANT = "tenant"
PATH_VANILLA = "vanilla"
PATH_NONE = "none"


def rank_candidates(candidates, operation_id):
    """Drop inactive / mismatched rows and order by specificity, then priority.

    The sort is stable, so a store that already orders its results keeps
    its own tie-break (e.g. most recently updated first).
    """
    eligible = [
        c for c in candidates
        if c.is_active and c.operation_id == operation_id and c.tenant_id is not None
    ]
    return sorted(eligible, key=lambda c: (-c.specificity_score, c.priority or 0))


class MappingResolver:
    """Resolves API operations to processes on top of a MappingStore."""

    def __init__(self, store, cache: ResolutionCache | None = None):
        self.store = store
        self.cache = cache

    def resolve(self, tenant_id, operation_id, product_id=None, channel_type=None):
        """Return the winning mapping as a dict, or None when nothing applies.

        Raises:
            ValidationError: operation_id missing or empty.
            LookupFailedError: the store failed; propagated unchanged.
        """
        if not isinstance(operation_id, str) or not operation_id.strip():
            raise ValidationError("operation_id is required", details={"operation_id": "missing"})

        key = ResolutionKey(tenant_id, operation_id, product_id, channel_type)
        if self.cache is None:
            return self._lookup(key)

        hit, cached = self.cache.get(key)
        if hit:
            return cached

        with self.cache.lock_for(key):
            # another request may have filled the entry while we waited
            hit, cached = self.cache.get(key)
            if hit:
                return cached
            token = self.cache.generation(tenant_id)
            mapping = self._lookup(key)
            self.cache.put(key, mapping, token=token)
            return mapping

    def _lookup(self, key: ResolutionKey):
        candidates = self.store.find_best_match(
            key.tenant_id, key.operation_id, key.product_id, key.channel_type,
        )
        ranked = rank_candidates(candidates or [], key.operation_id)
        if ranked:
            return self._resolved(key, ranked[0], PATH_TENANT)

        vanilla = self.store.find_vanilla_mapping(key.operation_id)
        if vanilla is not None and vanilla.is_active and vanilla.operation_id == key.operation_id:
            return self._resolved(key, vanilla, PATH_VANILLA)

        logger.debug(
            "No process mapping for operation=%s tenant=%s product=%s channel=%s",
            key.operation_id, key.tenant_id, key.product_id, key.channel_type,
            extra={"tenant_id": key.tenant_id, "operation_id": key.operation_id, "resolution": PATH_NONE},
        )
        return None

    @staticmethod
    def _resolved(key, mapping, path):
        logger.debug(
            "Resolved operation=%s -> process=%s (tenant=%s, path=%s)",
            key.operation_id, mapping.process_id, mapping.tenant_id, path,
            extra={"tenant_id": key.tenant_id, "operation_id": key.operation_id, "resolution": path},
        )
        return mapping.to_dict()
