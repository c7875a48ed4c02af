"""
Tenant-Aware Cache Service

Provides a thin cache wrapper with:
  - Process-mapping resolution cache (positive + negative entries)
  - Feature flag evaluation cache
  - Per-tenant and global invalidation helpers

Uses Redis when REDIS_URL points at a Redis server, falls back to
a simple in-memory dict for development/testing.
"""

import json
import logging
import threading
import time
import zlib
from typing import NamedTuple
from urllib.parse import quote

logger = logging.getLogger(__name__)

# ── In-memory fallback ───────────────────────────────────────────────────


class _MemoryBackend:
    """Simple dict cache for dev/testing."""

    def __init__(self):
        self._store: dict = {}  # key → (value_json, expire_ts)
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            val, expires = entry
            if expires and time.time() > expires:
                self._store.pop(key, None)
                return None
            return val

    def setex(self, key, ttl_seconds, value):
        with self._lock:
            self._store[key] = (value, time.time() + ttl_seconds)

    def delete(self, *keys):
        with self._lock:
            for k in keys:
                self._store.pop(k, None)

    def keys(self, pattern):
        """Simple glob matching for 'prefix*' patterns."""
        with self._lock:
            if pattern.endswith("*"):
                prefix = pattern[:-1]
                return [k for k in self._store if k.startswith(prefix)]
            return [k for k in self._store if k == pattern]

    def flushdb(self):
        with self._lock:
            self._store.clear()

    def ping(self):
        return True


# ── Singleton cache backend ──────────────────────────────────────────────

_backend = None
_redis_url = None


def configure_backend(redis_url):
    """Select the backend URL; the connection itself is opened lazily."""
    global _backend, _redis_url
    _redis_url = redis_url
    _backend = None


def _get_backend():
    """Lazy-initialise Redis or fall back to in-memory."""
    global _backend
    if _backend is not None:
        return _backend

    if _redis_url and not _redis_url.startswith("memory://"):
        try:
            import redis as _redis
            _backend = _redis.from_url(_redis_url, decode_responses=True)
            _backend.ping()
            logger.info("Cache: using Redis at %s", _redis_url.split("@")[-1])
        except Exception as exc:
            logger.warning("Redis unavailable (%s) — falling back to memory cache", exc)
            _backend = _MemoryBackend()
    else:
        _backend = _MemoryBackend()
    return _backend


# ── Default TTLs ─────────────────────────────────────────────────────────

RESOLUTION_TTL = 300   # 5 minutes
FLAG_TTL = 60
DEFAULT_TTL = 300

RESOLUTION_PREFIX = "apm:resolve:"
FLAG_PREFIX = "ff:"


# ── Key builders ─────────────────────────────────────────────────────────

def _part(value):
    """Encode one key segment; None and "" must stay distinguishable."""
    if value is None:
        return "-"
    return "=" + quote(str(value), safe="")


def _flag_key(tenant_id, flag_key, environment=None, subject=None):
    return f"{FLAG_PREFIX}{_part(tenant_id)}:{_part(flag_key)}:{_part(environment)}:{_part(subject)}"


def _delete_pattern(be, pattern):
    keys = be.keys(pattern)
    if keys:
        be.delete(*keys)
    return len(keys or [])


# ── Resolution cache ─────────────────────────────────────────────────────


class ResolutionKey(NamedTuple):
    tenant_id: str | None
    operation_id: str
    product_id: str | None
    channel_type: str | None

    def cache_key(self):
        return (
            f"{RESOLUTION_PREFIX}{_part(self.tenant_id)}:{_part(self.operation_id)}:"
            f"{_part(self.product_id)}:{_part(self.channel_type)}"
        )


class ResolutionCache:
    """Memoizes resolver output keyed by the four-part resolution key.

    Stores either a mapping dict or an explicit "not found" marker. A
    ``generation`` token taken before a store lookup lets ``put`` drop a
    result that was computed across an ``invalidate`` call.
    """

    def __init__(self, ttl=RESOLUTION_TTL, backend=None, lock_stripes=64):
        self.ttl = ttl
        self._backend = backend
        self._gen_lock = threading.Lock()
        self._global_gen = 0
        self._tenant_gens: dict = {}
        self._key_locks = [threading.Lock() for _ in range(lock_stripes)]

    @property
    def backend(self):
        return self._backend if self._backend is not None else _get_backend()

    def get(self, key: ResolutionKey):
        """Return ``(hit, mapping_or_None)``."""
        raw = self.backend.get(key.cache_key())
        if raw is None:
            return False, None
        try:
            entry = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return False, None
        if not entry.get("found"):
            return True, None
        return True, entry.get("mapping")

    def put(self, key: ResolutionKey, mapping, token=None):
        """Cache a result; returns False when ``token`` is stale."""
        entry = {"found": True, "mapping": mapping} if mapping is not None else {"found": False}
        with self._gen_lock:
            if token is not None and token != self._current_generation(key.tenant_id):
                logger.debug("Dropping stale resolution for %s", key)
                return False
            self.backend.setex(key.cache_key(), self.ttl, json.dumps(entry))
        return True

    def invalidate(self, tenant_id=None):
        """Drop one tenant's entries, or every resolution entry when tenant_id is None."""
        with self._gen_lock:
            if tenant_id is None:
                self._global_gen += 1
                removed = _delete_pattern(self.backend, f"{RESOLUTION_PREFIX}*")
            else:
                self._tenant_gens[tenant_id] = self._tenant_gens.get(tenant_id, 0) + 1
                removed = _delete_pattern(self.backend, f"{RESOLUTION_PREFIX}{_part(tenant_id)}:*")
        logger.info(
            "Invalidated process mapping cache scope=%s entries=%d",
            tenant_id or "all", removed,
            extra={"tenant_id": tenant_id},
        )
        return removed

    def generation(self, tenant_id):
        with self._gen_lock:
            return self._current_generation(tenant_id)

    def _current_generation(self, tenant_id):
        return self._global_gen, self._tenant_gens.get(tenant_id, 0)

    def lock_for(self, key: ResolutionKey):
        """Striped lock giving at-most-one concurrent store query per key."""
        idx = zlib.crc32(key.cache_key().encode("utf-8")) % len(self._key_locks)
        return self._key_locks[idx]


resolution_cache = ResolutionCache()


def init_cache(app):
    """Bind cache settings from the Flask config."""
    configure_backend(app.config.get("REDIS_URL"))
    resolution_cache.ttl = app.config.get("RESOLUTION_CACHE_TTL", RESOLUTION_TTL)


# ── Generic helpers ──────────────────────────────────────────────────────


def get_cached_flag(tenant_id, flag_key, environment=None, subject=None):
    """Return cached flag evaluation (bool), or None on miss."""
    return get_cached(_flag_key(tenant_id, flag_key, environment, subject))


def set_cached_flag(tenant_id, flag_key, environment, subject, enabled):
    set_cached(_flag_key(tenant_id, flag_key, environment, subject), enabled, ttl=FLAG_TTL)


def invalidate_flag_cache(tenant_id):
    """Remove every cached flag evaluation for a tenant."""
    _delete_pattern(_get_backend(), f"{FLAG_PREFIX}{_part(tenant_id)}:*")


def invalidate_tenant_cache(tenant_id):
    """Remove all cached data for a tenant (e.g. after the tenant is deleted)."""
    resolution_cache.invalidate(tenant_id)
    invalidate_flag_cache(tenant_id)


def get_cached(key):
    """Generic get; None on a miss or an undecodable entry."""
    raw = _get_backend().get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None


def set_cached(key, value, ttl=DEFAULT_TTL):
    """Generic set."""
    _get_backend().setex(key, ttl, json.dumps(value))


def clear_all():
    """Flush entire cache (use sparingly — mainly for testing)."""
    _get_backend().flushdb()


def health_check():
    """Return cache backend status."""
    try:
        be = _get_backend()
        be.ping()
        backend_type = "redis" if not isinstance(be, _MemoryBackend) else "memory"
        return {"status": "ok", "backend": backend_type}
    except Exception as exc:
        return {"status": "error", "detail": str(exc)}
