"""
App-level tests: configuration, health probes, request middleware,
logging formatters and rate-limit wiring.
"""

import json
import logging
import uuid

import pytest

from config_mgmt import create_app, limiter
from config_mgmt.config import ProductionConfig, TestingConfig, config
from config_mgmt.middleware.logging_config import JSONFormatter, ReadableFormatter


class TestConfig:

    def test_testing_config(self, app):
        assert app.config["TESTING"] is True
        assert app.config["SQLALCHEMY_DATABASE_URI"] == TestingConfig.SQLALCHEMY_DATABASE_URI
        assert app.config["RATELIMIT_ENABLED"] is False
        assert app.config["MAPPING_ENFORCE_EFFECTIVE_WINDOW"] is False

    def test_resolver_registered(self, app):
        assert "mapping_resolver" in app.extensions

    def test_production_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError):
            create_app("production")

    def test_production_requires_secret_key(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/config")
        monkeypatch.delenv("SECRET_KEY", raising=False)
        with pytest.raises(RuntimeError):
            create_app("production")


class TestHealth:

    def test_ready(self, client):
        rv = client.get("/api/v1/health/ready")
        assert rv.status_code == 200
        assert rv.get_json()["status"] == "ok"

    def test_live(self, client):
        rv = client.get("/api/v1/health/live")
        assert rv.status_code == 200
        data = rv.get_json()
        assert data["checks"]["database"]["status"] == "ok"
        assert data["checks"]["cache"]["backend"] == "memory"


class TestMiddleware:

    def test_request_headers(self, client):
        rv = client.get("/api/v1/health/ready", headers={"X-Request-ID": "req-123"})
        assert rv.headers["X-Request-ID"] == "req-123"
        assert float(rv.headers["X-Request-Duration-Ms"]) >= 0

    def test_request_log_carries_scope(self, client, tenant, caplog):
        caplog.set_level(logging.DEBUG, logger="config_mgmt.middleware.timing")
        client.get("/api/v1/api-process-mappings/resolve",
                   query_string={"tenantId": tenant.id, "operationId": "createPayment"})
        record = [r for r in caplog.records if r.name == "config_mgmt.middleware.timing"][-1]
        assert record.tenant_id == tenant.id
        assert record.operation_id == "createPayment"
        assert record.status == 404

    def test_unknown_route_is_json_404(self, client):
        rv = client.get("/api/v1/nope")
        assert rv.status_code == 404
        assert rv.get_json()["error"] == "Not found"

    def test_method_not_allowed(self, client):
        rv = client.patch("/api/v1/health/ready")
        assert rv.status_code == 405


class RateLimitedConfig(TestingConfig):
    RATELIMIT_ENABLED = True
    PROCESS_MAPPING_RATE_LIMIT = "5/minute"


@pytest.fixture(scope="module")
def limited_client():
    """A separate app with rate limiting switched on and a small resolve budget.

    Built once: the limits attach to the shared blueprints, so a second
    app would stack a duplicate limit on each of them.
    """
    with pytest.MonkeyPatch.context() as mp:
        mp.setitem(config, "ratelimited", RateLimitedConfig)
        limited_app = create_app("ratelimited")
    limiter.reset()
    try:
        yield limited_app.test_client()
    finally:
        limiter.reset()
        limiter.enabled = False


class TestRateLimiting:

    RESOLVE = "/api/v1/api-process-mappings/resolve"

    def _resolve(self, client, remote_addr, tenant_id):
        return client.get(
            self.RESOLVE,
            query_string={"tenantId": tenant_id, "operationId": "createPayment"},
            environ_base={"REMOTE_ADDR": remote_addr},
        )

    def test_rotating_tenant_id_does_not_reset_budget(self, limited_client):
        statuses = [
            self._resolve(limited_client, "10.1.0.1", str(uuid.uuid4())).status_code
            for _ in range(6)
        ]
        assert statuses[:5] == [404] * 5
        assert statuses[5] == 429

    def test_one_caller_cannot_spend_another_callers_budget(self, limited_client):
        shared_tenant = str(uuid.uuid4())
        for _ in range(6):
            self._resolve(limited_client, "10.1.0.2", shared_tenant)
        assert self._resolve(limited_client, "10.1.0.3", shared_tenant).status_code == 404

    def test_health_is_exempt(self, limited_client):
        for _ in range(8):
            rv = limited_client.get("/api/v1/health/ready", environ_base={"REMOTE_ADDR": "10.1.0.4"})
        assert rv.status_code == 200


class TestLogging:

    def _record(self, **extra):
        record = logging.LogRecord("config_mgmt.test", logging.INFO, __file__, 10, "resolved %s", ("x",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter_includes_context(self):
        out = json.loads(JSONFormatter().format(self._record(tenant_id="t-1", resolution="vanilla")))
        assert out["message"] == "resolved x"
        assert out["tenant_id"] == "t-1"
        assert out["resolution"] == "vanilla"
        assert "operation_id" not in out

    def test_readable_formatter(self):
        out = ReadableFormatter().format(self._record(duration_ms=12.4, tenant_id="t-1"))
        assert "resolved x" in out
        assert "[12ms]" in out

    def test_readable_formatter_names_tenant_once(self):
        record = logging.LogRecord(
            "config_mgmt.test", logging.INFO, __file__, 10,
            "No process mapping for operation=%s tenant=%s", ("op", "t-1"), None,
        )
        record.tenant_id = "t-1"
        assert ReadableFormatter().format(record).count("tenant=t-1") == 1
