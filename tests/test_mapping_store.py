"""SqlAlchemyMappingStore against the test database."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from config_mgmt.core.exceptions import LookupFailedError
from config_mgmt.services.mapping_resolver import MappingResolver
from config_mgmt.services.mapping_store import SqlAlchemyMappingStore

P1 = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
P2 = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"


@pytest.fixture()
def store():
    return SqlAlchemyMappingStore()


class TestFindBestMatch:

    def test_orders_by_specificity(self, store, tenant, make_mapping):
        make_mapping(process_id="tenant.only", tenant_id=tenant.id)
        make_mapping(process_id="tenant.channel", tenant_id=tenant.id, channel_type="WEB")
        make_mapping(process_id="tenant.product", tenant_id=tenant.id, product_id=P1)
        make_mapping(process_id="full", tenant_id=tenant.id, product_id=P1, channel_type="WEB")
        rows = store.find_best_match(tenant.id, "createPayment", P1, "WEB")
        assert [r.process_id for r in rows] == ["full", "tenant.product", "tenant.channel", "tenant.only"]

    def test_priority_within_level(self, store, tenant, make_mapping):
        make_mapping(process_id="second", tenant_id=tenant.id, priority=10)
        make_mapping(process_id="first", tenant_id=tenant.id, priority=1)
        rows = store.find_best_match(tenant.id, "createPayment", None, None)
        assert [r.process_id for r in rows] == ["first", "second"]

    def test_excludes_mismatches(self, store, tenant, other_tenant, make_mapping):
        make_mapping(process_id="other.product", tenant_id=tenant.id, product_id=P2)
        make_mapping(process_id="other.channel", tenant_id=tenant.id, channel_type="BRANCH")
        make_mapping(process_id="inactive", tenant_id=tenant.id, is_active=False)
        make_mapping(process_id="other.tenant", tenant_id=other_tenant.id)
        make_mapping(process_id="vanilla")
        make_mapping(process_id="other.op", operation_id="getBalance", tenant_id=tenant.id)
        assert store.find_best_match(tenant.id, "createPayment", P1, "WEB") == []

    def test_without_tenant_returns_nothing(self, store, make_mapping):
        make_mapping(process_id="vanilla")
        assert store.find_best_match(None, "createPayment", None, None) == []


class TestFindVanilla:

    def test_lowest_priority_wins(self, store, make_mapping):
        make_mapping(process_id="backup", priority=5)
        make_mapping(process_id="default", priority=0)
        assert store.find_vanilla_mapping("createPayment").process_id == "default"

    def test_ignores_inactive_and_tenant_rows(self, store, tenant, make_mapping):
        make_mapping(process_id="disabled", is_active=False)
        make_mapping(process_id="tenant", tenant_id=tenant.id)
        assert store.find_vanilla_mapping("createPayment") is None


class TestEffectiveWindow:

    def test_window_ignored_by_default(self, store, tenant, make_mapping):
        past = datetime.now(timezone.utc) - timedelta(days=10)
        make_mapping(process_id="expired", tenant_id=tenant.id,
                     effective_from=past - timedelta(days=5), effective_to=past)
        assert len(store.find_best_match(tenant.id, "createPayment", None, None)) == 1

    def test_window_enforced_when_enabled(self, tenant, make_mapping):
        now = datetime.now(timezone.utc)
        make_mapping(process_id="expired", tenant_id=tenant.id,
                     effective_from=now - timedelta(days=10), effective_to=now - timedelta(days=1))
        make_mapping(process_id="future", tenant_id=tenant.id, effective_from=now + timedelta(days=1))
        make_mapping(process_id="current", tenant_id=tenant.id,
                     effective_from=now - timedelta(days=1), effective_to=now + timedelta(days=1))
        store = SqlAlchemyMappingStore(enforce_effective_window=True, clock=lambda: now)
        rows = store.find_best_match(tenant.id, "createPayment", None, None)
        assert [r.process_id for r in rows] == ["current"]


class TestFailures:

    def test_driver_error_becomes_lookup_failed(self, store, tenant):
        boom = OperationalError("SELECT", {}, Exception("connection reset"))
        with patch("sqlalchemy.orm.Query.all", side_effect=boom):
            with pytest.raises(LookupFailedError) as exc_info:
                store.find_best_match(tenant.id, "createPayment", None, None)
        assert exc_info.value.operation == "find_best_match"
        assert exc_info.value.__cause__ is boom


class TestResolverOnDatabase:

    def test_end_to_end(self, tenant, make_mapping):
        make_mapping(process_id="vanilla.payment")
        make_mapping(process_id="acme.mobile", tenant_id=tenant.id, channel_type="MOBILE")
        resolver = MappingResolver(SqlAlchemyMappingStore())
        assert resolver.resolve(tenant.id, "createPayment", None, "MOBILE")["process_id"] == "acme.mobile"
        assert resolver.resolve(tenant.id, "createPayment", None, "WEB")["process_id"] == "vanilla.payment"
