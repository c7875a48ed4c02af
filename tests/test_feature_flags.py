"""Feature flag CRUD and evaluation tests."""

from datetime import datetime, timedelta, timezone

import pytest

from config_mgmt.models import db
from config_mgmt.models.feature_flag import FeatureFlag
from config_mgmt.services import feature_flag_service as svc

BASE = "/api/v1/feature-flags"


@pytest.fixture()
def seed_flag(tenant):
    """Enabled, environment-agnostic flag for the test tenant."""
    f = FeatureFlag(
        tenant_id=tenant.id,
        feature_key="instant_payments",
        feature_name="Instant Payments",
        enabled=True,
        rollout_percentage=100,
    )
    db.session.add(f)
    db.session.commit()
    return f


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════


class TestFeatureFlagCrud:

    def test_create_flag(self, client, tenant):
        rv = client.post(BASE, json={
            "tenantId": tenant.id,
            "featureKey": "open_banking",
            "enabled": True,
            "environment": "staging",
            "rolloutPercentage": 25,
        })
        assert rv.status_code == 201
        data = rv.get_json()
        assert data["feature_key"] == "open_banking"
        assert data["feature_name"] == "open_banking"
        assert data["environment"] == "staging"
        assert data["rollout_percentage"] == 25

    def test_create_flag_duplicate(self, client, seed_flag):
        rv = client.post(BASE, json={"tenant_id": seed_flag.tenant_id, "feature_key": "instant_payments"})
        assert rv.status_code == 409

    def test_same_key_other_environment(self, client, seed_flag):
        rv = client.post(BASE, json={
            "tenant_id": seed_flag.tenant_id, "feature_key": "instant_payments", "environment": "prod",
        })
        assert rv.status_code == 201

    def test_create_flag_missing_key(self, client, tenant):
        rv = client.post(BASE, json={"tenant_id": tenant.id})
        assert rv.status_code == 422

    def test_create_flag_unknown_tenant(self, client):
        rv = client.post(BASE, json={
            "tenant_id": "99999999-9999-9999-9999-999999999999", "feature_key": "x",
        })
        assert rv.status_code == 404

    def test_create_flag_upper_case_tenant_id(self, client, tenant):
        rv = client.post(BASE, json={"tenant_id": tenant.id.upper(), "feature_key": "cards"})
        assert rv.status_code == 201
        assert rv.get_json()["tenant_id"] == tenant.id

    @pytest.mark.parametrize("tenant_id", [None, "not-a-uuid"])
    def test_create_flag_bad_tenant_id(self, client, tenant_id):
        rv = client.post(BASE, json={"tenant_id": tenant_id, "feature_key": "x"})
        assert rv.status_code == 422

    def test_blank_environment_is_unscoped(self, client, tenant):
        rv = client.post(BASE, json={"tenant_id": tenant.id, "feature_key": "cards", "environment": " "})
        assert rv.status_code == 201
        assert rv.get_json()["environment"] is None

    @pytest.mark.parametrize("pct", [-1, 101, "50"])
    def test_create_flag_bad_rollout(self, client, tenant, pct):
        rv = client.post(BASE, json={"tenant_id": tenant.id, "feature_key": "x", "rollout_percentage": pct})
        assert rv.status_code == 422

    def test_list_flags(self, client, seed_flag, other_tenant):
        db.session.add(FeatureFlag(tenant_id=other_tenant.id, feature_key="other", feature_name="Other"))
        db.session.commit()
        rv = client.get(BASE, query_string={"tenantId": seed_flag.tenant_id})
        data = rv.get_json()
        assert data["total"] == 1
        assert data["items"][0]["feature_key"] == "instant_payments"

    def test_get_flag(self, client, seed_flag):
        rv = client.get(f"{BASE}/{seed_flag.id}")
        assert rv.status_code == 200
        assert rv.get_json()["feature_key"] == "instant_payments"

    def test_get_flag_not_found(self, client):
        assert client.get(f"{BASE}/99999999-9999-9999-9999-999999999999").status_code == 404

    def test_update_flag(self, client, seed_flag):
        rv = client.put(f"{BASE}/{seed_flag.id}", json={
            "feature_key": "instant_payments", "enabled": False, "description": "Paused",
        })
        assert rv.status_code == 200
        data = rv.get_json()
        assert data["enabled"] is False
        assert data["description"] == "Paused"
        assert data["version"] == 2

    def test_delete_flag(self, client, seed_flag):
        flag_id = seed_flag.id
        assert client.delete(f"{BASE}/{flag_id}").status_code == 204
        assert db.session.get(FeatureFlag, flag_id) is None


# ═══════════════════════════════════════════════════════════════
# Evaluation
# ═══════════════════════════════════════════════════════════════


class TestFeatureFlagCheck:

    def test_check_enabled(self, client, seed_flag):
        rv = client.get(f"{BASE}/check/instant_payments", query_string={"tenantId": seed_flag.tenant_id})
        assert rv.status_code == 200
        assert rv.get_json()["enabled"] is True

    def test_check_unknown_flag(self, client, tenant):
        rv = client.get(f"{BASE}/check/nope", query_string={"tenantId": tenant.id})
        assert rv.get_json()["enabled"] is False

    def test_check_missing_tenant(self, client):
        assert client.get(f"{BASE}/check/instant_payments").status_code == 400

    def test_environment_override(self, client, seed_flag):
        db.session.add(FeatureFlag(
            tenant_id=seed_flag.tenant_id, feature_key="instant_payments",
            feature_name="Instant Payments", environment="prod", enabled=False,
        ))
        db.session.commit()
        assert svc.is_enabled(seed_flag.tenant_id, "instant_payments", environment="prod") is False
        assert svc.is_enabled(seed_flag.tenant_id, "instant_payments", environment="staging") is True

    def test_tenants_are_isolated(self, seed_flag, other_tenant):
        assert svc.is_enabled(other_tenant.id, "instant_payments") is False

    def test_outside_date_window(self, seed_flag):
        seed_flag.start_date = datetime.now(timezone.utc) + timedelta(days=1)
        db.session.commit()
        assert svc.is_enabled(seed_flag.tenant_id, "instant_payments") is False

    def test_inactive_flag(self, seed_flag):
        seed_flag.active = False
        db.session.commit()
        assert svc.is_enabled(seed_flag.tenant_id, "instant_payments") is False

    def test_partial_rollout_is_sticky(self, seed_flag):
        seed_flag.rollout_percentage = 50
        db.session.commit()
        for subject in ("alice", "bob", "carol", "dave"):
            expected = svc.rollout_bucket("instant_payments", subject) < 50
            assert svc.is_enabled(seed_flag.tenant_id, "instant_payments", subject=subject) is expected

    def test_partial_rollout_without_subject(self, seed_flag):
        seed_flag.rollout_percentage = 50
        db.session.commit()
        assert svc.is_enabled(seed_flag.tenant_id, "instant_payments") is False

    def test_update_invalidates_cached_evaluation(self, client, seed_flag):
        assert svc.is_enabled(seed_flag.tenant_id, "instant_payments") is True
        client.put(f"{BASE}/{seed_flag.id}", json={"feature_key": "instant_payments", "enabled": False})
        assert svc.is_enabled(seed_flag.tenant_id, "instant_payments") is False

    def test_rollout_bucket_range(self):
        buckets = {svc.rollout_bucket("k", f"user-{i}") for i in range(500)}
        assert min(buckets) >= 0
        assert max(buckets) <= 99
        assert len(buckets) > 50
