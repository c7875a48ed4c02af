"""
Shared pytest fixtures for the configuration management test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB + cache reset (autouse)
    - client: Flask test client (function-scoped)
    - tenant / other_tenant: Pre-created Tenant entities
    - make_mapping: factory that persists an ApiProcessMapping
"""

import pytest

from config_mgmt import create_app
from config_mgmt.models import db as _db
from config_mgmt.models.process_mapping import ApiProcessMapping
from config_mgmt.models.tenant import Tenant
from config_mgmt.services import cache_service
from config_mgmt.services.cache_service import resolution_cache


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, clear caches, recreate tables afterwards."""
    with app.app_context():
        resolution_cache.invalidate()
        cache_service.clear_all()
        yield
        cache_service.clear_all()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


def _add_tenant(code, name):
    t = Tenant(code=code, name=name, tenant_type="BANK")
    _db.session.add(t)
    _db.session.commit()
    return t


@pytest.fixture()
def tenant():
    """Create a test tenant."""
    return _add_tenant("acme-bank", "Acme Bank")


@pytest.fixture()
def other_tenant():
    return _add_tenant("globex-bank", "Globex Bank")


@pytest.fixture()
def make_mapping():
    """Return a factory that inserts an active mapping and returns it."""

    def _make(operation_id="createPayment", process_id="payment.standard", **kw):
        kw.setdefault("is_active", True)
        kw.setdefault("priority", 0)
        m = ApiProcessMapping(operation_id=operation_id, process_id=process_id, **kw)
        _db.session.add(m)
        _db.session.commit()
        return m

    return _make
