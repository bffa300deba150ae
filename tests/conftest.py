"""
Pytest configuration and fixtures for the facility import tests.

Every test runs against its own in-memory SQLite engine, so no external
database is needed and the application lifespan skips its bootstrap.
"""

import os

os.environ.setdefault("SKIP_DB_INIT", "1")

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_facility_store
from app.db.facility_store import SqlFacilityStore
from app.db.session import build_engine, set_engine
from app.utils.locks import KeyLockManager


@pytest.fixture(autouse=True)
def no_leaked_commit_locks():
    """Every test must leave the process-wide key locks released."""
    yield
    assert KeyLockManager.active_keys() == []


@pytest.fixture
def engine():
    engine = build_engine("sqlite:///:memory:")
    set_engine(engine)
    yield engine
    set_engine(None)
    engine.dispose()


@pytest.fixture
def store(engine):
    return SqlFacilityStore(engine)


@pytest.fixture
def transactional_store(engine):
    return SqlFacilityStore(engine, transactional=True)


@pytest.fixture
def client(store):
    from app.main import app

    app.dependency_overrides[get_facility_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
