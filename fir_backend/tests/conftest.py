"""
Shared fixtures: a fresh SQLite database per test.
"""

import os

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def sqlalchemy_db(tmp_path):
    """Configure a fresh SQLAlchemy SQLite DB for tests."""
    from fir_backend.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    db_path = tmp_path / "fir_test.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    reset_engine()
    init_db()

    yield

    # Restore env
    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()


@pytest.fixture
def db_session(sqlalchemy_db):
    from fir_backend.db.session import SessionLocal, get_engine

    get_engine()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db_session):
    from fir_backend.store import FirStore

    return FirStore(db_session)


@pytest.fixture
def client(sqlalchemy_db):
    """Test client bound to the per-test database"""
    from fir_backend.api import app

    return TestClient(app)


@pytest.fixture
def fir_payload():
    """Factory for a minimal valid FIR creation payload (camelCase, as clients send it)."""
    def _make(**overrides):
        payload = {
            "crime": "theft",
            "ipcSections": ["IPC 379"],
            "summary": "Mobile phone stolen from a parked scooter near the market.",
            "priority": 3,
            "dateTime": "2024-03-15T18:30:00",
            "location": "Sector 17 market, Chandigarh",
        }
        payload.update(overrides)
        return payload
    return _make
