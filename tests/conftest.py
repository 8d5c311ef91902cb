"""Shared test fixtures: file-backed SQLite DB, sessions, settings, API client."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import models  # noqa: F401  (registers tables on Base.metadata)
from database import Base, create_db_engine, get_db, get_settings
from services.rate_limit_service import reset_limiters

# 2026-10-17 09:00:00 UTC
T0 = 1_792_227_600_000
HOUR_MS = 60 * 60 * 1000

ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40
CAROL = "0x" + "c" * 40
DAVE = "0x" + "d" * 40


@pytest.fixture
def engine(tmp_path):
    """
    File-backed SQLite so concurrent sessions use separate connections
    and queue on the database write lock.
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'coinflip_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    """Live settings object; any attribute changed in a test is restored afterwards."""
    current = get_settings()
    snapshot = current.model_dump()
    yield current
    for key, value in snapshot.items():
        setattr(current, key, value)


@pytest.fixture
def client(session_factory, settings):
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    reset_limiters()
    yield TestClient(app)
    app.dependency_overrides.clear()
    reset_limiters()
