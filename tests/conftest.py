"""
PM Engine Test Suite — Shared Fixtures

Everything runs in-process: engine tests use the fakes in helpers.py, store
and route tests use an in-memory SQLite database shared through StaticPool.

Usage:
    pip install -e ".[test]"
    pytest tests/ -v --tb=short
"""

import sys
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).resolve().parents[1] / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from core.db import init_db, make_engine  # noqa: E402
from core.event_bus import InMemoryEventBus  # noqa: E402


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
def db_engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@pytest.fixture
def bus():
    return InMemoryEventBus()


@pytest.fixture
def captured_events(bus):
    events = []
    bus.subscribe("*", events.append)
    return events


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _single_worker(monkeypatch):
    """In-memory SQLite shares one connection, so passes stay on one thread."""
    from core.config import settings

    monkeypatch.setattr(settings, "pm_max_workers", 1)
