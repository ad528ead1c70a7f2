"""Pytest configuration and fixtures for category subsystem tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker

from audio_categories.models.base import Base
from audio_categories.services.category_cache import CategoryQueryCache
from audio_categories.services.category_service import CategoryService
from audio_categories.services.dto import CategoryRecord
from audio_categories.utils.config import Config, reset_config


class FakeClock:
    """Manually advanced monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    """Keep every test away from the real user data directory."""
    monkeypatch.setenv("AUDIO_CATEGORIES_DATA_DIR", str(tmp_path))
    reset_config()
    yield
    reset_config()


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    engine = create_engine("sqlite:///:memory:", echo=False)

    # Register models before create_all()
    from audio_categories.models import audio, category  # noqa: F401

    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import audio_categories.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    db_module.get_session_factory = original_get_session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Query cache with default TTL and a manual clock."""
    return CategoryQueryCache(ttl_seconds=600, max_entries=100, clock=clock)


@pytest.fixture
def service(test_db, cache):
    """CategoryService over the test database with its own cache."""
    return CategoryService(cache=cache, config=Config())


def _make_record(id, name, parent_id=None, level=None, **kwargs) -> CategoryRecord:
    if level is None:
        level = 1 if parent_id is None else 2
    return CategoryRecord(id=id, name=name, parent_id=parent_id, level=level, **kwargs)


@pytest.fixture
def make_record():
    """Factory for CategoryRecord snapshots; level follows parent_id unless given."""
    return _make_record
