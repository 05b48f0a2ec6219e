# =============================================================================
# Shared fixtures — file-backed SQLite with the tracker schema
# =============================================================================
#
# SQLite supports INSERT ... ON CONFLICT ... RETURNING (3.35+), so the real
# upsert statements run unchanged. A file database (not :memory:) lets the
# concurrency tests open one connection per thread.
# Foreign keys are switched on per connection so ON DELETE CASCADE applies.
# =============================================================================

from __future__ import annotations

from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from request_tracker.config import TrackerConfig
from request_tracker.db.models import Base
from request_tracker.services.registry import TrackingRegistry


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tracker.db'}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=Session, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def session_scope(session_factory):
    """Drop-in replacement for get_sync_session bound to the test database."""

    @contextmanager
    def scope():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


@pytest.fixture
def config():
    return TrackerConfig.build(exclude=["regex:^health", "docs"])


@pytest.fixture
def isolated_registry():
    return TrackingRegistry()
