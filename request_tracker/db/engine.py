# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Two engines share one schema:
#
#   async engine (asyncpg)   → FastAPI: reporting endpoints and the session
#                              token lookup done by the tracking middleware
#   sync engine (psycopg2)   → aggregation pipeline: Celery workers, and the
#                              worker thread used in inline (sync) mode
#
# The aggregation code is written once against the sync Session so it
# behaves identically whichever way it is dispatched.
#
# COMMIT POLICY:
# 1. Dependency-injected (get_async_session via Depends):
#    Auto-commits when the request handler returns.
# 2. Self-managed (async_session_factory() / get_sync_session()):
#    Used by the middleware and the pipeline, outside the request
#    dependency lifecycle. get_sync_session commits on exit.
# =============================================================================

from collections.abc import AsyncGenerator, Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from request_tracker.config import settings

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# - pool_size=5 / max_overflow=10: reporting traffic is light; the hot path
#   (one upsert pair per request) runs on the sync engine.
# - expire_on_commit=False: attributes stay readable after commit without
#   another round-trip, which async sessions cannot do implicitly.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=10,
)

async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Sync Engine — Pipeline (Lazy Initialization)
# ---------------------------------------------------------------------------
# Created on first use so processes that never run the pipeline (e.g. a web
# node in async dispatch mode) do not need psycopg2.
# ---------------------------------------------------------------------------

_sync_engine = None
_sync_session_factory = None


def _get_sync_engine():
    """Lazily create and cache the sync SQLAlchemy engine."""
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = create_engine(
            settings.database_url_sync,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )
    return _sync_engine


def _get_sync_session_factory():
    """Lazily create and cache the sync session factory."""
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = sessionmaker(
            bind=_get_sync_engine(),
            class_=Session,
            expire_on_commit=False,
        )
    return _sync_session_factory


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """
    Context manager that provides a sync database session.

    Usage:
        with get_sync_session() as session:
            summary = record_access(session, ...)
            # Auto-commits on exit, auto-rollbacks on exception
    """
    factory = _get_sync_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    The session is automatically closed when the request completes.
    If an exception occurs, the transaction is rolled back.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
