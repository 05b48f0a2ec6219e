# =============================================================================
# Database Package
# =============================================================================
# Provides the async (API) and sync (pipeline) SQLAlchemy engines, session
# management, and ORM models.
#
# Key exports:
#   - get_async_session: FastAPI dependency for database sessions
#   - get_sync_session: context manager used by the pipeline and workers
#   - Base: SQLAlchemy declarative base for ORM models
#   - AccessSummary, AccessDetail, FailedTrackingTask: ORM models
# =============================================================================
