# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌────────────────────────┐       ┌──────────────────────────────────────┐
# │  access_summaries      │       │  access_details                      │
# ├────────────────────────┤       ├──────────────────────────────────────┤
# │ id (PK, uuid)          │──1:N─▶│ id (PK, uuid)                        │
# │ user_id                │       │ summary_id (FK, ON DELETE CASCADE)   │
# │ role_id / role_key     │       │ user_id, role_id, role_name, date    │
# │ role_name              │       │ method, endpoint                     │
# │ date                   │       │ route_name, controller_action        │
# │ access_count           │       │ module, submodule, label             │
# │ first_access           │       │ visit_count                          │
# │ last_access            │       │ first_visit, last_visit              │
# │ session_id, ip, ua     │       │ dedup_key (unique, nullable)         │
# │ device_type, browser,  │       └──────────────────────────────────────┘
# │ platform               │
# └────────────────────────┘       ┌──────────────────────────────────────┐
#   UNIQUE(user_id,                │  failed_tracking_tasks (dead letter) │
#          role_key, date)         └──────────────────────────────────────┘
#
# UNIQUENESS:
# - access_summaries: (user_id, role_key, date). role_key is role_id or ""
#   so that requests without a role collapse onto one row; a unique index
#   over a nullable role_id would treat every NULL as distinct.
# - access_details: dedup_key is a SHA-256 of (user_id, role_key, endpoint,
#   date) in deduplicated mode and NULL in append mode. Append rows never
#   conflict; deduplicated rows conflict exactly on the visit identity.
#
# Both constraints back INSERT ... ON CONFLICT upserts in
# services/aggregator.py; no code path inserts these rows any other way.
# =============================================================================

import datetime as dt
import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

UNKNOWN_MODULE = "unknown"


def new_uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for all tracker tables."""

    pass


class AccessSummary(Base):
    """
    One row per user + role + calendar day.

    access_count only ever grows (through the upsert in record_access);
    first_access is fixed by the earliest event of the day and last_access
    tracks the latest.
    """

    __tablename__ = "access_summaries"
    __table_args__ = (
        UniqueConstraint("user_id", "role_key", "date", name="uq_access_summary_identity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    role_key: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    role_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)

    # --- Counters ---
    access_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    first_access: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_access: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # --- Context from the first event of the day ---
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(50), nullable=True)
    platform: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # ---------------------------------------------------------------------------
    # Relationship: AccessSummary → AccessDetails (one-to-many)
    # ---------------------------------------------------------------------------
    # Details never outlive their summary: ORM deletes cascade through
    # delete-orphan, and the FK carries ON DELETE CASCADE for bulk deletes
    # issued directly against the database.
    # ---------------------------------------------------------------------------
    details: Mapped[list["AccessDetail"]] = relationship(
        "AccessDetail",
        back_populates="summary",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<AccessSummary(id={self.id}, user={self.user_id}, role={self.role_id}, "
            f"date={self.date}, count={self.access_count})>"
        )


class AccessDetail(Base):
    """
    One row per endpoint visited per identity per day (deduplicated mode),
    or one row per request (append mode).
    """

    __tablename__ = "access_details"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    summary_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("access_summaries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Denormalised identity for filtering without a join
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    role_name: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)

    # --- Endpoint ---
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    route_name: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    controller_action: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # --- Classification ---
    module: Mapped[str] = mapped_column(
        String(100), nullable=False, default=UNKNOWN_MODULE, index=True,
    )
    submodule: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # --- Counters ---
    visit_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    first_visit: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_visit: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # SHA-256 hex of the visit identity; NULL in append mode
    dedup_key: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    summary: Mapped["AccessSummary"] = relationship("AccessSummary", back_populates="details")

    def __repr__(self) -> str:
        return (
            f"<AccessDetail(id={self.id}, summary={self.summary_id}, "
            f"endpoint='{self.endpoint}', module={self.module}, visits={self.visit_count})>"
        )


class FailedTrackingTask(Base):
    """
    Dead-letter row for a tracking task that exhausted its retries.

    payload is the JSON request snapshot, so the event can be replayed.
    """

    __tablename__ = "failed_tracking_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    task_name: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False,
    )
    error: Mapped[str] = mapped_column(Text, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    failed_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<FailedTrackingTask(id={self.id}, task={self.task_name}, attempts={self.attempts})>"


# =============================================================================
# Database Indexes — reporting read paths
# =============================================================================

# Modules visited by a user on a day / in a range
access_detail_user_module_idx = Index(
    "idx_access_detail_user_date_module",
    AccessDetail.user_id,
    AccessDetail.date,
    AccessDetail.module,
)

# Who accessed a module / submodule in a range
access_detail_module_idx = Index(
    "idx_access_detail_module_submodule_date",
    AccessDetail.module,
    AccessDetail.submodule,
    AccessDetail.date,
)

access_detail_summary_module_idx = Index(
    "idx_access_detail_summary_module",
    AccessDetail.summary_id,
    AccessDetail.module,
)

access_summary_role_date_idx = Index(
    "idx_access_summary_role_date",
    AccessSummary.role_id,
    AccessSummary.date,
)
