# =============================================================================
# Reporting Queries — read side of the access tables
# =============================================================================
#
# Every function here BUILDS a SQLAlchemy Select and executes nothing, so the
# same statements run on the async session in the API and on a sync session
# in scripts and tests:
#
#   rows = (await session.scalars(summaries_query(user_id="42"))).all()
#   rows = session.scalars(summaries_query(user_id="42")).all()
#
# Row shapes:
#   summaries_query / details_query / user_journey_query  → ORM rows
#   last_access_query / first_access_query                → one ORM row
#   activity_summary_query                                → one aggregate row
#   modules_accessed_query / module_users_query /
#   module_breakdown_query                                → grouped rows
#
# is_active() builds no statement: it compares a last_access value with the
# clock.
# =============================================================================

from __future__ import annotations

import datetime as dt

from sqlalchemy import Select, distinct, func, select

from request_tracker.config import TrackerConfig
from request_tracker.db.models import AccessDetail, AccessSummary

DEFAULT_LIMIT = 100

# Window for is_active()
DEFAULT_ACTIVE_MINUTES = 5


def today(config: TrackerConfig, now: dt.datetime | None = None) -> dt.date:
    """Current calendar day in the tracker timezone."""
    return (now or dt.datetime.now(dt.UTC)).astimezone(config.tzinfo).date()


def _date_range(column, start: dt.date | None, end: dt.date | None) -> list:
    if start is not None and end is not None and start > end:
        raise ValueError(f"start {start} is after end {end}")
    conditions = []
    if start is not None:
        conditions.append(column >= start)
    if end is not None:
        conditions.append(column <= end)
    return conditions


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def summaries_query(
    user_id: str | None = None,
    role_id: str | None = None,
    start: dt.date | None = None,
    end: dt.date | None = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> Select:
    """Daily summaries filtered by user, role and date range, newest first."""
    stmt = select(AccessSummary).where(*_date_range(AccessSummary.date, start, end))
    if user_id is not None:
        stmt = stmt.where(AccessSummary.user_id == user_id)
    if role_id is not None:
        stmt = stmt.where(AccessSummary.role_id == role_id)
    return (
        stmt.order_by(AccessSummary.date.desc(), AccessSummary.last_access.desc())
        .limit(limit)
        .offset(offset)
    )


def _for_user(model, user_id: str, role_id: str | None) -> list:
    conditions = [model.user_id == user_id]
    if role_id is not None:
        conditions.append(model.role_id == role_id)
    return conditions


def last_access_query(user_id: str, role_id: str | None = None) -> Select:
    return (
        select(AccessSummary)
        .where(*_for_user(AccessSummary, user_id, role_id))
        .order_by(AccessSummary.last_access.desc())
        .limit(1)
    )


def first_access_query(user_id: str, role_id: str | None = None) -> Select:
    return (
        select(AccessSummary)
        .where(*_for_user(AccessSummary, user_id, role_id))
        .order_by(AccessSummary.first_access.asc())
        .limit(1)
    )


def is_active(
    last_access: dt.datetime | None,
    config: TrackerConfig,
    threshold_minutes: int = DEFAULT_ACTIVE_MINUTES,
    now: dt.datetime | None = None,
) -> bool:
    """
    True when `last_access` (a row from last_access_query) lies within
    `threshold_minutes` of now. Naive timestamps are tracker-local.
    """
    if last_access is None:
        return False
    if last_access.tzinfo is None:
        last_access = last_access.replace(tzinfo=config.tzinfo)
    now = now or dt.datetime.now(dt.UTC)
    return abs(now - last_access) <= dt.timedelta(minutes=threshold_minutes)


def activity_summary_query(
    user_id: str,
    start: dt.date | None = None,
    end: dt.date | None = None,
    role_id: str | None = None,
) -> Select:
    """
    One row: active_days, total_accesses, first_access, last_access.

    Counts are summed over roles, so a user active under two roles on the
    same day counts that day once.
    """
    return select(
        func.count(distinct(AccessSummary.date)).label("active_days"),
        func.coalesce(func.sum(AccessSummary.access_count), 0).label("total_accesses"),
        func.min(AccessSummary.first_access).label("first_access"),
        func.max(AccessSummary.last_access).label("last_access"),
    ).where(
        *_for_user(AccessSummary, user_id, role_id),
        *_date_range(AccessSummary.date, start, end),
    )


# ---------------------------------------------------------------------------
# Details
# ---------------------------------------------------------------------------


def details_query(
    user_id: str | None = None,
    module: str | None = None,
    submodule: str | None = None,
    role_id: str | None = None,
    start: dt.date | None = None,
    end: dt.date | None = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> Select:
    """Endpoint visit rows filtered by user, module/submodule, role and dates."""
    stmt = select(AccessDetail).where(*_date_range(AccessDetail.date, start, end))
    if user_id is not None:
        stmt = stmt.where(AccessDetail.user_id == user_id)
    if module is not None:
        stmt = stmt.where(AccessDetail.module == module)
    if submodule is not None:
        stmt = stmt.where(AccessDetail.submodule == submodule)
    if role_id is not None:
        stmt = stmt.where(AccessDetail.role_id == role_id)
    return (
        stmt.order_by(AccessDetail.last_visit.desc(), AccessDetail.id)
        .limit(limit)
        .offset(offset)
    )


def user_journey_query(user_id: str, day: dt.date) -> Select:
    """The endpoints a user touched on one day, in the order first visited."""
    return (
        select(AccessDetail)
        .where(AccessDetail.user_id == user_id, AccessDetail.date == day)
        .order_by(AccessDetail.first_visit.asc(), AccessDetail.id)
    )


def modules_accessed_query(
    user_id: str,
    start: dt.date | None = None,
    end: dt.date | None = None,
    role_id: str | None = None,
) -> Select:
    """Per (module, submodule): unique endpoints, total visits, last visit."""
    return (
        select(
            AccessDetail.module,
            AccessDetail.submodule,
            func.count(distinct(AccessDetail.endpoint)).label("unique_endpoints"),
            func.sum(AccessDetail.visit_count).label("total_visits"),
            func.max(AccessDetail.last_visit).label("last_visit"),
        )
        .where(
            *_for_user(AccessDetail, user_id, role_id),
            *_date_range(AccessDetail.date, start, end),
        )
        .group_by(AccessDetail.module, AccessDetail.submodule)
        .order_by(func.sum(AccessDetail.visit_count).desc(), AccessDetail.module)
    )


def module_users_query(
    module: str,
    submodule: str | None = None,
    start: dt.date | None = None,
    end: dt.date | None = None,
) -> Select:
    """Users who visited a module: total visits and last visit per user."""
    stmt = select(
        AccessDetail.user_id,
        func.sum(AccessDetail.visit_count).label("total_visits"),
        func.max(AccessDetail.last_visit).label("last_visit"),
    ).where(
        AccessDetail.module == module,
        *_date_range(AccessDetail.date, start, end),
    )
    if submodule is not None:
        stmt = stmt.where(AccessDetail.submodule == submodule)
    return (
        stmt.group_by(AccessDetail.user_id)
        .order_by(func.max(AccessDetail.last_visit).desc(), AccessDetail.user_id)
    )


def module_breakdown_query(
    start: dt.date | None = None,
    end: dt.date | None = None,
    role_id: str | None = None,
) -> Select:
    """Per module: distinct users, total visits, unique endpoints."""
    stmt = select(
        AccessDetail.module,
        func.count(distinct(AccessDetail.user_id)).label("users"),
        func.sum(AccessDetail.visit_count).label("total_visits"),
        func.count(distinct(AccessDetail.endpoint)).label("unique_endpoints"),
    ).where(*_date_range(AccessDetail.date, start, end))
    if role_id is not None:
        stmt = stmt.where(AccessDetail.role_id == role_id)
    return (
        stmt.group_by(AccessDetail.module)
        .order_by(func.sum(AccessDetail.visit_count).desc(), AccessDetail.module)
    )
