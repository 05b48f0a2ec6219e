# =============================================================================
# Reporting API — read-only views over the access tables
# =============================================================================
#
# Thin async layer: every endpoint executes one statement built by
# services/reporting.py on the request-scoped AsyncSession.
#
#   GET /access/summaries                       summaries by user/role/dates
#   GET /access/details                         details by user/module/dates
#   GET /access/users/{user_id}/last            most recent access
#   GET /access/users/{user_id}/first           earliest access
#   GET /access/users/{user_id}/active          accessed within N minutes
#   GET /access/users/{user_id}/today           today's summaries
#   GET /access/users/{user_id}/activity        totals over a range
#   GET /access/users/{user_id}/modules         modules accessed
#   GET /access/users/{user_id}/journey         one day's visits in order
#
# The per-user views (except journey) accept an optional role_id filter.
#   GET /access/modules                         module breakdown
#   GET /access/modules/{module}/users          users who accessed a module
#
# Authorization is the host application's concern (mount the router behind
# its own dependencies).
# =============================================================================

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from request_tracker.config import TrackerConfig, get_tracker_config
from request_tracker.db.engine import get_async_session
from request_tracker.db.models import AccessSummary
from request_tracker.models.responses import (
    AccessDetailListResponse,
    AccessDetailResponse,
    AccessSummaryListResponse,
    AccessSummaryResponse,
    ActiveStatusResponse,
    ActivitySummaryResponse,
    ModuleBreakdownItem,
    ModuleBreakdownResponse,
    ModulesAccessedResponse,
    ModuleUsageResponse,
    ModuleUserResponse,
    ModuleUsersResponse,
    UserJourneyResponse,
)
from request_tracker.services import reporting

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/access", tags=["Access Reports"])


def _check_range(start: date | None, end: date | None) -> None:
    if start is not None and end is not None and start > end:
        raise HTTPException(
            status_code=422,
            detail=f"start ({start}) must not be after end ({end}).",
        )


# ---------------------------------------------------------------------------
# GET /access/summaries — Daily Summaries
# ---------------------------------------------------------------------------


@router.get(
    "/summaries",
    response_model=AccessSummaryListResponse,
    summary="List daily access summaries",
)
async def list_summaries(
    user_id: str | None = Query(default=None),
    role_id: str | None = Query(default=None),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_async_session),
) -> AccessSummaryListResponse:
    _check_range(start, end)
    stmt = reporting.summaries_query(user_id, role_id, start, end, limit, offset)
    rows = list((await session.scalars(stmt)).all())
    return AccessSummaryListResponse(
        summaries=[AccessSummaryResponse.model_validate(r) for r in rows],
        count=len(rows),
    )


# ---------------------------------------------------------------------------
# GET /access/details — Endpoint Visits
# ---------------------------------------------------------------------------


@router.get(
    "/details",
    response_model=AccessDetailListResponse,
    summary="List endpoint visit rows",
)
async def list_details(
    user_id: str | None = Query(default=None),
    module: str | None = Query(default=None),
    submodule: str | None = Query(default=None),
    role_id: str | None = Query(default=None),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_async_session),
) -> AccessDetailListResponse:
    _check_range(start, end)
    stmt = reporting.details_query(
        user_id, module, submodule, role_id, start, end, limit, offset,
    )
    rows = list((await session.scalars(stmt)).all())
    return AccessDetailListResponse(
        details=[AccessDetailResponse.model_validate(r) for r in rows],
        count=len(rows),
    )


# ---------------------------------------------------------------------------
# Per-user views
# ---------------------------------------------------------------------------


@router.get(
    "/users/{user_id}/last",
    response_model=AccessSummaryResponse,
    summary="Most recent access of a user",
)
async def last_access(
    user_id: str,
    role_id: str | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> AccessSummaryResponse:
    row = await session.scalar(reporting.last_access_query(user_id, role_id))
    return _summary_or_404(row, user_id)


@router.get(
    "/users/{user_id}/first",
    response_model=AccessSummaryResponse,
    summary="Earliest recorded access of a user",
)
async def first_access(
    user_id: str,
    role_id: str | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> AccessSummaryResponse:
    row = await session.scalar(reporting.first_access_query(user_id, role_id))
    return _summary_or_404(row, user_id)


@router.get(
    "/users/{user_id}/active",
    response_model=ActiveStatusResponse,
    summary="Whether a user accessed the application in the last N minutes",
)
async def active_status(
    user_id: str,
    minutes: int = Query(default=reporting.DEFAULT_ACTIVE_MINUTES, ge=1, le=1440),
    role_id: str | None = Query(default=None),
    config: TrackerConfig = Depends(get_tracker_config),
    session: AsyncSession = Depends(get_async_session),
) -> ActiveStatusResponse:
    row = await session.scalar(reporting.last_access_query(user_id, role_id))
    last = row.last_access if row is not None else None
    return ActiveStatusResponse(
        user_id=user_id,
        role_id=role_id,
        active=reporting.is_active(last, config, minutes),
        last_access=last,
        threshold_minutes=minutes,
    )


@router.get(
    "/users/{user_id}/today",
    response_model=AccessSummaryListResponse,
    summary="Today's summaries for a user (tracker timezone)",
)
async def today_activity(
    user_id: str,
    role_id: str | None = Query(default=None),
    config: TrackerConfig = Depends(get_tracker_config),
    session: AsyncSession = Depends(get_async_session),
) -> AccessSummaryListResponse:
    day = reporting.today(config)
    rows = list((await session.scalars(
        reporting.summaries_query(user_id=user_id, role_id=role_id, start=day, end=day),
    )).all())
    return AccessSummaryListResponse(
        summaries=[AccessSummaryResponse.model_validate(r) for r in rows],
        count=len(rows),
    )


@router.get(
    "/users/{user_id}/activity",
    response_model=ActivitySummaryResponse,
    summary="Activity totals for a user over a date range",
)
async def activity_summary(
    user_id: str,
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    role_id: str | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> ActivitySummaryResponse:
    _check_range(start, end)
    row = (await session.execute(
        reporting.activity_summary_query(user_id, start, end, role_id),
    )).one()
    return ActivitySummaryResponse(
        user_id=user_id,
        role_id=role_id,
        start=start,
        end=end,
        active_days=row.active_days,
        total_accesses=row.total_accesses,
        first_access=row.first_access,
        last_access=row.last_access,
    )


@router.get(
    "/users/{user_id}/modules",
    response_model=ModulesAccessedResponse,
    summary="Modules a user accessed",
)
async def modules_accessed(
    user_id: str,
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    role_id: str | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> ModulesAccessedResponse:
    _check_range(start, end)
    result = await session.execute(
        reporting.modules_accessed_query(user_id, start, end, role_id),
    )
    return ModulesAccessedResponse(
        user_id=user_id,
        role_id=role_id,
        modules=[
            ModuleUsageResponse(
                module=row.module,
                submodule=row.submodule,
                unique_endpoints=row.unique_endpoints,
                total_visits=row.total_visits or 0,
                last_visit=row.last_visit,
            )
            for row in result
        ],
    )


@router.get(
    "/users/{user_id}/journey",
    response_model=UserJourneyResponse,
    summary="Endpoints a user visited on one day, in order",
)
async def user_journey(
    user_id: str,
    day: date | None = Query(default=None, description="Defaults to today"),
    config: TrackerConfig = Depends(get_tracker_config),
    session: AsyncSession = Depends(get_async_session),
) -> UserJourneyResponse:
    day = day or reporting.today(config)
    rows = (await session.scalars(reporting.user_journey_query(user_id, day))).all()
    return UserJourneyResponse(
        user_id=user_id,
        date=day,
        steps=[AccessDetailResponse.model_validate(r) for r in rows],
    )


# ---------------------------------------------------------------------------
# Per-module views
# ---------------------------------------------------------------------------


@router.get(
    "/modules",
    response_model=ModuleBreakdownResponse,
    summary="Visits broken down by module",
)
async def module_breakdown(
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    role_id: str | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> ModuleBreakdownResponse:
    _check_range(start, end)
    result = await session.execute(
        reporting.module_breakdown_query(start, end, role_id),
    )
    return ModuleBreakdownResponse(
        start=start,
        end=end,
        modules=[
            ModuleBreakdownItem(
                module=row.module,
                users=row.users,
                total_visits=row.total_visits or 0,
                unique_endpoints=row.unique_endpoints,
            )
            for row in result
        ],
    )


@router.get(
    "/modules/{module}/users",
    response_model=ModuleUsersResponse,
    summary="Users who accessed a module",
)
async def module_users(
    module: str,
    submodule: str | None = Query(default=None),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> ModuleUsersResponse:
    _check_range(start, end)
    result = await session.execute(
        reporting.module_users_query(module, submodule, start, end),
    )
    return ModuleUsersResponse(
        module=module,
        submodule=submodule,
        users=[
            ModuleUserResponse(
                user_id=row.user_id,
                total_visits=row.total_visits or 0,
                last_visit=row.last_visit,
            )
            for row in result
        ],
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _summary_or_404(row: AccessSummary | None, user_id: str) -> AccessSummaryResponse:
    if row is None:
        raise HTTPException(
            status_code=404, detail=f"No recorded access for user {user_id}.",
        )
    return AccessSummaryResponse.model_validate(row)
