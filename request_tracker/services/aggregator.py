# =============================================================================
# Access Aggregators — atomic daily summary & endpoint visit upserts
# =============================================================================
#
# record_access()  → AccessSummary keyed by (user_id, role_key, date)
# record_visit()   → AccessDetail keyed by dedup_key, or appended
#
# Each call is ONE statement:
#
#   INSERT INTO access_summaries (...) VALUES (...)
#   ON CONFLICT (user_id, role_key, date) DO UPDATE SET
#       access_count = access_summaries.access_count + 1,
#       first_access = earliest of (stored, incoming),
#       last_access  = latest of (stored, incoming)
#   RETURNING *
#
# The database resolves concurrent writers against the unique constraint,
# so N concurrent events for one identity+day always end at access_count=N
# with first/last access equal to the min/max event timestamps, whatever
# order they arrive in. No row is ever read and then written back.
#
# Context columns (session, IP, user agent, device) are written by the
# INSERT branch only and are never touched by the UPDATE branch.
#
# Supported dialects: PostgreSQL (production) and SQLite (tests). Both
# implement INSERT ... ON CONFLICT and RETURNING.
# =============================================================================

from __future__ import annotations

import datetime as dt
import hashlib
import logging
from dataclasses import dataclass

from sqlalchemy import case, func, insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from request_tracker.config import DetailMode
from request_tracker.db.models import AccessDetail, AccessSummary, new_uuid
from request_tracker.services.classifier import EndpointClassification
from request_tracker.services.device import parse_user_agent

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccessContext:
    """Per-event context for a summary upsert."""

    occurred_at: dt.datetime
    role_name: str | None = None
    session_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class VisitMeta:
    """Endpoint descriptor for a detail upsert."""

    method: str
    endpoint: str
    occurred_at: dt.datetime
    route_name: str | None = None
    controller_action: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _upsert(session: Session, model):
    """Dialect-specific INSERT that supports on_conflict_do_update()."""
    dialect = session.get_bind().dialect.name
    try:
        factory = _UPSERT_DIALECTS[dialect]
    except KeyError:
        raise NotImplementedError(
            f"Atomic upsert is not available for the '{dialect}' dialect"
        ) from None
    return factory(model)


def _earliest(incoming, stored):
    return case((incoming < stored, incoming), else_=stored)


def _latest(incoming, stored):
    return case((incoming > stored, incoming), else_=stored)


def role_key(role_id: str | None) -> str:
    """Value stored in the unique key for a (possibly missing) role."""
    return role_id or ""


def visit_dedup_key(user_id: str, role_id: str | None, endpoint: str, day: dt.date) -> str:
    """SHA-256 hex digest identifying one endpoint visit per identity per day."""
    raw = "\x1f".join([user_id, role_key(role_id), endpoint, day.isoformat()])
    return hashlib.sha256(raw.encode()).hexdigest()


# ---------------------------------------------------------------------------
# Daily Summary
# ---------------------------------------------------------------------------


def record_access(
    session: Session,
    user_id: str,
    role_id: str | None,
    day: dt.date,
    context: AccessContext,
) -> AccessSummary:
    """
    Create the day's summary row for an identity, or count one more access.

    Returns the row as stored after this event.
    """
    device = parse_user_agent(context.user_agent)
    columns = AccessSummary.__table__.c

    stmt = _upsert(session, AccessSummary).values(
        id=new_uuid(),
        user_id=user_id,
        role_id=role_id,
        role_key=role_key(role_id),
        role_name=context.role_name,
        date=day,
        access_count=1,
        first_access=context.occurred_at,
        last_access=context.occurred_at,
        session_id=context.session_id,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
        device_type=device.device_type,
        browser=device.browser,
        platform=device.platform,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[columns.user_id, columns.role_key, columns.date],
        set_={
            "access_count": columns.access_count + 1,
            "first_access": _earliest(stmt.excluded.first_access, columns.first_access),
            "last_access": _latest(stmt.excluded.last_access, columns.last_access),
            "updated_at": func.now(),
        },
    ).returning(AccessSummary)

    summary = session.scalars(
        stmt, execution_options={"populate_existing": True},
    ).one()

    logger.debug(
        "Summary upserted: id=%s, user=%s, role=%s, date=%s, count=%d",
        summary.id, user_id, role_id, day, summary.access_count,
    )
    return summary


# ---------------------------------------------------------------------------
# Endpoint Visits
# ---------------------------------------------------------------------------


def record_visit(
    session: Session,
    summary: AccessSummary,
    classification: EndpointClassification,
    meta: VisitMeta,
    mode: DetailMode,
) -> AccessDetail:
    """
    Record an endpoint visit under its owning summary row.

    DEDUP:  one row per (user, role, endpoint, date); repeat visits increment
            visit_count and move last_visit forward.
    APPEND: one row per call, visit_count fixed at 1.
    """
    values = {
        "id": new_uuid(),
        "summary_id": summary.id,
        "user_id": summary.user_id,
        "role_id": summary.role_id,
        "role_name": summary.role_name,
        "date": summary.date,
        "method": meta.method.upper(),
        "endpoint": meta.endpoint,
        "route_name": meta.route_name,
        "controller_action": meta.controller_action,
        "module": classification.module,
        "submodule": classification.submodule,
        "label": classification.label,
        "visit_count": 1,
        "first_visit": meta.occurred_at,
        "last_visit": meta.occurred_at,
    }

    if mode is DetailMode.APPEND:
        stmt = insert(AccessDetail).values(dedup_key=None, **values).returning(AccessDetail)
        detail = session.scalars(stmt).one()
    else:
        columns = AccessDetail.__table__.c
        dedup_key = visit_dedup_key(
            summary.user_id, summary.role_id, meta.endpoint, summary.date,
        )
        stmt = _upsert(session, AccessDetail).values(dedup_key=dedup_key, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[columns.dedup_key],
            set_={
                "visit_count": columns.visit_count + 1,
                "first_visit": _earliest(stmt.excluded.first_visit, columns.first_visit),
                "last_visit": _latest(stmt.excluded.last_visit, columns.last_visit),
                "updated_at": func.now(),
            },
        ).returning(AccessDetail)
        detail = session.scalars(
            stmt, execution_options={"populate_existing": True},
        ).one()

    logger.debug(
        "Detail recorded (%s): id=%s, endpoint=%s, module=%s, visits=%d",
        mode.value, detail.id, meta.endpoint, classification.module, detail.visit_count,
    )
    return detail
