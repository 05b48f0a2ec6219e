# =============================================================================
# Ingestion Pipeline — one completed request → summary (+ detail) rows
# =============================================================================
#
# STATE MACHINE (terminal states in CAPS):
#
#   received ── tracking disabled ───────────────▶ SKIPPED (disabled)
#            ── path excluded ───────────────────▶ SKIPPED (excluded)
#            ── no user identity ────────────────▶ SKIPPED (unauthenticated)
#            ── role required but missing ───────▶ SKIPPED (role_unresolved)
#            ── classify → summarize
#                 ── detail not wanted ──────────▶ SUMMARIZED_ONLY
#                 ── record detail ──────────────▶ COMPLETE
#   any exception at the boundary ───────────────▶ FAILED (error attached)
#
# Skips are not errors: they log at DEBUG and write nothing.
#
# ENTRY POINTS:
#   track_snapshot()   → boundary used by both dispatch modes; never raises,
#                        returns a TrackingResult
#   process_snapshot() → the work itself inside a caller-owned session;
#                        store errors propagate
#
# Configuration is passed in explicitly; nothing here reads settings.
# =============================================================================

from __future__ import annotations

import datetime as dt
import enum
import logging
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass

from sqlalchemy.orm import Session

from request_tracker.config import DetailTracking, TrackerConfig
from request_tracker.db.engine import get_sync_session
from request_tracker.db.models import AccessDetail, AccessSummary
from request_tracker.models.snapshot import RequestSnapshot
from request_tracker.services.aggregator import (
    AccessContext,
    VisitMeta,
    record_access,
    record_visit,
)
from request_tracker.services.classifier import EndpointClassification, classify
from request_tracker.services.patterns import TrackingDirective

logger = logging.getLogger(__name__)

MANUAL_METHOD = "MANUAL"


class TrackingStatus(str, enum.Enum):
    SKIPPED = "skipped"
    SUMMARIZED_ONLY = "summarized_only"
    COMPLETE = "complete"
    QUEUED = "queued"
    FAILED = "failed"


class SkipReason(str, enum.Enum):
    DISABLED = "disabled"
    EXCLUDED = "excluded"
    UNAUTHENTICATED = "unauthenticated"
    ROLE_UNRESOLVED = "role_unresolved"


@dataclass(frozen=True)
class TrackingResult:
    """Outcome of one pipeline run."""

    status: TrackingStatus
    reason: SkipReason | None = None
    summary_id: str | None = None
    detail_id: str | None = None
    classification: EndpointClassification | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status is not TrackingStatus.FAILED

    @classmethod
    def skipped(cls, reason: SkipReason) -> TrackingResult:
        return cls(status=TrackingStatus.SKIPPED, reason=reason)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def check_skip(snapshot: RequestSnapshot, config: TrackerConfig) -> TrackingResult | None:
    """Return a SKIPPED result if the request must not be tracked, else None."""
    if not config.enabled:
        return TrackingResult.skipped(SkipReason.DISABLED)
    if config.is_excluded(snapshot.path):
        return TrackingResult.skipped(SkipReason.EXCLUDED)
    if not snapshot.user_id:
        return TrackingResult.skipped(SkipReason.UNAUTHENTICATED)
    if config.require_role and not snapshot.role_id:
        return TrackingResult.skipped(SkipReason.ROLE_UNRESOLVED)
    return None


def wants_detail(snapshot: RequestSnapshot, config: TrackerConfig) -> bool:
    if config.detail_tracking is DetailTracking.ALL:
        return True
    if config.detail_tracking is DetailTracking.OPT_IN:
        return snapshot.opt_in
    return False


def event_date(occurred_at: dt.datetime, config: TrackerConfig) -> dt.date:
    """Calendar day of an event in the tracker timezone (naive = already local)."""
    if occurred_at.tzinfo is None:
        return occurred_at.date()
    return occurred_at.astimezone(config.tzinfo).date()


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


def process_snapshot(
    session: Session,
    snapshot: RequestSnapshot,
    config: TrackerConfig,
) -> TrackingResult:
    """
    Run the pipeline for one snapshot inside `session`.

    Database errors propagate; the caller owns commit/rollback.
    """
    skip = check_skip(snapshot, config)
    if skip is not None:
        logger.debug("Tracking skipped (%s): %s %s", skip.reason.value, snapshot.method, snapshot.path)
        return skip

    classification = classify(
        snapshot.path,
        snapshot.route_name,
        snapshot.controller_id,
        snapshot.declared,
        config,
    )

    day = event_date(snapshot.occurred_at, config)
    summary = record_access(
        session,
        snapshot.user_id,
        snapshot.role_id,
        day,
        AccessContext(
            occurred_at=snapshot.occurred_at,
            role_name=snapshot.role_name,
            session_id=snapshot.session_id,
            ip_address=snapshot.ip_address,
            user_agent=snapshot.user_agent,
        ),
    )

    if not wants_detail(snapshot, config):
        return TrackingResult(
            status=TrackingStatus.SUMMARIZED_ONLY,
            summary_id=summary.id,
            classification=classification,
        )

    detail = record_visit(
        session,
        summary,
        classification,
        VisitMeta(
            method=snapshot.method,
            endpoint=snapshot.path,
            occurred_at=snapshot.occurred_at,
            route_name=snapshot.route_name,
            controller_action=snapshot.controller_id,
        ),
        config.detail_mode,
    )
    return TrackingResult(
        status=TrackingStatus.COMPLETE,
        summary_id=summary.id,
        detail_id=detail.id,
        classification=classification,
    )


def track_snapshot(
    snapshot: RequestSnapshot,
    config: TrackerConfig,
    session_scope: Callable[[], AbstractContextManager[Session]] = get_sync_session,
) -> TrackingResult:
    """
    Pipeline boundary: run one snapshot in its own transaction.

    Never raises. Failures come back as TrackingStatus.FAILED with the
    exception attached; the host (middleware or Celery task) decides
    whether to discard, re-raise or retry.
    """
    skip = check_skip(snapshot, config)
    if skip is not None:
        logger.debug("Tracking skipped (%s): %s %s", skip.reason.value, snapshot.method, snapshot.path)
        return skip

    try:
        with session_scope() as session:
            result = process_snapshot(session, snapshot, config)
    except Exception as exc:
        logger.exception(
            "Tracking failed: user=%s, %s %s: %s",
            snapshot.user_id, snapshot.method, snapshot.path, exc,
        )
        return TrackingResult(status=TrackingStatus.FAILED, error=exc)

    logger.debug(
        "Tracked %s %s: status=%s, summary=%s, detail=%s",
        snapshot.method, snapshot.path, result.status.value,
        result.summary_id, result.detail_id,
    )
    return result


# ---------------------------------------------------------------------------
# Manual Tracking
# ---------------------------------------------------------------------------


def track_manual_access(
    session: Session,
    user_id: str,
    role_id: str | None,
    config: TrackerConfig,
    module: str | None = None,
    submodule: str | None = None,
    label: str | None = None,
    endpoint: str | None = None,
    occurred_at: dt.datetime | None = None,
    role_name: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[AccessSummary, AccessDetail | None]:
    """
    Record an access that did not come through HTTP (logins, imports...).

    Always counts one access on the summary. When `module` is given, also
    records a MANUAL detail row for endpoint `module[/submodule]` (or the
    explicit `endpoint`) through the same upserts as regular requests.
    """
    occurred_at = occurred_at or dt.datetime.now(dt.UTC)
    summary = record_access(
        session,
        user_id,
        role_id,
        event_date(occurred_at, config),
        AccessContext(
            occurred_at=occurred_at,
            role_name=role_name,
            ip_address=ip_address,
            user_agent=user_agent,
        ),
    )
    if not module:
        return summary, None

    directive = TrackingDirective(module=module, submodule=submodule, label=label)
    path = endpoint or (f"{module}/{submodule}" if submodule else module)
    classification = classify(path, None, None, directive, config)
    detail = record_visit(
        session,
        summary,
        classification,
        VisitMeta(method=MANUAL_METHOD, endpoint=path, occurred_at=occurred_at),
        config.detail_mode,
    )
    return summary, detail
