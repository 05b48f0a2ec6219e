# =============================================================================
# Retention — date-range deletes with cascading details
# =============================================================================
#
# Details are always deleted explicitly before their summaries, so no orphan
# can survive even on a database that does not enforce ON DELETE CASCADE
# (SQLite without PRAGMA foreign_keys).
#
#   delete_between(session, start, end)   → both tables, start..end inclusive
#   purge_expired(session, config, today) → apply the configured windows
#   count_expired(session, config, today) → what purge_expired would delete
# =============================================================================

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from request_tracker.config import TrackerConfig
from request_tracker.db.models import AccessDetail, AccessSummary

logger = logging.getLogger(__name__)

_NO_SYNC = {"synchronize_session": False}


@dataclass(frozen=True)
class PurgeReport:
    summaries: int
    details: int

    @property
    def total(self) -> int:
        return self.summaries + self.details


def _summary_range(start: dt.date | None, end: dt.date | None, *, inclusive_end: bool = True):
    conditions = []
    if start is not None:
        conditions.append(AccessSummary.date >= start)
    if end is not None:
        conditions.append(AccessSummary.date <= end if inclusive_end else AccessSummary.date < end)
    return conditions


def _delete_summaries(session: Session, conditions) -> PurgeReport:
    owned = select(AccessSummary.id).where(*conditions)
    details = session.execute(
        delete(AccessDetail).where(AccessDetail.summary_id.in_(owned)),
        execution_options=_NO_SYNC,
    ).rowcount
    summaries = session.execute(
        delete(AccessSummary).where(*conditions),
        execution_options=_NO_SYNC,
    ).rowcount
    return PurgeReport(summaries=summaries, details=details)


def delete_between(
    session: Session,
    start: dt.date | None,
    end: dt.date,
) -> PurgeReport:
    """Delete summaries dated start..end (inclusive) and every detail they own."""
    if start is not None and start > end:
        raise ValueError(f"start {start} is after end {end}")

    report = _delete_summaries(session, _summary_range(start, end))
    logger.info(
        "Deleted access logs %s..%s: %d summaries, %d details",
        start or "beginning", end, report.summaries, report.details,
    )
    return report


def _cutoff(today: dt.date, days: int) -> dt.date | None:
    """First day that is kept; None when the window is disabled (0)."""
    if days <= 0:
        return None
    return today - dt.timedelta(days=days)


def purge_expired(session: Session, config: TrackerConfig, today: dt.date) -> PurgeReport:
    """
    Apply both retention windows.

    Details older than the detail window go first; then summaries older
    than the summary window go together with any details they still own.
    """
    detail_cutoff = _cutoff(today, config.detail_retention_days)
    summary_cutoff = _cutoff(today, config.summary_retention_days)

    details = 0
    if detail_cutoff is not None:
        details = session.execute(
            delete(AccessDetail).where(AccessDetail.date < detail_cutoff),
            execution_options=_NO_SYNC,
        ).rowcount

    summaries = 0
    if summary_cutoff is not None:
        cascade = _delete_summaries(session, _summary_range(None, summary_cutoff, inclusive_end=False))
        summaries = cascade.summaries
        details += cascade.details

    report = PurgeReport(summaries=summaries, details=details)
    logger.info(
        "Retention purge (summaries < %s, details < %s): %d summaries, %d details",
        summary_cutoff, detail_cutoff, report.summaries, report.details,
    )
    return report


def count_expired(session: Session, config: TrackerConfig, today: dt.date) -> PurgeReport:
    """Row counts purge_expired() would delete, without deleting."""
    detail_cutoff = _cutoff(today, config.detail_retention_days)
    summary_cutoff = _cutoff(today, config.summary_retention_days)

    summaries = 0
    expired_summary_ids = None
    if summary_cutoff is not None:
        summaries = session.scalar(
            select(func.count()).select_from(AccessSummary).where(AccessSummary.date < summary_cutoff)
        )
        expired_summary_ids = select(AccessSummary.id).where(AccessSummary.date < summary_cutoff)

    detail_conditions = []
    if detail_cutoff is not None:
        detail_conditions.append(AccessDetail.date < detail_cutoff)
    if expired_summary_ids is not None:
        detail_conditions.append(AccessDetail.summary_id.in_(expired_summary_ids))

    details = 0
    if detail_conditions:
        details = session.scalar(
            select(func.count()).select_from(AccessDetail).where(or_(*detail_conditions))
        )
    return PurgeReport(summaries=summaries or 0, details=details or 0)
