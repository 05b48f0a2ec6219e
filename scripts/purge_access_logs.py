"""
Delete old access logs.

Without --days the configured retention windows apply
(TRACKER_SUMMARY_RETENTION_DAYS / TRACKER_DETAIL_RETENTION_DAYS). With
--days N every summary older than N days is removed together with its
details.

Usage:
    python scripts/purge_access_logs.py
    python scripts/purge_access_logs.py --days 30
    python scripts/purge_access_logs.py --days 30 --dry-run
"""

import argparse
import datetime as dt
import logging
import sys

from sqlalchemy import func, select

from request_tracker.config import get_tracker_config
from request_tracker.db.engine import get_sync_session
from request_tracker.db.models import AccessDetail, AccessSummary
from request_tracker.services.retention import (
    PurgeReport,
    count_expired,
    delete_between,
    purge_expired,
)

logger = logging.getLogger("purge_access_logs")


def _count_before(session, cutoff: dt.date) -> PurgeReport:
    expired = select(AccessSummary.id).where(AccessSummary.date < cutoff)
    summaries = session.scalar(
        select(func.count()).select_from(AccessSummary).where(AccessSummary.date < cutoff)
    )
    details = session.scalar(
        select(func.count()).select_from(AccessDetail).where(AccessDetail.summary_id.in_(expired))
    )
    return PurgeReport(summaries=summaries or 0, details=details or 0)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Delete old access logs.")
    parser.add_argument(
        "--days", type=int, default=None,
        help="Keep only the last N days (default: configured retention windows)",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Report what would be deleted without deleting",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    if args.days is not None and args.days < 1:
        parser.error("--days must be at least 1")

    config = get_tracker_config()
    today = dt.datetime.now(config.tzinfo).date()

    with get_sync_session() as session:
        if args.days is None:
            report = (
                count_expired(session, config, today)
                if args.dry_run
                else purge_expired(session, config, today)
            )
        else:
            cutoff = today - dt.timedelta(days=args.days)
            report = (
                _count_before(session, cutoff)
                if args.dry_run
                else delete_between(session, None, cutoff - dt.timedelta(days=1))
            )

    verb = "Would delete" if args.dry_run else "Deleted"
    print(f"{verb} {report.summaries} summaries and {report.details} details.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
