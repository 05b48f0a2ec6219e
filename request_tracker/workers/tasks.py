# =============================================================================
# Celery Task Definitions — Tracking & Retention
# =============================================================================
#
# track_request_access(payload)
#   payload is RequestSnapshot.model_dump(mode="json"). Runs the same
#   pipeline boundary (track_snapshot) as inline mode.
#
# RETRY STRATEGY:
#   max_retries=TRACKER_MAX_RETRIES (3) with exponential backoff
#   (5s, 10s, 20s). Per-attempt soft time limit TRACKER_TASK_TIMEOUT (30s);
#   a timeout is one failed attempt.
#   After the last attempt the snapshot is written to failed_tracking_tasks
#   (dead letter) and the error is re-raised so Celery records the failure.
#   A payload that does not validate is dead-lettered immediately.
#
# purge_expired_access_logs()
#   Daily retention sweep (see celery_app.beat_schedule).
#
# Celery workers are SYNCHRONOUS: both tasks use get_sync_session().
# =============================================================================

import datetime as dt
import logging

from pydantic import ValidationError

from request_tracker.config import get_tracker_config
from request_tracker.db.engine import get_sync_session
from request_tracker.db.models import FailedTrackingTask
from request_tracker.models.snapshot import RequestSnapshot
from request_tracker.services.pipeline import track_snapshot
from request_tracker.services.retention import purge_expired
from request_tracker.workers.celery_app import celery_app, tracker_config

logger = logging.getLogger(__name__)

RETRY_BASE_DELAY = 5


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _dead_letter(
    task_id: str | None,
    task_name: str,
    payload: dict,
    error: BaseException,
    attempts: int,
) -> None:
    """
    Persist an exhausted task to failed_tracking_tasks.

    Uses its own session so the row is committed independently of the
    failed pipeline transaction.
    """
    try:
        with get_sync_session() as session:
            session.add(FailedTrackingTask(
                task_id=task_id,
                task_name=task_name,
                payload=payload,
                error=f"{type(error).__name__}: {error}"[:2000],
                attempts=attempts,
            ))
    except Exception:
        logger.exception("[%s] Could not write dead-letter row for %s", task_id, task_name)
        raise
    logger.error(
        "[%s] %s dead-lettered after %d attempt(s): %s",
        task_id, task_name, attempts, error,
    )


# ---------------------------------------------------------------------------
# Tracking Task
# ---------------------------------------------------------------------------


@celery_app.task(
    bind=True,
    name="track_request_access",
    max_retries=tracker_config.max_retries,
    default_retry_delay=RETRY_BASE_DELAY,
    soft_time_limit=tracker_config.task_timeout,
    time_limit=tracker_config.task_timeout + 10,
)
def track_request_access(self, payload: dict) -> dict:
    """
    Aggregate one tracked request in a worker.

    Args:
        self: Celery task instance (bound task).
        payload: JSON-serialised RequestSnapshot.

    Returns:
        dict with the pipeline outcome (status, reason, summary/detail ids).
    """
    task_id = self.request.id
    attempt = self.request.retries + 1

    try:
        snapshot = RequestSnapshot.model_validate(payload)
    except ValidationError as exc:
        logger.error("[%s] Invalid tracking payload: %s", task_id, exc)
        _dead_letter(task_id, self.name, payload, exc, attempt)
        raise

    logger.debug(
        "[%s] Tracking %s %s for user=%s (attempt %d)",
        task_id, snapshot.method, snapshot.path, snapshot.user_id, attempt,
    )

    result = track_snapshot(snapshot, get_tracker_config())

    if result.ok:
        return {
            "status": result.status.value,
            "reason": result.reason.value if result.reason else None,
            "summary_id": result.summary_id,
            "detail_id": result.detail_id,
        }

    if self.request.retries >= self.max_retries:
        _dead_letter(task_id, self.name, payload, result.error, attempt)
        raise result.error

    countdown = RETRY_BASE_DELAY * (2 ** self.request.retries)
    logger.warning(
        "[%s] Tracking attempt %d failed, retrying in %ds: %s",
        task_id, attempt, countdown, result.error,
    )
    raise self.retry(exc=result.error, countdown=countdown)


# ---------------------------------------------------------------------------
# Retention Task
# ---------------------------------------------------------------------------


@celery_app.task(bind=True, name="purge_expired_access_logs", max_retries=1)
def purge_expired_access_logs(self) -> dict:
    """Delete summaries/details older than the configured retention windows."""
    config = get_tracker_config()
    today = dt.datetime.now(config.tzinfo).date()

    with get_sync_session() as session:
        report = purge_expired(session, config, today)

    logger.info(
        "[%s] Retention sweep done: %d summaries, %d details",
        self.request.id, report.summaries, report.details,
    )
    return {"summaries": report.summaries, "details": report.details}
