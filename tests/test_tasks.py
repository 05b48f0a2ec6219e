# =============================================================================
# Unit Tests — Celery Tasks (retry, dead letter, retention sweep)
# =============================================================================
#
# Tasks run in-process via task.run() with a pushed request context, so no
# broker or worker is needed. The pipeline is mocked; the dead-letter and
# retention writes go to SQLite.
# =============================================================================

from __future__ import annotations

import datetime as dt
from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry
from pydantic import ValidationError
from sqlalchemy import select

from request_tracker.config import TrackerConfig, get_tracker_config
from request_tracker.db.models import FailedTrackingTask
from request_tracker.models.snapshot import RequestSnapshot
from request_tracker.services.pipeline import TrackingResult, TrackingStatus
from request_tracker.workers.celery_app import celery_app
from request_tracker.workers.tasks import (
    _dead_letter,
    purge_expired_access_logs,
    track_request_access,
)

PAYLOAD = RequestSnapshot(
    method="GET",
    path="api/v1/users/42",
    user_id="42",
    occurred_at=dt.datetime(2024, 3, 1, 9, 0),
).model_dump(mode="json")


@pytest.fixture
def task_request():
    """Push a Celery request context with a given retry count."""
    pushed = []

    def push(retries: int = 0, task_id: str = "task-1"):
        track_request_access.push_request(id=task_id, retries=retries)
        pushed.append(track_request_access)

    yield push
    for task in pushed:
        task.pop_request()


class TestTrackRequestAccess:
    def test_success_returns_outcome(self, task_request):
        task_request()
        result = TrackingResult(
            status=TrackingStatus.SUMMARIZED_ONLY, summary_id="s-1",
        )
        with patch("request_tracker.workers.tasks.track_snapshot", return_value=result) as mock_track:
            outcome = track_request_access.run(PAYLOAD)

        assert outcome == {
            "status": "summarized_only",
            "reason": None,
            "summary_id": "s-1",
            "detail_id": None,
        }
        snapshot = mock_track.call_args.args[0]
        assert isinstance(snapshot, RequestSnapshot)
        assert snapshot.user_id == "42"

    def test_failure_retries_with_backoff(self, task_request):
        task_request(retries=1)
        error = RuntimeError("deadlock detected")
        failed = TrackingResult(status=TrackingStatus.FAILED, error=error)

        with (
            patch("request_tracker.workers.tasks.track_snapshot", return_value=failed),
            patch.object(track_request_access, "retry", side_effect=Retry()) as mock_retry,
            patch("request_tracker.workers.tasks._dead_letter") as mock_dead_letter,
        ):
            with pytest.raises(Retry):
                track_request_access.run(PAYLOAD)

        mock_retry.assert_called_once_with(exc=error, countdown=10)
        mock_dead_letter.assert_not_called()

    def test_exhausted_retries_dead_letter_and_raise(self, task_request):
        task_request(retries=track_request_access.max_retries)
        error = RuntimeError("database unavailable")
        failed = TrackingResult(status=TrackingStatus.FAILED, error=error)

        with (
            patch("request_tracker.workers.tasks.track_snapshot", return_value=failed),
            patch.object(track_request_access, "retry") as mock_retry,
            patch("request_tracker.workers.tasks._dead_letter") as mock_dead_letter,
        ):
            with pytest.raises(RuntimeError, match="database unavailable"):
                track_request_access.run(PAYLOAD)

        mock_retry.assert_not_called()
        args = mock_dead_letter.call_args.args
        assert args[0] == "task-1"
        assert args[2] == PAYLOAD
        assert args[3] is error
        assert args[4] == track_request_access.max_retries + 1

    def test_invalid_payload_is_dead_lettered_without_retry(self, task_request):
        task_request()
        with (
            patch("request_tracker.workers.tasks.track_snapshot") as mock_track,
            patch.object(track_request_access, "retry") as mock_retry,
            patch("request_tracker.workers.tasks._dead_letter") as mock_dead_letter,
        ):
            with pytest.raises(ValidationError):
                track_request_access.run({"method": "GET"})

        mock_track.assert_not_called()
        mock_retry.assert_not_called()
        mock_dead_letter.assert_called_once()


class TestTaskOptions:
    def test_limits_follow_tracker_config(self):
        config = get_tracker_config()
        assert track_request_access.max_retries == config.max_retries
        assert track_request_access.soft_time_limit == config.task_timeout
        assert track_request_access.time_limit == config.task_timeout + 10
        assert celery_app.conf.task_routes["track_request_access"] == {"queue": config.queue_name}


class TestDeadLetter:
    def test_writes_failed_task_row(self, session_scope, session):
        with patch("request_tracker.workers.tasks.get_sync_session", session_scope):
            _dead_letter("task-9", "track_request_access", PAYLOAD, RuntimeError("boom"), 4)

        row = session.scalars(select(FailedTrackingTask)).one()
        assert row.task_id == "task-9"
        assert row.payload == PAYLOAD
        assert row.error == "RuntimeError: boom"
        assert row.attempts == 4


class TestPurgeTask:
    def test_runs_retention_with_configured_windows(self, session_scope):
        config = TrackerConfig(summary_retention_days=90, detail_retention_days=30)
        report = MagicMock(summaries=3, details=7)
        purge_expired_access_logs.push_request(id="purge-1")
        try:
            with (
                patch("request_tracker.workers.tasks.get_sync_session", session_scope),
                patch("request_tracker.workers.tasks.get_tracker_config", return_value=config),
                patch("request_tracker.workers.tasks.purge_expired", return_value=report) as mock_purge,
            ):
                outcome = purge_expired_access_logs.run()
        finally:
            purge_expired_access_logs.pop_request()

        assert outcome == {"summaries": 3, "details": 7}
        assert mock_purge.call_args.args[1] is config
