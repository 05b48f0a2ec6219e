# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# In async dispatch mode the web process only builds a RequestSnapshot and
# enqueues it; a worker runs the aggregation pipeline:
#
# ┌──────────────┐     ┌───────┐     ┌──────────────┐     ┌────────────┐
# │ FastAPI      │────▶│ Redis │────▶│ Celery Worker│────▶│ PostgreSQL │
# │ (middleware) │     │(broker)│    │ (pipeline)   │     │ (upserts)  │
# └──────────────┘     └───────┘     └──────────────┘     └────────────┘
#
# Start a worker on the tracker queue:
#   celery -A request_tracker.workers.celery_app worker -Q request-tracker
# Schedule the retention sweep:
#   celery -A request_tracker.workers.celery_app beat
# =============================================================================

from celery import Celery
from celery.schedules import crontab

from request_tracker.config import get_tracker_config, settings

tracker_config = get_tracker_config()

celery_app = Celery(
    "request_tracker.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # Snapshots travel as JSON (RequestSnapshot.model_dump(mode="json")).
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Acknowledge only after the task finishes; a crashed worker's task is
    # redelivered. The upserts count a redelivered event again, which is
    # the at-least-once trade-off of this queue.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    # Soft limit raises SoftTimeLimitExceeded inside the task, which is
    # handled like any other failure (retry, then dead letter).
    task_soft_time_limit=tracker_config.task_timeout,
    task_time_limit=tracker_config.task_timeout + 10,

    # --- Routing ---
    task_routes={
        "track_request_access": {"queue": tracker_config.queue_name},
        "purge_expired_access_logs": {"queue": tracker_config.queue_name},
    },

    # --- Results ---
    result_expires=3600,

    # --- Periodic retention sweep (daily, 03:15 in the tracker timezone) ---
    timezone=tracker_config.timezone,
    beat_schedule={
        "purge-expired-access-logs": {
            "task": "purge_expired_access_logs",
            "schedule": crontab(hour=3, minute=15),
        },
    },

    include=["request_tracker.workers.tasks"],
)
