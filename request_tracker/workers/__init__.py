# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
# Runs the tracking pipeline outside the request path (async dispatch mode):
#   - celery_app.py: Celery application configuration, routing, beat schedule
#   - tasks.py: track_request_access (retry + dead letter) and the daily
#     purge_expired_access_logs retention sweep
# =============================================================================
