# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
#   - snapshot.py: RequestSnapshot, the serialisable pipeline input shared by
#     inline dispatch and the Celery task payload
#   - responses.py: reporting API response schemas
#
# These are SEPARATE from the database models (request_tracker/db/models.py).
# =============================================================================
