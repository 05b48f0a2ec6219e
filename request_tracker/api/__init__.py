# =============================================================================
# API Package — Starlette Middleware & FastAPI Route Handlers
# =============================================================================
#   - tracking.py: RequestTrackingMiddleware (snapshot capture + dispatch)
#   - reports.py: read-only reporting endpoints under /access
# =============================================================================
