# =============================================================================
# FastAPI Application — Request Access Tracker
# =============================================================================
#
# Standalone deployment of the tracker: the tracking middleware in front of
# the reporting API. Host applications that only want tracking add the
# middleware to their own app instead:
#
#   from request_tracker.api.tracking import RequestTrackingMiddleware
#   app.add_middleware(RequestTrackingMiddleware)
#
# Run locally:
#   uvicorn request_tracker.main:app --reload
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from request_tracker.api.reports import router as reports_router
from request_tracker.api.tracking import RequestTrackingMiddleware
from request_tracker.config import get_tracker_config, settings
from request_tracker.db.engine import async_engine
from request_tracker.models.responses import HealthResponse

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_tracker_config()
    logger.info(
        "%s %s starting: tracking=%s, dispatch=%s, detail=%s/%s",
        settings.app_name, settings.app_version,
        "on" if config.enabled else "off",
        config.dispatch.value, config.detail_tracking.value, config.detail_mode.value,
    )
    yield
    await async_engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Per-user daily access summaries and per-endpoint visit tracking.",
    lifespan=lifespan,
)

app.add_middleware(RequestTrackingMiddleware)
app.include_router(reports_router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)
