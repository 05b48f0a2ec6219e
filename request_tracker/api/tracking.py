# =============================================================================
# Request Tracking Middleware — completed request → tracking pipeline
# =============================================================================
#
# After the handler has produced its response the middleware captures a
# RequestSnapshot (identity, role, handler directive, client) and hands it
# to the pipeline:
#
#   dispatch=sync   → track_snapshot() in a worker thread (own transaction)
#   dispatch=async  → track_request_access.apply_async() on the tracker queue
#
# Starlette middleware (not a dependency) because it sees every request,
# including handlers that never declared anything, and runs after routing so
# the matched route and endpoint are available in request.scope.
#
# Tracking never changes the response. Failures are logged at WARNING and
# discarded; with TRACKER_SILENT_ERRORS=false they are re-raised instead.
# =============================================================================

from __future__ import annotations

import asyncio
import datetime as dt
import logging

from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from request_tracker.config import DispatchMode, TrackerConfig, get_tracker_config
from request_tracker.db.engine import async_session_factory
from request_tracker.models.snapshot import RequestSnapshot
from request_tracker.services.patterns import normalize_path
from request_tracker.services.pipeline import (
    TrackingResult,
    TrackingStatus,
    check_skip,
    track_snapshot,
)
from request_tracker.services.registry import (
    TrackingRegistry,
    handler_identifier,
    registry,
)
from request_tracker.services.sessions import SessionInfo, resolve_session

logger = logging.getLogger(__name__)

# Header / query / cookie names checked for a session token, in order
_TOKEN_HEADERS = ("x-access-token", "x-api-key")
_TOKEN_PARAM = "token"


# ---------------------------------------------------------------------------
# Request Inspection
# ---------------------------------------------------------------------------


def extract_token(request: Request) -> str | None:
    """Session token from the Authorization header, token headers, query or cookie."""
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    for header in _TOKEN_HEADERS:
        value = request.headers.get(header)
        if value:
            return value

    return request.query_params.get(_TOKEN_PARAM) or request.cookies.get(_TOKEN_PARAM) or None


def resolve_user_id(request: Request) -> str | None:
    """
    Authenticated user id.

    request.state.user_id (set by the host's auth dependency) wins; otherwise
    an authenticated scope["user"] from Starlette's AuthenticationMiddleware.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id not in (None, ""):
        return str(user_id)

    user = request.scope.get("user")
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    user_id = getattr(user, "id", None) or getattr(user, "identity", None)
    return str(user_id) if user_id not in (None, "") else None


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """
    Track every completed request for authenticated users.

    Usage:
        app.add_middleware(RequestTrackingMiddleware)
        app.add_middleware(RequestTrackingMiddleware, config=TrackerConfig.build(...))
    """

    def __init__(
        self,
        app: ASGIApp,
        config: TrackerConfig | None = None,
        handlers: TrackingRegistry | None = None,
        session_factory=None,
    ) -> None:
        super().__init__(app)
        self.config = config or get_tracker_config()
        self.handlers = handlers or registry
        self.session_factory = session_factory or async_session_factory

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        response = await call_next(request)

        if not self.config.enabled:
            return response

        try:
            result = await self.track(request)
        except Exception as e:
            if not self.config.silent_errors:
                raise
            logger.warning(
                "Request tracking failed for %s %s: %s",
                request.method, request.url.path, e,
            )
            return response

        if result.status is TrackingStatus.FAILED and not self.config.silent_errors:
            raise result.error
        return response

    async def track(self, request: Request) -> TrackingResult:
        """Capture a snapshot of `request` and dispatch it."""
        config = self.config
        snapshot = await self.capture(request)

        skip = check_skip(snapshot, config)
        if skip is not None:
            logger.debug(
                "Tracking skipped (%s): %s %s",
                skip.reason.value, snapshot.method, snapshot.path,
            )
            return skip

        if config.dispatch is DispatchMode.ASYNC:
            # Imported here so web nodes in sync mode never load Celery
            from request_tracker.workers.tasks import track_request_access

            track_request_access.apply_async(
                args=[snapshot.model_dump(mode="json")],
                queue=config.queue_name,
            )
            return TrackingResult(status=TrackingStatus.QUEUED)

        return await asyncio.to_thread(track_snapshot, snapshot, config)

    async def capture(self, request: Request) -> RequestSnapshot:
        """
        Build the RequestSnapshot for a completed request.

        The session lookup only runs when the request could be tracked at
        all (not excluded, authenticated) and no role is already on state.
        """
        path = normalize_path(request.url.path)
        user_id = resolve_user_id(request)

        route = request.scope.get("route")
        controller_id = handler_identifier(request.scope.get("endpoint"))
        entry = self.handlers.lookup(controller_id)
        directive = entry.directive if entry else None

        role_id = getattr(request.state, "role_id", None)
        role_name = getattr(request.state, "role_name", None)
        session_id = getattr(request.state, "session_id", None)

        if user_id and role_id is None and not self.config.is_excluded(path):
            info = await self.lookup_session(request)
            if info is not None:
                role_id = info.role_id
                role_name = role_name or info.role_name
                session_id = session_id or info.session_id

        return RequestSnapshot(
            method=request.method,
            path=path,
            route_name=getattr(route, "name", None),
            controller_id=controller_id,
            user_id=user_id,
            role_id=role_id,
            role_name=role_name,
            session_id=session_id,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            occurred_at=dt.datetime.now(dt.UTC),
            declared_module=directive.module if directive else None,
            declared_submodule=directive.submodule if directive else None,
            declared_label=directive.label if directive else None,
            opt_in=entry.opt_in if entry else False,
        )

    async def lookup_session(self, request: Request) -> SessionInfo | None:
        token = extract_token(request)
        if not token:
            return None
        async with self.session_factory() as session:
            return await resolve_session(session, token, self.config.session_table)
