"""Request tracing middleware.

Every request gets an ID that is echoed in ``X-Request-ID``, returned in
error bodies and bound to every structlog event emitted while the request
is handled, so provider attempts and fallbacks can be traced to one turn.
"""

import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from structlog.contextvars import bound_contextvars

logger = structlog.get_logger()

# Health checks log at debug level.
QUIET_PATHS = frozenset({"/health", "/ready"})


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns the request ID and binds it to the logging context."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        with bound_contextvars(request_id=request_id):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with the model that served it.

    The serving model is read from the ``X-Model`` response header, which
    differs from the requested model after a fallback. For streamed chat
    turns the duration covers stream establishment only.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Time the request and emit ``request_completed``.

        Args:
            request: Incoming request
            call_next: Next middleware/handler

        Returns:
            Response with an ``X-Response-Time`` header
        """
        start_time = time.perf_counter()
        quiet = request.url.path in QUIET_PATHS
        log_event = logger.debug if quiet else logger.info

        log_event("request_started", method=request.method, path=request.url.path)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        if response.status_code >= 500:
            log_event = logger.warning

        log_event(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            model=response.headers.get("X-Model"),
            duration_ms=round(duration_ms, 2),
        )

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response
