"""Request ID + access log middleware.

Learn: Every request gets an ID, either from the incoming X-Request-ID
header (set by the dashboard's proxy) or auto-generated. The ID, method
and path are bound to structlog's contextvars so they appear on every log
line emitted while handling the request, including the broker's publish
logs. When the handler returns we log one `http.request` line with the
status and duration.

For SSE responses the logged duration is time-to-headers, not the life
of the stream.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a unique request ID; log each request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "http.request",
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
        )
        return response
