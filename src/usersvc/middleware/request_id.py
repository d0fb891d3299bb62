"""Request ID middleware and access logging."""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 128


def _incoming_request_id(request: Request) -> str:
    """Caller-supplied id if usable, otherwise a fresh UUID."""
    value = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if not value or len(value) > MAX_REQUEST_ID_LENGTH or not value.isprintable():
        return str(uuid.uuid4())
    return value


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id, bind it to the log context and echo it back.

    Each request also produces one ``request_completed`` log line with the
    status code and duration.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _incoming_request_id(request)
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info("request_completed", status=response.status_code, duration_ms=duration_ms)
        return response
