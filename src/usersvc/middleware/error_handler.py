"""Global error handlers: every error leaves the service as ``{"detail": ...}`` JSON."""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from usersvc.errors import IdentityProviderError, StorageError, UpstreamError

logger = structlog.get_logger()

# Retry hint for callers when a dependency is temporarily unavailable
RETRY_AFTER_SECONDS = "5"

_UPSTREAM_DETAILS: dict[type[UpstreamError], str] = {
    IdentityProviderError: "identity provider unavailable, try again",
    StorageError: "storage unavailable, try again",
}


def _upstream_detail(exc: UpstreamError) -> str:
    for exc_type, detail in _UPSTREAM_DETAILS.items():
        if isinstance(exc, exc_type):
            return detail
    return "upstream service unavailable, try again"


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers.

    Routers translate domain errors themselves; these handlers cover what
    escapes them.
    """

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(UpstreamError)
    async def upstream_exception_handler(request: Request, exc: UpstreamError) -> JSONResponse:
        """An external collaborator failed without a route-specific mapping."""
        logger.warning("upstream_failure", path=request.url.path, error=type(exc).__name__)
        return JSONResponse(
            status_code=502,
            content={"detail": _upstream_detail(exc)},
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )

    @app.exception_handler(OperationalError)
    async def database_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
        """Connection-level database failures are reported as 503."""
        logger.error("database_unavailable", path=request.url.path, error=type(exc.orig).__name__)
        return JSONResponse(
            status_code=503,
            content={"detail": "database unavailable, try again"},
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all. Logs with traceback, answers 500 without internals."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=type(exc).__name__,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
