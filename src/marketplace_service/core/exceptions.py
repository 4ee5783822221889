"""Exception handlers that render every failure as the error envelope."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from fastapi.responses import JSONResponse
from service_commons.exceptions import ServiceError
from service_commons.exceptions import (
    register_exception_handlers as register_common_exception_handlers,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace_service.logging import get_logger
from marketplace_service.routers.helpers import USER_ID_HEADER

if TYPE_CHECKING:
    from fastapi import FastAPI, Request
    from starlette.types import ExceptionHandler

__all__ = ["ServiceError", "register_exception_handlers"]

# Router-level HTTP errors mapped onto the envelope's error codes
_HTTP_ERRORS: dict[int, tuple[str, str]] = {
    404: ("NOT_FOUND", "Resource not found"),
    405: ("METHOD_NOT_ALLOWED", "Method not allowed"),
}


def _envelope(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": {}},
    )


def _request_context(request: Request) -> dict[str, Any]:
    return {
        "method": request.method,
        "path": str(request.url.path),
        "user_id": request.headers.get(USER_ID_HEADER),
    }


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a rejected operation; the engine's state is unchanged at this point."""
    get_logger(__name__).warning(
        "Request rejected",
        extra={
            "error_code": exc.error,
            "status_code": exc.status_code,
            **_request_context(request),
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_exception_handler(request: Request, _exc: Exception) -> JSONResponse:
    """Log the traceback and answer 500 without leaking internals."""
    get_logger(__name__).exception("Unhandled exception", extra=_request_context(request))
    return _envelope(500, "internal_error", "An unexpected error occurred")


async def http_exception_handler(
    _request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    known = _HTTP_ERRORS.get(exc.status_code)
    if known is not None:
        return _envelope(exc.status_code, *known)
    return _envelope(exc.status_code, "HTTP_ERROR", str(exc.detail))


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the app."""
    register_common_exception_handlers(
        app,
        ServiceError,
        service_error_handler,
        unhandled_exception_handler,
    )
    app.add_exception_handler(
        StarletteHTTPException,
        cast("ExceptionHandler", http_exception_handler),
    )
