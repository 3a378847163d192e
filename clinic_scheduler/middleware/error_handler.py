"""Exception handlers rendering the API's error envelope."""

from typing import Any

import structlog
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_scheduler.core.exceptions import AppException, BusyException, SlotUnavailableException

logger = structlog.get_logger(__name__)

# Seconds a client should wait before retrying a busy schedule
BUSY_RETRY_AFTER_SECONDS = 1


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: Any,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    """Build the ``{"error", "message", "path", ...}`` body every handler returns."""
    content = {"error": error, "message": message, "path": str(request.url), **extra}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle application exceptions.

    Slot failures carry the evaluator's ``reason``; busy responses carry
    ``Retry-After``.

    Args:
        request: Request object
        exc: Application exception

    Returns:
        JSON error response
    """
    extra: dict[str, Any] = {}
    headers = None

    if isinstance(exc, SlotUnavailableException):
        extra["reason"] = exc.reason
    if isinstance(exc, BusyException):
        headers = {"Retry-After": str(BUSY_RETRY_AFTER_SECONDS)}
        logger.warning("schedule_busy", path=request.url.path)

    return error_response(
        request,
        exc.status_code,
        exc.__class__.__name__,
        exc.message,
        headers=headers,
        **extra,
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle HTTP exceptions."""
    return error_response(request, exc.status_code, "HTTPException", exc.detail)


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle request validation errors, listing each failing field."""
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        details=jsonable_encoder(exc.errors()),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions without leaking internals."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error_type=exc.__class__.__name__,
        error=str(exc),
    )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
    )
