"""Error handler middleware for FastAPI application."""

from __future__ import annotations

import logging
import math

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from sticker_shop.database.errors import ConnectionAcquireError, FailureKind

logger = logging.getLogger(__name__)

# Retry hint (seconds) for kinds whose error carries none of its own
DEFAULT_RETRY_AFTER_SECONDS: dict[FailureKind, int] = {
    FailureKind.TIMEOUT: 5,
    FailureKind.CONNECTION_RESET: 5,
    FailureKind.BROKEN_PIPE: 5,
    FailureKind.SERVER_UNREACHABLE: 10,
}

_MESSAGES: dict[FailureKind, str] = {
    FailureKind.TIMEOUT: "Database connection timed out. Please try again later.",
    FailureKind.CONNECTION_RESET: "Connection to database was reset. Please try again later.",
    FailureKind.BROKEN_PIPE: (
        "Connection to database was broken. "
        "The server will reconnect on your next request."
    ),
    FailureKind.SERVER_UNREACHABLE: "Database server is unreachable. Please try again later.",
    FailureKind.CIRCUIT_OPEN: (
        "Database service temporarily unavailable due to connection issues. "
        "Please try again later."
    ),
    FailureKind.UNKNOWN: "Database connection failed.",
}


class ErrorResponse(BaseModel):
    """Error response model."""

    detail: str


class ConnectionErrorBody(BaseModel):
    """Machine-readable part of a connection failure response."""

    model_config = ConfigDict(populate_by_name=True)

    kind: str
    retry_after: int | None = Field(default=None, alias="retryAfter")


class ConnectionErrorResponse(ErrorResponse):
    """Response body for a failed connection acquisition."""

    error: ConnectionErrorBody


def status_for_kind(kind: FailureKind) -> int:
    """Return the HTTP status for a classified connection failure."""
    return 500 if kind == FailureKind.UNKNOWN else 503


def retry_after_seconds(exc: ConnectionAcquireError) -> int | None:
    """Return the Retry-After hint in whole seconds, if any."""
    if exc.retry_after_ms is not None:
        return max(1, math.ceil(exc.retry_after_ms / 1000))
    return DEFAULT_RETRY_AFTER_SECONDS.get(exc.kind)


def connection_error_response(exc: ConnectionAcquireError) -> JSONResponse:
    """Build the JSON response for a failed acquisition.

    Shared by the exception handler and the database middleware, which
    runs outside FastAPI's exception handling.
    """
    retry_after = retry_after_seconds(exc)
    body = ConnectionErrorResponse(
        detail=_MESSAGES[exc.kind],
        error=ConnectionErrorBody(kind=exc.kind.value, retry_after=retry_after),
    )
    headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
    return JSONResponse(
        status_code=status_for_kind(exc.kind),
        content=body.model_dump(by_alias=True),
        headers=headers,
    )


async def _connection_error_handler(
    request: Request, exc: ConnectionAcquireError
) -> JSONResponse:
    """Handle ConnectionAcquireError raised inside a route.

    Args:
        request: The request that caused the exception.
        exc: The classified acquisition failure.

    Returns:
        JSONResponse with 503 (500 for unknown causes) and the failure kind.
    """
    logger.warning(
        "Database unavailable path=%s kind=%s error=%s",
        request.url.path,
        exc.kind.value,
        exc,
    )
    return connection_error_response(exc)


async def _value_error_handler(
    request: Request, exc: ValueError
) -> JSONResponse:
    """Handle ValueError exceptions.

    Args:
        request: The request that caused the exception.
        exc: The ValueError exception.

    Returns:
        JSONResponse with 400 status and ErrorResponse body.
    """
    error_message = str(exc) if exc.args else ""
    error_response = ErrorResponse(detail=error_message)
    return JSONResponse(
        status_code=400,
        content=error_response.model_dump(),
    )


async def _generic_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handle all unhandled exceptions.

    Returns:
        JSONResponse with 500 status and sanitized error message.
    """
    logger.exception("Unhandled error path=%s", request.url.path)
    # Sanitized response - never leak internal error details
    error_response = ErrorResponse(detail="Internal server error")
    return JSONResponse(
        status_code=500,
        content=error_response.model_dump(),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers for the FastAPI application.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(ConnectionAcquireError, _connection_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValueError, _value_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
