"""Middleware that acquires the database connection before each request."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response

from sticker_shop.database.errors import ConnectionAcquireError

from ..dependencies import get_manager_dep
from .error_handler import connection_error_response

logger = logging.getLogger(__name__)

CONNECTION_TIME_HEADER = "X-Database-Connection-Time"

_EXEMPT_PATHS = frozenset({"/api", "/api/health", "/docs", "/redoc"})
_EXEMPT_PREFIXES = ("/api/health/", "/uploads/")


def is_exempt(request: Request) -> bool:
    """Return True for requests that never touch storage.

    Covers the service banner, health routes, API docs, uploaded files,
    static files (any path with a dot), and CORS preflight.
    """
    path = request.url.path.rstrip("/") or "/"
    return (
        request.method == "OPTIONS"
        or path in _EXEMPT_PATHS
        or f"{path}/".startswith(_EXEMPT_PREFIXES)
        or "." in path
    )


async def database_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Acquire a live handle, store it on ``request.state.db``, then continue."""
    if is_exempt(request):
        return await call_next(request)

    manager = get_manager_dep()
    started = time.perf_counter()
    try:
        request.state.db = await manager.acquire_connection()
    except ConnectionAcquireError as exc:
        logger.error(
            "Database connection failed method=%s path=%s kind=%s elapsed_ms=%.0f",
            request.method,
            request.url.path,
            exc.kind.value,
            (time.perf_counter() - started) * 1000,
        )
        return connection_error_response(exc)

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.debug("Database connected in %.0fms for %s", elapsed_ms, request.url.path)
    response = await call_next(request)
    response.headers[CONNECTION_TIME_HEADER] = str(round(elapsed_ms))
    return response


def register_database_middleware(app: FastAPI) -> None:
    """Install database_middleware on the app."""
    app.middleware("http")(database_middleware)
