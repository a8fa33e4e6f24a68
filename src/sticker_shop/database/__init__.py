"""Database connection lifecycle for the sticker shop backend.

This package owns the single shared database handle: acquisition with
single-flight deduplication, staleness checks, retry with backoff, and a
circuit breaker.
"""

from __future__ import annotations

from .backoff import compute_backoff_ms, extra_delay_ms
from .breaker import BreakerState, ConnectionCircuitBreaker
from .driver import DatabaseDriver, SQLiteDriver, parse_sqlite_uri
from .errors import (
    CircuitOpenError,
    ConnectionAcquireError,
    FailureKind,
    classify_error,
)
from .manager import ConnectionManager, ConnectionSnapshot, ConnectionState
from .singleton import (
    acquire_connection,
    configure_manager,
    current_manager,
    get_manager,
    reset_manager,
)

__all__ = [
    "BreakerState",
    "CircuitOpenError",
    "ConnectionAcquireError",
    "ConnectionCircuitBreaker",
    "ConnectionManager",
    "ConnectionSnapshot",
    "ConnectionState",
    "DatabaseDriver",
    "FailureKind",
    "SQLiteDriver",
    "acquire_connection",
    "classify_error",
    "compute_backoff_ms",
    "configure_manager",
    "current_manager",
    "extra_delay_ms",
    "get_manager",
    "parse_sqlite_uri",
    "reset_manager",
]
