"""Connection failure taxonomy and classification."""

from __future__ import annotations

import errno
import socket
import sqlite3
from enum import Enum


class FailureKind(Enum):
    """Classified cause of a failed connection acquisition."""

    TIMEOUT = "timeout"  # connect or server selection exceeded its budget
    CONNECTION_RESET = "connection_reset"  # transport reset mid-handshake
    BROKEN_PIPE = "broken_pipe"  # transport closed while writing
    SERVER_UNREACHABLE = "server_unreachable"  # no reachable server
    CIRCUIT_OPEN = "circuit_open"  # breaker tripped, wait out the cooldown
    UNKNOWN = "unknown"

    @property
    def is_transport(self) -> bool:
        """True for kinds that mean the current handle can't be trusted."""
        return self in _TRANSPORT_KINDS


_TRANSPORT_KINDS = frozenset(
    {
        FailureKind.CONNECTION_RESET,
        FailureKind.BROKEN_PIPE,
        FailureKind.SERVER_UNREACHABLE,
    }
)

_UNREACHABLE_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
        errno.EHOSTDOWN,
        errno.ENETDOWN,
        errno.ENOENT,
    }
)


class ConnectionAcquireError(Exception):
    """Raised when the manager cannot produce a usable connection handle.

    Attributes:
        kind: Classified cause.
        retry_after_ms: Hint for how long callers should wait, if known.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        retry_after_ms: float | None = None,
    ) -> None:
        self.kind = kind
        self.retry_after_ms = retry_after_ms
        super().__init__(message)


class CircuitOpenError(ConnectionAcquireError):
    """Raised when the breaker is open and attempts are rejected."""

    def __init__(self, retry_after_ms: float) -> None:
        super().__init__(
            FailureKind.CIRCUIT_OPEN,
            f"Circuit breaker open. Retry in {retry_after_ms / 1000:.1f}s",
            retry_after_ms=retry_after_ms,
        )


def classify_error(exc: BaseException) -> FailureKind:
    """Map an exception raised by a driver to a FailureKind.

    Subclass checks run before their bases: ConnectionResetError and
    BrokenPipeError are both ConnectionError, which is an OSError.
    """
    if isinstance(exc, ConnectionAcquireError):
        return exc.kind
    if isinstance(exc, TimeoutError):
        return FailureKind.TIMEOUT
    if isinstance(exc, ConnectionResetError):
        return FailureKind.CONNECTION_RESET
    if isinstance(exc, BrokenPipeError):
        return FailureKind.BROKEN_PIPE
    if isinstance(exc, (ConnectionRefusedError, socket.gaierror)):
        return FailureKind.SERVER_UNREACHABLE
    if isinstance(exc, sqlite3.OperationalError):
        if "unable to open database" in str(exc).lower():
            return FailureKind.SERVER_UNREACHABLE
        if "locked" in str(exc).lower():
            return FailureKind.TIMEOUT
        return FailureKind.UNKNOWN
    if isinstance(exc, OSError) and exc.errno is not None:
        if exc.errno == errno.ECONNRESET:
            return FailureKind.CONNECTION_RESET
        if exc.errno == errno.EPIPE:
            return FailureKind.BROKEN_PIPE
        if exc.errno == errno.ETIMEDOUT:
            return FailureKind.TIMEOUT
        if exc.errno in _UNREACHABLE_ERRNOS:
            return FailureKind.SERVER_UNREACHABLE
    return FailureKind.UNKNOWN
