"""Connection lifecycle management for the shared database handle.

The ConnectionManager hands out one process-wide handle. Concurrent
requests for a connection share a single in-flight establishment attempt,
cached handles are revalidated on every request, failed tries are retried
with exponential backoff and jitter, and a circuit breaker stops doomed
attempts after repeated failures.

All state is mutated from one asyncio event loop. Mutations happen either
in the synchronous checks before an attempt starts or inside the single
in-flight attempt, so no lock is needed.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from ..config import DatabaseConfig
from .backoff import compute_backoff_ms, extra_delay_ms
from .breaker import BreakerState, ConnectionCircuitBreaker
from .driver import DatabaseDriver, SQLiteDriver
from .errors import (
    CircuitOpenError,
    ConnectionAcquireError,
    FailureKind,
    classify_error,
)

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class ConnectionState(Enum):
    """Lifecycle state of the shared handle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class ConnectionSnapshot:
    """Point-in-time view of the manager, for health reporting."""

    state: ConnectionState
    breaker_state: BreakerState
    consecutive_failures: int
    retry_after_ms: float
    last_connected_at: datetime | None
    handle_age_ms: float | None
    attempt_in_flight: bool
    uri: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "state": self.state.value,
            "breaker_state": self.breaker_state.value,
            "consecutive_failures": self.consecutive_failures,
            "retry_after_ms": round(self.retry_after_ms),
            "last_connected_at": (
                self.last_connected_at.isoformat() if self.last_connected_at else None
            ),
            "handle_age_ms": round(self.handle_age_ms) if self.handle_age_ms is not None else None,
            "attempt_in_flight": self.attempt_in_flight,
            "uri": self.uri,
        }


class ConnectionManager:
    """Owns the shared database handle and its lifecycle.

    Usage:
        manager = ConnectionManager(DatabaseConfig.from_env())
        conn = await manager.acquire_connection()
        ...
        await manager.close()

    Attributes:
        config: Connection settings.
        driver: Database client used to open, probe, and close handles.
    """

    def __init__(
        self,
        config: DatabaseConfig | None = None,
        driver: DatabaseDriver | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the manager. No connection is opened here.

        Args:
            config: Connection settings. Defaults to DatabaseConfig().
            driver: Database client. Defaults to SQLiteDriver().
            clock: Monotonic clock in seconds. Injectable for tests.
            sleep: Coroutine used for inter-retry waits. Injectable for tests.
            rng: Random source for backoff jitter.
        """
        self.config = config or DatabaseConfig()
        self.driver: DatabaseDriver = driver or SQLiteDriver()
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()

        self._breaker = ConnectionCircuitBreaker(
            threshold=self.config.breaker_threshold,
            cooldown_ms=self.config.breaker_cooldown_ms,
            clock=clock,
        )

        self._handle: Any = None
        self._state = ConnectionState.DISCONNECTED
        self._connected_at: float | None = None
        self._last_connected_at: datetime | None = None
        self._in_flight: asyncio.Task[Any] | None = None
        self._closing = False

    @property
    def state(self) -> ConnectionState:
        """Return the current connection state."""
        return self._state

    @property
    def breaker(self) -> ConnectionCircuitBreaker:
        """Return the circuit breaker guarding establishment."""
        return self._breaker

    @property
    def last_connected_at(self) -> datetime | None:
        """Return the UTC time of the last successful establishment."""
        return self._last_connected_at

    def handle_age_ms(self) -> float | None:
        """Return the age of the current handle, None when disconnected."""
        if self._connected_at is None:
            return None
        return (self._clock() - self._connected_at) * 1000

    # =========================================================================
    # Acquisition
    # =========================================================================

    async def acquire_connection(self, timeout: float | None = None) -> Any:
        """Return a live connection handle.

        Args:
            timeout: Overall deadline in seconds. Defaults to the configured
                acquire_timeout_ms; 0 or a negative value disables it.

        Raises:
            CircuitOpenError: If the breaker is open.
            ConnectionAcquireError: If no usable handle could be produced in
                time, classified by FailureKind.
        """
        if timeout is None:
            timeout = self.config.acquire_timeout_ms / 1000
        if timeout <= 0:
            return await self._acquire()

        try:
            return await asyncio.wait_for(self._acquire(), timeout)
        except asyncio.TimeoutError as e:
            logger.error("Connection acquisition timed out timeout_s=%.2f", timeout)
            raise ConnectionAcquireError(
                FailureKind.TIMEOUT,
                f"Database connection timeout after {timeout:.1f}s",
            ) from e

    async def _acquire(self) -> Any:
        while True:
            self._breaker.check()

            if self._state == ConnectionState.CONNECTED:
                handle = self._handle
                usable = await self._is_usable(handle)
                if self._handle is not handle:
                    # Replaced or torn down while we were probing; start over.
                    continue
                if usable:
                    self._breaker.record_success()
                    return handle
                await self._teardown("invalid_handle")
                # Another caller may have reconnected or started an attempt
                # while the close was suspended.
                continue

            if self._in_flight is None:
                self._in_flight = asyncio.create_task(self._establish())
                self._in_flight.add_done_callback(_consume_task_result)
            else:
                logger.debug("Connection attempt in progress, joining it")

            # Shielded so one caller's deadline can't cancel the shared attempt.
            return await asyncio.shield(self._in_flight)

    async def _is_usable(self, handle: Any) -> bool:
        """Check freshness first, then run the liveness probe."""
        age_ms = self.handle_age_ms()
        if age_ms is None or age_ms > self.config.max_handle_age_ms:
            logger.info(
                "Connection stale age_ms=%s max_age_ms=%d",
                f"{age_ms:.0f}" if age_ms is not None else "unknown",
                self.config.max_handle_age_ms,
            )
            return False

        try:
            await asyncio.wait_for(
                self.driver.ping(handle),
                self.config.probe_timeout_ms / 1000,
            )
        except Exception as e:
            logger.info(
                "Connection probe failed kind=%s error=%s",
                classify_error(e).value,
                e,
            )
            return False
        return True

    async def _establish(self) -> Any:
        """Run one establishment attempt of up to max_retries tries."""
        self._state = ConnectionState.CONNECTING
        max_retries = self.config.max_retries
        last_error: BaseException | None = None
        last_kind = FailureKind.UNKNOWN

        logger.info(
            "Connection attempt started uri=%s max_retries=%d",
            self.config.redacted_uri,
            max_retries,
        )
        try:
            for attempt in range(max_retries):
                try:
                    handle = await asyncio.wait_for(
                        self.driver.connect(self.config.uri, self.config.connect_options()),
                        self.config.connect_timeout_ms / 1000,
                    )
                except Exception as e:
                    last_error = e
                    last_kind = classify_error(e)
                    logger.warning(
                        "Connection try failed try=%d/%d kind=%s error=%s",
                        attempt + 1,
                        max_retries,
                        last_kind.value,
                        e,
                    )
                    opened = self._breaker.record_failure(last_kind)
                    remaining = max_retries - attempt - 1

                    if remaining == 0:
                        break
                    if opened:
                        raise CircuitOpenError(self._breaker.time_until_retry_ms()) from e

                    if last_kind == FailureKind.BROKEN_PIPE:
                        await self._teardown("broken_pipe")
                    await self._sleep(self._retry_delay_ms(attempt, last_kind) / 1000)
                    continue

                if self._handle is not None and self._handle is not handle:
                    await self._teardown("replaced")
                self._on_connected(handle, attempt)
                return handle
        except asyncio.CancelledError as e:
            self._state = ConnectionState.DISCONNECTED
            if self._closing:
                # Waiters get a typed failure instead of a bare cancellation.
                raise ConnectionAcquireError(
                    FailureKind.TIMEOUT,
                    "Connection manager closed before the attempt completed",
                ) from e
            raise
        except BaseException:
            self._state = ConnectionState.DISCONNECTED
            raise
        finally:
            self._in_flight = None

        self._state = ConnectionState.DISCONNECTED
        logger.error(
            "All connection tries failed tries=%d kind=%s",
            max_retries,
            last_kind.value,
        )
        raise ConnectionAcquireError(
            last_kind,
            f"Database connection failed after {max_retries} tries: {last_error}",
        ) from last_error

    def _retry_delay_ms(self, attempt: int, kind: FailureKind) -> float:
        delay_ms = compute_backoff_ms(
            attempt,
            base_ms=self.config.retry_base_delay_ms,
            max_jitter_ms=self.config.retry_max_jitter_ms,
            max_delay_ms=self.config.retry_max_delay_ms,
            rng=self._rng,
        ) + extra_delay_ms(kind)
        logger.info("Retrying connection delay_ms=%.0f next_try=%d", delay_ms, attempt + 2)
        return delay_ms

    def _on_connected(self, handle: Any, attempt: int) -> None:
        self._handle = handle
        self._state = ConnectionState.CONNECTED
        self._connected_at = self._clock()
        self._last_connected_at = datetime.now(timezone.utc)
        self._breaker.record_success()
        logger.info("Connection established tries=%d uri=%s", attempt + 1, self.config.redacted_uri)

    # =========================================================================
    # Teardown
    # =========================================================================

    async def _teardown(self, reason: str) -> None:
        """Best-effort close of the current handle; never raises."""
        handle = self._handle
        self._handle = None
        self._connected_at = None
        if self._state == ConnectionState.CONNECTED:
            self._state = ConnectionState.DISCONNECTED
        if handle is None:
            return

        try:
            await self.driver.close(handle)
        except Exception as e:
            logger.warning("Error closing connection reason=%s error=%s", reason, e)
        else:
            logger.info("Connection closed reason=%s", reason)

    async def report_transport_error(self, exc: BaseException) -> FailureKind:
        """Tell the manager a query on the shared handle failed.

        Transport failures (reset, broken pipe, unreachable server) tear the
        handle down so the next acquisition opens a fresh one.

        Returns:
            The classified kind of ``exc``.
        """
        kind = classify_error(exc)
        if kind.is_transport and self._handle is not None:
            logger.warning("Transport error on shared connection kind=%s error=%s", kind.value, exc)
            await self._teardown(kind.value)
        return kind

    async def close(self) -> None:
        """Close the shared handle, e.g. on process shutdown. Idempotent.

        An attempt still in flight is cancelled; its waiters fail with a
        TIMEOUT ConnectionAcquireError.
        """
        in_flight = self._in_flight
        if in_flight is not None and not in_flight.done():
            self._closing = True
            in_flight.cancel()
            try:
                await in_flight
            except (asyncio.CancelledError, ConnectionAcquireError):
                pass
            finally:
                self._closing = False
                # A task cancelled before its first step never clears the slot.
                if self._in_flight is in_flight:
                    self._in_flight = None
        await self._teardown("shutdown")
        self._state = ConnectionState.DISCONNECTED

    def snapshot(self) -> ConnectionSnapshot:
        """Return a read-only view of the manager state."""
        return ConnectionSnapshot(
            state=self._state,
            breaker_state=self._breaker.state,
            consecutive_failures=self._breaker.failure_count,
            retry_after_ms=self._breaker.time_until_retry_ms(),
            last_connected_at=self._last_connected_at,
            handle_age_ms=self.handle_age_ms(),
            attempt_in_flight=self._in_flight is not None,
            uri=self.config.redacted_uri,
        )


def _consume_task_result(task: asyncio.Task[Any]) -> None:
    """Mark the attempt's exception as retrieved.

    Every waiter may have given up on its deadline; the outcome has already
    been logged by the attempt itself.
    """
    if not task.cancelled():
        task.exception()
