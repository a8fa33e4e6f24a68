"""Circuit breaker guarding connection establishment.

Counts consecutive connect failures and, once the threshold is reached,
rejects new attempts until a cooldown has elapsed. State lives in memory
only: it belongs to the process that owns the connection.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable

from .errors import CircuitOpenError, FailureKind

logger = logging.getLogger(__name__)


class BreakerState(Enum):
    """Possible states for the connection circuit breaker."""

    CLOSED = "closed"  # Normal operation - attempts allowed
    OPEN = "open"  # Tripped - attempts rejected until open_until


class ConnectionCircuitBreaker:
    """Consecutive-failure circuit breaker.

    Usage:
        breaker = ConnectionCircuitBreaker(threshold=3, cooldown_ms=30000)

        breaker.check()  # raises CircuitOpenError while open
        try:
            handle = await connect()
            breaker.record_success()
        except OSError as e:
            breaker.record_failure(classify_error(e))

    Attributes:
        threshold: Consecutive failures before opening.
        cooldown_ms: How long the breaker stays open.
    """

    def __init__(
        self,
        threshold: int,
        cooldown_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the breaker.

        Args:
            threshold: Consecutive failures before opening.
            cooldown_ms: Milliseconds to stay open once tripped.
            clock: Monotonic clock returning seconds. Injectable for tests.
        """
        if threshold < 1:
            msg = "threshold must be at least 1"
            raise ValueError(msg)
        self.threshold = threshold
        self.cooldown_ms = cooldown_ms
        self._clock = clock

        self._state = BreakerState.CLOSED
        self._failure_count = 0
        self._open_until: float | None = None
        self._last_failure_kind: FailureKind | None = None

    @property
    def state(self) -> BreakerState:
        """Return the current breaker state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Return the consecutive failure count."""
        return self._failure_count

    @property
    def open_until(self) -> float | None:
        """Return the clock reading at which the breaker may close."""
        return self._open_until

    @property
    def is_open(self) -> bool:
        return self._state == BreakerState.OPEN

    @property
    def last_failure_kind(self) -> FailureKind | None:
        return self._last_failure_kind

    def time_until_retry_ms(self) -> float:
        """Get milliseconds until the breaker permits a new attempt."""
        if self._state != BreakerState.OPEN or self._open_until is None:
            return 0.0
        remaining = (self._open_until - self._clock()) * 1000
        return max(0.0, remaining)

    def check(self) -> None:
        """Permit or reject a new attempt.

        Closes the breaker (and resets the failure count) when the cooldown
        has elapsed.

        Raises:
            CircuitOpenError: If the breaker is open and still cooling down.
        """
        if self._state != BreakerState.OPEN:
            return

        remaining_ms = self.time_until_retry_ms()
        if remaining_ms > 0:
            logger.debug("Breaker open, rejecting attempt retry_after_ms=%.0f", remaining_ms)
            raise CircuitOpenError(remaining_ms)

        self._close("cooldown_elapsed")

    def record_failure(self, kind: FailureKind) -> bool:
        """Record a failed attempt and open the breaker at the threshold.

        Returns:
            True if this failure opened the breaker.
        """
        self._failure_count += 1
        self._last_failure_kind = kind

        logger.warning(
            "Connection failure %d/%d kind=%s",
            self._failure_count,
            self.threshold,
            kind.value,
        )

        if self._state == BreakerState.CLOSED and self._failure_count >= self.threshold:
            self._state = BreakerState.OPEN
            self._open_until = self._clock() + self.cooldown_ms / 1000
            logger.error(
                "Circuit breaker OPENED failures=%d cooldown_ms=%d kind=%s",
                self._failure_count,
                self.cooldown_ms,
                kind.value,
            )
            return True
        return False

    def record_success(self) -> None:
        """Record a success; resets the consecutive failure count."""
        if self._failure_count:
            logger.debug("Resetting failure count from %d", self._failure_count)
        self._failure_count = 0
        self._last_failure_kind = None

    def reset(self) -> None:
        """Manually reset the breaker to closed state."""
        if self._state != BreakerState.CLOSED:
            self._close("manual_reset")
        self._failure_count = 0
        self._last_failure_kind = None

    def _close(self, reason: str) -> None:
        self._state = BreakerState.CLOSED
        self._failure_count = 0
        self._open_until = None
        logger.info("Circuit breaker CLOSED reason=%s", reason)
