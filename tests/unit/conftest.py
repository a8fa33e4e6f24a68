"""Fakes for connection manager tests: clock, sleep, and driver.

The fakes let tests drive the manager without real network timing: the
clock only moves when a test (or the fake sleep) advances it.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Callable, Mapping

import pytest

from sticker_shop.config import DatabaseConfig
from sticker_shop.database.manager import ConnectionManager


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested delays and advances the fake clock instead of waiting."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.clock.advance(delay)
        await asyncio.sleep(0)


class FakeHandle:
    """Stand-in for a driver connection."""

    def __init__(self, number: int) -> None:
        self.number = number

    def __repr__(self) -> str:
        return f"FakeHandle({self.number})"


class FakeDriver:
    """Scriptable DatabaseDriver.

    Args:
        outcomes: Per-call results for connect(); an exception instance is
            raised, None means success. Once exhausted, ``fail_with`` applies.
        fail_with: Exception raised by every connect() after ``outcomes``.
        connect_delay: Real seconds each connect() takes. ``ping_delay`` and
            ``close_delay`` do the same for ping() and close().
    """

    def __init__(
        self,
        outcomes: list[BaseException | None] | None = None,
        fail_with: BaseException | None = None,
        connect_delay: float = 0.0,
    ) -> None:
        self.outcomes = list(outcomes or [])
        self.fail_with = fail_with
        self.connect_delay = connect_delay
        self.connect_calls = 0
        self.ping_calls = 0
        self.ping_error: BaseException | None = None
        self.ping_delay = 0.0
        self.close_error: BaseException | None = None
        self.close_delay = 0.0
        self.handles: list[FakeHandle] = []
        self.closed: list[Any] = []
        self.last_options: Mapping[str, Any] | None = None

    async def connect(self, uri: str, options: Mapping[str, Any]) -> FakeHandle:
        self.connect_calls += 1
        self.last_options = options
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
        else:
            outcome = self.fail_with
        if outcome is not None:
            raise outcome
        handle = FakeHandle(self.connect_calls)
        self.handles.append(handle)
        return handle

    async def ping(self, handle: Any) -> None:
        self.ping_calls += 1
        if self.ping_delay:
            await asyncio.sleep(self.ping_delay)
        if self.ping_error is not None:
            raise self.ping_error

    async def close(self, handle: Any) -> None:
        self.closed.append(handle)
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        if self.close_error is not None:
            raise self.close_error


def make_config(**overrides: Any) -> DatabaseConfig:
    """Config with small, deterministic retry settings."""
    defaults: dict[str, Any] = {
        "uri": "sqlite:///:memory:",
        "max_retries": 3,
        "breaker_threshold": 3,
        "breaker_cooldown_ms": 30000,
        "max_handle_age_ms": 30000,
        "retry_base_delay_ms": 100,
        "retry_max_jitter_ms": 0,
        "acquire_timeout_ms": 0,
    }
    defaults.update(overrides)
    return DatabaseConfig(**defaults)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def make_manager(
    clock: FakeClock, fake_sleep: FakeSleep, driver: FakeDriver
) -> Callable[..., ConnectionManager]:
    """Factory building a manager wired to the fakes.

    Keyword arguments override config fields.
    """

    def _make(**overrides: Any) -> ConnectionManager:
        return ConnectionManager(
            make_config(**overrides),
            driver,
            clock=clock,
            sleep=fake_sleep,
            rng=random.Random(0),
        )

    return _make
