"""Integration tests for the manager on a real aiosqlite database."""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
import pytest

from sticker_shop.config import DatabaseConfig
from sticker_shop.database import (
    ConnectionAcquireError,
    ConnectionManager,
    ConnectionState,
    FailureKind,
    SQLiteDriver,
)


def _config(uri: str, **overrides: object) -> DatabaseConfig:
    values: dict[str, object] = {
        "uri": uri,
        "max_retries": 2,
        "retry_base_delay_ms": 0,
        "retry_max_jitter_ms": 0,
        "acquire_timeout_ms": 0,
    }
    values.update(overrides)
    return DatabaseConfig(**values)  # type: ignore[arg-type]


async def _no_sleep(delay: float) -> None:
    return None


class TestSQLiteDriver:
    """Driver operations against aiosqlite."""

    @pytest.mark.asyncio
    async def test_connect_ping_close(self, tmp_path: Path) -> None:
        driver = SQLiteDriver()
        uri = f"sqlite:///{tmp_path / 'shop.db'}"

        handle = await driver.connect(uri, {"socket_timeout_ms": 1000})
        try:
            assert isinstance(handle, aiosqlite.Connection)
            await driver.ping(handle)
        finally:
            await driver.close(handle)

    @pytest.mark.asyncio
    async def test_memory_database(self) -> None:
        driver = SQLiteDriver()

        handle = await driver.connect("sqlite:///:memory:", {})
        try:
            await driver.ping(handle)
        finally:
            await driver.close(handle)

    @pytest.mark.asyncio
    async def test_ping_on_closed_handle_fails(self) -> None:
        driver = SQLiteDriver()
        handle = await driver.connect(":memory:", {})
        await driver.close(handle)

        with pytest.raises(Exception):
            await driver.ping(handle)


class TestManagerWithSQLite:
    """End-to-end acquisition with the real driver."""

    @pytest.mark.asyncio
    async def test_acquire_reuses_live_handle(self, tmp_path: Path) -> None:
        manager = ConnectionManager(_config(f"sqlite:///{tmp_path / 'shop.db'}"))
        try:
            first = await manager.acquire_connection()
            second = await manager.acquire_connection()

            assert first is second
            assert manager.state == ConnectionState.CONNECTED
            async with first.execute("SELECT 1 AS one") as cursor:
                row = await cursor.fetchone()
            assert row["one"] == 1
        finally:
            await manager.close()

    @pytest.mark.asyncio
    async def test_dead_handle_is_replaced(self, tmp_path: Path) -> None:
        manager = ConnectionManager(_config(f"sqlite:///{tmp_path / 'shop.db'}"))
        try:
            first = await manager.acquire_connection()
            await first.close()

            second = await manager.acquire_connection()

            assert second is not first
            await manager.driver.ping(second)
        finally:
            await manager.close()

    @pytest.mark.asyncio
    async def test_unopenable_path_is_server_unreachable(self, tmp_path: Path) -> None:
        missing_dir = tmp_path / "does-not-exist" / "shop.db"
        manager = ConnectionManager(_config(f"sqlite:///{missing_dir}"), sleep=_no_sleep)

        with pytest.raises(ConnectionAcquireError) as exc_info:
            await manager.acquire_connection()

        assert exc_info.value.kind == FailureKind.SERVER_UNREACHABLE
        assert manager.state == ConnectionState.DISCONNECTED
        assert manager.breaker.failure_count == 2

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_real_backoff_between_tries(self, tmp_path: Path) -> None:
        missing_dir = tmp_path / "does-not-exist" / "shop.db"
        manager = ConnectionManager(
            _config(f"sqlite:///{missing_dir}", max_retries=3, retry_base_delay_ms=100)
        )
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(ConnectionAcquireError):
            await manager.acquire_connection()

        # 100ms + 200ms backoff plus 300ms extra per unreachable retry
        assert loop.time() - started >= 0.85
