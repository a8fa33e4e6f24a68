"""Database driver interface and the aiosqlite-backed implementation.

The ConnectionManager only needs three operations from a driver: open a
handle, close it, and run a cheap round-trip probe. Timeouts are applied by
the manager, not by the driver.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Protocol

import aiosqlite

logger = logging.getLogger(__name__)

_SQLITE_SCHEME = "sqlite://"
MEMORY_DB = ":memory:"


class DatabaseDriver(Protocol):
    """Operations the ConnectionManager requires from a database client."""

    async def connect(self, uri: str, options: Mapping[str, Any]) -> Any:
        """Open and return a new connection handle."""
        ...

    async def close(self, handle: Any) -> None:
        """Close a handle previously returned by connect()."""
        ...

    async def ping(self, handle: Any) -> None:
        """Run a minimal round trip on ``handle``; raise if it is unusable."""
        ...


def parse_sqlite_uri(uri: str) -> str:
    """Return the database path for a ``sqlite://`` URI or a bare path.

    ``sqlite:///shop.db`` is relative, ``sqlite:////var/db/shop.db`` is
    absolute, and ``sqlite:///:memory:`` is an in-memory database.

    Raises:
        ValueError: If the URI uses another scheme or names no database.
    """
    if "://" not in uri:
        return uri
    if not uri.startswith(_SQLITE_SCHEME):
        scheme = uri.split("://", 1)[0]
        msg = f"Unsupported database scheme for SQLite driver: {scheme}"
        raise ValueError(msg)

    path = uri[len(_SQLITE_SCHEME):]
    if path.startswith("/"):
        path = path[1:]
    if not path:
        msg = f"No database path in URI: {uri}"
        raise ValueError(msg)
    return path


class SQLiteDriver:
    """DatabaseDriver on top of aiosqlite.

    Each handle is a single aiosqlite connection, which matches a pool
    limit of one connection per process.
    """

    async def connect(self, uri: str, options: Mapping[str, Any]) -> aiosqlite.Connection:
        """Open database connection.

        Args:
            uri: ``sqlite://`` URI or bare path.
            options: Driver options; ``socket_timeout_ms`` becomes the SQLite
                busy timeout.
        """
        db_path = parse_sqlite_uri(uri)
        if db_path != MEMORY_DB:
            resolved_path = Path(db_path).resolve()
            logger.info("Database: %s (exists: %s)", resolved_path, resolved_path.exists())

        busy_timeout = options.get("socket_timeout_ms", 5000) / 1000
        conn = await aiosqlite.connect(db_path, timeout=busy_timeout)
        conn.row_factory = aiosqlite.Row

        pool_size = options.get("max_pool_size")
        if pool_size is not None and pool_size > 1:
            logger.debug("SQLite uses one connection per handle; max_pool_size=%d ignored", pool_size)
        return conn

    async def close(self, handle: aiosqlite.Connection) -> None:
        """Close database connection."""
        await handle.close()

    async def ping(self, handle: aiosqlite.Connection) -> None:
        """Probe the connection with ``SELECT 1``."""
        async with handle.execute("SELECT 1") as cursor:
            row = await cursor.fetchone()
        if row is None:
            msg = "Liveness probe returned no row"
            raise ConnectionError(msg)
