"""Dependency initialization and management for the API.

Binds the process-wide ConnectionManager to the application lifespan
(startup/shutdown) and exposes it to routes and middleware.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request

from sticker_shop.config import DatabaseConfig
from sticker_shop.database import singleton
from sticker_shop.database.driver import DatabaseDriver
from sticker_shop.database.manager import ConnectionManager

_manager: ConnectionManager | None = None


def get_manager_dep() -> ConnectionManager:
    """Get the ConnectionManager singleton.

    Raises:
        RuntimeError: If dependencies are not initialized.
    """
    if _manager is None:
        raise RuntimeError("Dependencies not initialized. Call init_dependencies() first.")
    return _manager


async def get_connection_dep(request: Request) -> Any:
    """Return the handle acquired for this request.

    Falls back to acquiring one when the database middleware did not run
    (e.g. in an app built without it).
    """
    handle = getattr(request.state, "db", None)
    if handle is None:
        handle = await get_manager_dep().acquire_connection()
    return handle


async def init_dependencies(
    config: DatabaseConfig | None = None,
    driver: DatabaseDriver | None = None,
    manager: ConnectionManager | None = None,
) -> None:
    """Initialize the module-level ConnectionManager.

    This function is idempotent - calling it again keeps the existing
    manager. No connection is opened; the first request does that.

    Args:
        config: Connection settings, resolved from the environment if None.
        driver: Database client override.
        manager: A ready-made manager to use instead of the singleton.
    """
    global _manager

    if _manager is not None:
        return

    if manager is not None:
        _manager = manager
        return

    _manager = singleton.configure_manager(config, driver)


async def shutdown_dependencies() -> None:
    """Close the shared connection and reset the manager.

    This function is safe to call multiple times - it's a no-op if already
    shutdown or never initialized.
    """
    global _manager

    if _manager is None:
        return

    if _manager is singleton.current_manager():
        await singleton.reset_manager()
    else:
        await _manager.close()
    _manager = None
