"""Singleton connection manager instance.

Provides module-level configure_manager(), get_manager(), current_manager(),
acquire_connection() and reset_manager() functions for managing the
process-wide ConnectionManager.
"""

from __future__ import annotations

import logging
from typing import Any

from ..config import DatabaseConfig, resolve_config
from .driver import DatabaseDriver
from .manager import ConnectionManager

logger = logging.getLogger(__name__)

_manager: ConnectionManager | None = None


def configure_manager(
    config: DatabaseConfig | None = None,
    driver: DatabaseDriver | None = None,
) -> ConnectionManager:
    """Create the singleton manager with explicit settings.

    Args:
        config: Connection settings. Resolved from the environment if None.
        driver: Database client. Defaults to the SQLite driver.

    Raises:
        RuntimeError: If a manager is already configured.
    """
    global _manager
    if _manager is not None:
        msg = "Connection manager already configured. Call reset_manager() first."
        raise RuntimeError(msg)
    _manager = ConnectionManager(config or resolve_config(), driver)
    logger.info("Connection manager configured uri=%s", _manager.config.redacted_uri)
    return _manager


def get_manager() -> ConnectionManager:
    """Get the singleton manager, configuring it from the environment if needed.

    No connection is opened until the first acquisition.
    """
    if _manager is None:
        return configure_manager()
    return _manager


def current_manager() -> ConnectionManager | None:
    """Return the configured manager without creating one."""
    return _manager


async def acquire_connection(timeout: float | None = None) -> Any:
    """Acquire a live handle from the singleton manager."""
    return await get_manager().acquire_connection(timeout=timeout)


async def reset_manager() -> None:
    """Close and discard the singleton manager.

    Safe to call when no manager is configured.
    """
    global _manager
    if _manager is not None:
        await _manager.close()
        _manager = None
