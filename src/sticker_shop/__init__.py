"""Sticker Shop backend.

This package provides the database connection lifecycle manager used by
the storefront API, plus the HTTP boundary and CLI around it.
"""

from __future__ import annotations

from .config import DatabaseConfig, load_database_config, resolve_config
from .database import (
    CircuitOpenError,
    ConnectionAcquireError,
    ConnectionManager,
    FailureKind,
    acquire_connection,
    configure_manager,
    get_manager,
    reset_manager,
)

__all__ = [
    # Config
    "DatabaseConfig",
    "load_database_config",
    "resolve_config",
    # Connection management
    "ConnectionManager",
    "acquire_connection",
    "configure_manager",
    "get_manager",
    "reset_manager",
    # Errors
    "CircuitOpenError",
    "ConnectionAcquireError",
    "FailureKind",
]
