"""Health check router for the database connection."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from sticker_shop.database.manager import ConnectionManager

from ..dependencies import get_manager_dep

logger = logging.getLogger(__name__)

router = APIRouter()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@router.get("")
def get_health(manager: ConnectionManager = Depends(get_manager_dep)) -> dict[str, Any]:
    """Return connection status without attempting to connect.

    Always 200: the process is up even when the database is not.
    """
    snapshot = manager.snapshot()
    return {
        "status": "ok",
        "timestamp": _timestamp(),
        "database": snapshot.to_dict(),
    }


@router.get("/db")
async def get_health_db(manager: ConnectionManager = Depends(get_manager_dep)) -> dict[str, Any]:
    """Acquire a connection and report success.

    Acquisition failures propagate to the ConnectionAcquireError handler,
    which answers 503 (500 for unknown causes).
    """
    await manager.acquire_connection()
    logger.debug("Health check connected uri=%s", manager.config.redacted_uri)
    return {
        "status": "success",
        "message": "Connected to database successfully",
        "timestamp": _timestamp(),
        "database": manager.snapshot().to_dict(),
    }
