"""Routes that run a round trip on the shared connection."""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Depends

from sticker_shop.database.errors import ConnectionAcquireError
from sticker_shop.database.manager import ConnectionManager

from ..dependencies import get_connection_dep, get_manager_dep

router = APIRouter()


@router.get("/ping")
async def ping_database(
    handle: Any = Depends(get_connection_dep),
    manager: ConnectionManager = Depends(get_manager_dep),
) -> dict[str, Any]:
    """Probe the request's handle and report the round-trip time.

    A transport failure tears the shared handle down so the next request
    reconnects, and is reported like a failed acquisition.
    """
    started = time.perf_counter()
    try:
        await manager.driver.ping(handle)
    except Exception as e:
        kind = await manager.report_transport_error(e)
        raise ConnectionAcquireError(kind, f"Database ping failed: {e}") from e
    return {
        "status": "ok",
        "round_trip_ms": round((time.perf_counter() - started) * 1000, 2),
    }
