"""Server runner for the Sticker Shop API."""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import uvicorn

from sticker_shop.config import CONFIG_PATH_ENV_VAR, resolve_config

from .app import create_app

APP_FACTORY = "sticker_shop.api.app:create_app"


@contextmanager
def _exported_config_path(config_path: str | None) -> Iterator[None]:
    """Expose the config path to a reloader subprocess for the duration of the run."""
    if config_path is None:
        yield
        return
    previous = os.environ.get(CONFIG_PATH_ENV_VAR)
    os.environ[CONFIG_PATH_ENV_VAR] = config_path
    try:
        yield
    finally:
        if previous is None:
            os.environ.pop(CONFIG_PATH_ENV_VAR, None)
        else:
            os.environ[CONFIG_PATH_ENV_VAR] = previous


def run_server(
    host: str = "127.0.0.1",
    port: int = 5000,
    log_level: str = "info",
    reload: bool = False,
    config_path: str | None = None,
    **kwargs: Any,
) -> None:
    """Run the Sticker Shop API under uvicorn.

    Without reload the database config is resolved here, once, and baked
    into the app. The reloader imports the app factory in a subprocess, so
    with reload the config path travels through STICKER_SHOP_CONFIG.

    Args:
        host: The host to bind to.
        port: The port to bind to.
        log_level: The log level for uvicorn.
        reload: Whether to enable auto-reload.
        config_path: Optional TOML config path.
        **kwargs: Additional keyword arguments to forward to uvicorn.run.
    """
    options: dict[str, Any] = {"host": host, "port": port, "log_level": log_level, **kwargs}

    if reload:
        with _exported_config_path(config_path):
            uvicorn.run(APP_FACTORY, factory=True, reload=True, **options)
        return

    config = resolve_config(Path(config_path) if config_path else None)
    uvicorn.run(create_app(config=config), **options)
