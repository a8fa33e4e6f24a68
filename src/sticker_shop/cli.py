"""CLI for the sticker shop backend.

Provides commands to serve the API and to check database connectivity
through the connection manager.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from .config import DatabaseConfig, resolve_config
from .database import ConnectionAcquireError, ConnectionManager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool) -> None:
    """Sticker Shop backend - database connection tools and API server."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _load_config(config_path: str | None) -> DatabaseConfig:
    try:
        return resolve_config(Path(config_path) if config_path else None)
    except (FileNotFoundError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--config", "config_path", type=click.Path(), default=None, help="TOML config file")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Overall deadline in seconds (default: acquire_timeout_ms from config)",
)
def check(config_path: str | None, timeout: float | None) -> None:
    """Acquire a connection once and print the manager status as JSON."""
    config = _load_config(config_path)
    ok, status = asyncio.run(_check_async(config, timeout))
    click.echo(json.dumps(status, indent=2))
    if not ok:
        sys.exit(1)


async def _check_async(
    config: DatabaseConfig, timeout: float | None
) -> tuple[bool, dict[str, object]]:
    """Async implementation of the check command."""
    manager = ConnectionManager(config)
    try:
        await manager.acquire_connection(timeout=timeout)
    except ConnectionAcquireError as exc:
        status: dict[str, object] = manager.snapshot().to_dict()
        status["error"] = {"kind": exc.kind.value, "message": str(exc)}
        return False, status
    else:
        return True, manager.snapshot().to_dict()
    finally:
        await manager.close()


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
@click.option("--port", default=5000, type=int, help="Port to bind to (default: 5000)")
@click.option("--config", "config_path", type=click.Path(), default=None, help="TOML config file")
@click.option("--reload", is_flag=True, help="Enable auto-reload on code changes")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error", "critical"], case_sensitive=False),
    default="info",
    help="Logging level (default: info)",
)
def serve(
    host: str,
    port: int,
    config_path: str | None,
    reload: bool,
    log_level: str,
) -> None:
    """Start the API server."""
    # Fail fast on a bad config before uvicorn starts
    _load_config(config_path)
    run_server(
        host=host,
        port=port,
        config_path=config_path,
        reload=reload,
        log_level=log_level,
    )


def run_server(
    host: str,
    port: int,
    config_path: str | None,
    reload: bool,
    log_level: str,
) -> None:
    """Run the API server.

    Delegates to the real API server implementation in api.serve.
    """
    from sticker_shop.api.serve import run_server as _run_api_server

    _run_api_server(
        host=host,
        port=port,
        config_path=config_path,
        reload=reload,
        log_level=log_level,
    )


def main() -> None:
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
