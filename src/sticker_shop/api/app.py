"""FastAPI application factory with lifespan dependency management."""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncGenerator, Callable

from fastapi import FastAPI
from pydantic import BaseModel

from sticker_shop.config import DatabaseConfig
from sticker_shop.database.driver import DatabaseDriver
from sticker_shop.database.manager import ConnectionManager

from . import dependencies
from .middleware.cors import configure_cors
from .middleware.database import register_database_middleware
from .middleware.error_handler import register_error_handlers
from .routes import database, health

logger = logging.getLogger(__name__)


class BannerResponse(BaseModel):
    """Response model for the API root."""

    message: str


def _make_lifespan(
    config: DatabaseConfig | None,
    driver: DatabaseDriver | None,
    manager: ConnectionManager | None,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Set up the connection manager; close the connection on shutdown."""
        await dependencies.init_dependencies(config=config, driver=driver, manager=manager)
        try:
            yield
        finally:
            logger.info("Shutting down, closing database connection")
            await dependencies.shutdown_dependencies()

    return lifespan


def _register_routes(app: FastAPI) -> None:
    """Register application routes.

    Args:
        app: The FastAPI application instance.
    """

    @app.get("/api")
    async def root() -> BannerResponse:
        """Service banner; never touches the database."""
        return BannerResponse(message="Sticker Shop API is running")

    app.include_router(health.router, prefix="/api/health", tags=["health"])
    app.include_router(database.router, prefix="/api/db", tags=["database"])


def create_app(
    config: DatabaseConfig | None = None,
    driver: DatabaseDriver | None = None,
    manager: ConnectionManager | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Connection settings, resolved from the environment if None.
        driver: Database client override.
        manager: A ready-made manager (takes precedence over config/driver).

    Returns:
        A configured FastAPI application with lifespan management.
    """
    app = FastAPI(
        title="Sticker Shop API",
        version="1.0.0",
        docs_url="/docs",
        lifespan=_make_lifespan(config, driver, manager),
    )

    register_error_handlers(app)
    register_database_middleware(app)
    configure_cors(app)
    _register_routes(app)

    return app
