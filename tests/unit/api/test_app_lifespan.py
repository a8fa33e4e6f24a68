"""Tests for the app factory and its lifespan wiring."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from sticker_shop.api import create_app, dependencies
from sticker_shop.config import DatabaseConfig
from sticker_shop.database import singleton
from sticker_shop.database.manager import ConnectionManager, ConnectionState


@pytest.fixture(autouse=True)
def clean_globals(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(dependencies, "_manager", None)
    monkeypatch.setattr(singleton, "_manager", None)


class TestRouteRegistration:
    """Routes exposed by create_app."""

    def test_expected_paths(self, make_manager: Any) -> None:
        app = create_app(manager=make_manager())
        paths = {route.path for route in app.routes}

        assert {"/api", "/api/health", "/api/health/db", "/api/db/ping"} <= paths

    def test_title(self, make_manager: Any) -> None:
        assert create_app(manager=make_manager()).title == "Sticker Shop API"


class TestLifespan:
    """Startup binds the manager, shutdown closes the connection."""

    def test_dependency_not_available_before_startup(self) -> None:
        with pytest.raises(RuntimeError, match="not initialized"):
            dependencies.get_manager_dep()

    def test_startup_does_not_connect(self, make_manager: Any, driver: Any) -> None:
        manager = make_manager()

        with TestClient(create_app(manager=manager)):
            assert dependencies.get_manager_dep() is manager
            assert driver.connect_calls == 0

    def test_shutdown_closes_handle(self, make_manager: Any, driver: Any) -> None:
        manager = make_manager()

        with TestClient(create_app(manager=manager)) as client:
            client.get("/api/health/db")
            assert manager.state == ConnectionState.CONNECTED

        assert driver.closed == driver.handles
        assert manager.state == ConnectionState.DISCONNECTED
        assert dependencies._manager is None

    def test_config_and_driver_use_singleton(self, driver: Any) -> None:
        config = DatabaseConfig(uri="sqlite:///:memory:", max_retries=2)

        with TestClient(create_app(config=config, driver=driver)) as client:
            manager = dependencies.get_manager_dep()
            assert isinstance(manager, ConnectionManager)
            assert singleton.get_manager() is manager
            assert manager.config is config
            assert client.get("/api/health/db").status_code == 200

        assert singleton.current_manager() is None
        assert len(driver.closed) == 1

    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, make_manager: Any) -> None:
        first = make_manager()

        await dependencies.init_dependencies(manager=first)
        await dependencies.init_dependencies(manager=make_manager())

        assert dependencies.get_manager_dep() is first
        await dependencies.shutdown_dependencies()
        await dependencies.shutdown_dependencies()
        assert dependencies._manager is None

    @pytest.mark.asyncio
    async def test_shutdown_leaves_unrelated_singleton_alone(
        self, make_manager: Any, driver: Any
    ) -> None:
        shared = singleton.configure_manager(DatabaseConfig(), driver)
        own = make_manager()
        await own.acquire_connection()

        await dependencies.init_dependencies(manager=own)
        await dependencies.shutdown_dependencies()

        assert singleton.current_manager() is shared
        assert own.state == ConnectionState.DISCONNECTED
        assert driver.closed == driver.handles
