"""Shared fixtures for API unit tests.

The app is built around a ConnectionManager wired to the fake driver, and
TestClient is used as a context manager so lifespan startup/shutdown run.
"""

from __future__ import annotations

from typing import Any, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from sticker_shop.api.app import create_app
from sticker_shop.database.manager import ConnectionManager


@pytest.fixture
def manager(make_manager: Any) -> ConnectionManager:
    return make_manager(max_retries=1, breaker_threshold=3)


@pytest.fixture
def app(manager: ConnectionManager) -> FastAPI:
    return create_app(manager=manager)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
