"""Shared test fixtures."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

import fleetpath.main as main_module
from fleetpath.config import AppConfig
from fleetpath.storage.file_storage import FileTelemetryStorage


@pytest.fixture(autouse=True)
def _init_server(tmp_path):
    """Initialize server singletons for every test, using a temp directory."""
    config = AppConfig()
    config.storage.base_dir = str(tmp_path / "data")
    config.logging.level = "warning"

    main_module.init_components(config)

    yield

    # Cleanup
    main_module._config = None
    main_module._stats = None
    main_module._processor = None
    main_module._service = None


@pytest.fixture
def storage(tmp_path):
    return FileTelemetryStorage(base_dir=tmp_path / "store")


@pytest.fixture
async def client():
    from fleetpath.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
