"""Shared fixtures for API tests."""

import pytest
from fastapi.testclient import TestClient

from ruuvi_home.config import Settings
from ruuvi_home.main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DB_PATH=str(tmp_path / "test.db"),
        MQTT_ENABLED=False,
        ADMIN_PASSWORD="test-password",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
