"""
API Test Fixtures
"""

import pytest
from httpx import ASGITransport, AsyncClient

from newsletter_service.api.main import create_app
from newsletter_service.core.config import ServiceConfig


@pytest.fixture
def config(monkeypatch):
    monkeypatch.setenv("AUTH_REQUIRED", "false")
    monkeypatch.setenv("DELIVERY_ENABLED", "false")
    return ServiceConfig()


@pytest.fixture
def app(config, db, transport):
    return create_app(config=config, db=db, transport=transport)


@pytest.fixture
async def client(app):
    """Async client against the app; lifespan is not run, the db fixture is already connected."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
