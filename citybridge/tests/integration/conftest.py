"""Fixtures driving the full FastAPI application over ASGI."""

from collections.abc import AsyncIterator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from citybridge.app.factory import create_app


@pytest_asyncio.fixture
async def client(app_config, container) -> AsyncIterator[AsyncClient]:
    """HTTP client for an app whose container is the test container."""
    app = create_app(app_config)
    app.state.container = container
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
