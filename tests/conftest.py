from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime

import httpx
import pytest

from chatcortex.core.config import clear_config_cache

MockHandler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def httpx_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
async def mock_client_factory() -> AsyncIterator[Callable[[MockHandler], httpx.AsyncClient]]:
    clients: list[httpx.AsyncClient] = []

    def _factory(handler: MockHandler) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _factory
    for client in clients:
        await client.aclose()


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 3, 19, 15, 4, 5)  # noqa: DTZ001


@pytest.fixture(autouse=True)
def _reset_config_cache() -> None:
    clear_config_cache()
