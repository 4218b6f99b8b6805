"""Shared fixtures for the gateway test-suite."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import pytest

from cloud_drive_gateway.config import Settings
from cloud_drive_gateway.drives.models import Token, now_ms

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable


class FakeRedis:
    """Dictionary-backed stand-in for the two ``redis.asyncio`` calls we use."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.values[key] = value
        self.ttls[key] = ex
        return True

    async def get(self, key: str) -> str | None:
        return self.values.get(key)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        google_client_id="google-client",
        google_client_secret="google-secret",
        dropbox_client_id="dropbox-client",
        dropbox_client_secret="dropbox-secret",
        base_url="http://test",
        traversal_concurrency=0,
    )


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def token() -> Token:
    """A token valid for the next hour."""
    return Token(
        access_token="access-1",
        expiry=now_ms() + 3_600_000,
        refresh_token="refresh-1",
    )


@pytest.fixture()
def expired_token() -> Token:
    return Token(access_token="stale", expiry=now_ms() - 1000, refresh_token="refresh-1")


@pytest.fixture()
async def mock_http() -> AsyncIterator[Callable[[Callable[[httpx.Request], Any]], httpx.AsyncClient]]:
    """Factory for ``httpx.AsyncClient`` instances backed by a handler function."""
    clients: list[httpx.AsyncClient] = []

    def factory(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()
