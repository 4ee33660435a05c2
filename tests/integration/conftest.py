"""Integration test fixtures.

Provides a fully wired AppState with in-memory SQLite and a real httpx client
(mocked at the transport by respx), plus an ASGI client for the app.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import httpx
import pytest

from podproxy.cache import SQLiteCache
from podproxy.config import Settings
from podproxy.fetcher import Fetcher, build_http_client
from podproxy.rebuild import RebuildCoordinator
from podproxy.revalidate import Revalidator
from podproxy.server import create_app
from podproxy.state import AppState

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def subscriptions_path(tmp_path: Path) -> Path:
    return tmp_path / "podcasts.yaml"


@pytest.fixture()
async def app_state(subscriptions_path: Path) -> AppState:
    """Full AppState wired for integration tests."""
    settings = Settings(
        subscriptions={"path": str(subscriptions_path)},
        watcher={"enabled": False},
    )
    async with aiosqlite.connect(":memory:") as db:
        cache = SQLiteCache(db)
        await cache.init_db()

        async with build_http_client(settings.fetcher) as client:
            fetcher = Fetcher(client)
            yield AppState(
                settings=settings,
                cache=cache,
                fetcher=fetcher,
                coordinator=RebuildCoordinator(cache, fetcher, subscriptions_path),
                revalidator=Revalidator(cache, fetcher),
                http_client=client,
            )


@pytest.fixture()
async def client(app_state: AppState) -> httpx.AsyncClient:
    """ASGI client talking to the app without a network socket."""
    app = create_app(state=app_state)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://podproxy.test") as c:
        yield c
