"""Unit-specific fixtures (no I/O beyond in-memory SQLite)."""

from __future__ import annotations

import aiosqlite
import pytest

from podproxy.cache import MemoryCache, SQLiteCache


@pytest.fixture()
async def sqlite_cache():
    """In-memory SQLite cache for unit tests."""
    async with aiosqlite.connect(":memory:") as db:
        c = SQLiteCache(db)
        await c.init_db()
        yield c


@pytest.fixture(params=["sqlite", "memory"])
async def cache(request: pytest.FixtureRequest):
    """Every PageCache implementation, for contract tests."""
    if request.param == "memory":
        yield MemoryCache()
        return
    async with aiosqlite.connect(":memory:") as db:
        c = SQLiteCache(db)
        await c.init_db()
        yield c
