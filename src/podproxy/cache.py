"""Page cache: a key-value store of rendered pages.

Keys are feed origin URLs plus ``ROOT_KEY`` for the index page. Every
implementation serializes its own operations behind a single ``asyncio.Lock``,
so callers never lock around cache calls and readers never observe a torn
write. ``replace_all`` publishes a whole rebuild generation at once: readers
see either the previous contents or the new ones, never an empty or partially
filled store. ``update`` only overwrites a key that is still present, so a
write that raced a publish cannot bring back a dropped entry.

Store failures are logged and re-raised as ``PodproxyError`` with
``CACHE_STORE_FAILED``. A failed write after a successful fetch means the new
content was never published, so the caller has to know.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import aiosqlite
import structlog

from podproxy.errors import ErrorCode, PodproxyError
from podproxy.models.page import Page

if TYPE_CHECKING:
    from collections.abc import Mapping

log = structlog.get_logger()

_CREATE_PAGE_TABLE = """
CREATE TABLE IF NOT EXISTS pages (
    key           TEXT PRIMARY KEY,
    etag          TEXT NOT NULL DEFAULT '',
    last_modified TEXT NOT NULL DEFAULT '',
    body          BLOB NOT NULL,
    stored_at     TEXT NOT NULL
)
"""

_INSERT_PAGE = (
    "INSERT OR REPLACE INTO pages (key, etag, last_modified, body, stored_at) "
    "VALUES (?, ?, ?, ?, ?)"
)

_UPDATE_PAGE = (
    "UPDATE pages SET etag = ?, last_modified = ?, body = ?, stored_at = ? WHERE key = ?"
)


class PageCache(Protocol):
    async def get(self, key: str) -> Page | None: ...

    async def set(self, key: str, page: Page) -> None: ...

    async def update(self, key: str, page: Page) -> bool: ...

    async def erase(self, key: str) -> None: ...

    async def clear(self) -> None: ...

    async def replace_all(self, pages: Mapping[str, Page]) -> None: ...

    async def keys(self) -> list[str]: ...


class SQLiteCache:
    """SQLite-backed page cache implementing PageCache."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def init_db(self) -> None:
        """Create the table and set WAL mode. Called once at startup."""
        async with self._lock:
            await self._db.execute("PRAGMA journal_mode = WAL")
            await self._db.execute(_CREATE_PAGE_TABLE)
            await self._db.commit()

    async def get(self, key: str) -> Page | None:
        """Read one page. Returns ``None`` when the key is absent."""
        async with self._lock:
            try:
                cursor = await self._db.execute(
                    "SELECT etag, last_modified, body FROM pages WHERE key = ?",
                    (key,),
                )
                row = await cursor.fetchone()
            except aiosqlite.Error as exc:
                raise _store_error("cache_read_error", key, exc) from exc

        if row is None:
            return None
        return Page(etag=row[0], last_modified=row[1], body=bytes(row[2]))

    async def set(self, key: str, page: Page) -> None:
        async with self._lock:
            try:
                await self._db.execute(_INSERT_PAGE, _row(key, page))
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._rollback()
                raise _store_error("cache_write_error", key, exc) from exc

    async def update(self, key: str, page: Page) -> bool:
        """Overwrite an existing entry. Returns False, writing nothing, if ``key`` is absent."""
        _, etag, last_modified, body, stored_at = _row(key, page)
        async with self._lock:
            try:
                cursor = await self._db.execute(
                    _UPDATE_PAGE, (etag, last_modified, body, stored_at, key)
                )
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._rollback()
                raise _store_error("cache_write_error", key, exc) from exc
        return cursor.rowcount > 0

    async def erase(self, key: str) -> None:
        async with self._lock:
            try:
                await self._db.execute("DELETE FROM pages WHERE key = ?", (key,))
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._rollback()
                raise _store_error("cache_write_error", key, exc) from exc

    async def clear(self) -> None:
        async with self._lock:
            try:
                await self._db.execute("DELETE FROM pages")
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._rollback()
                raise _store_error("cache_write_error", "*", exc) from exc

    async def replace_all(self, pages: Mapping[str, Page]) -> None:
        """Swap the whole table contents for ``pages`` in one transaction."""
        rows = [_row(key, page) for key, page in pages.items()]
        async with self._lock:
            try:
                await self._db.execute("DELETE FROM pages")
                await self._db.executemany(_INSERT_PAGE, rows)
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._rollback()
                raise _store_error("cache_publish_error", "*", exc) from exc

    async def keys(self) -> list[str]:
        async with self._lock:
            try:
                cursor = await self._db.execute("SELECT key FROM pages ORDER BY key")
                rows = await cursor.fetchall()
            except aiosqlite.Error as exc:
                raise _store_error("cache_read_error", "*", exc) from exc
        return [row[0] for row in rows]

    async def _rollback(self) -> None:
        try:
            await self._db.rollback()
        except aiosqlite.Error:
            log.warning("cache_rollback_error", exc_info=True)


class MemoryCache:
    """In-process page cache implementing PageCache. Contents die with the process."""

    def __init__(self) -> None:
        self._pages: dict[str, Page] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Page | None:
        async with self._lock:
            return self._pages.get(key)

    async def set(self, key: str, page: Page) -> None:
        async with self._lock:
            self._pages[key] = page

    async def update(self, key: str, page: Page) -> bool:
        async with self._lock:
            if key not in self._pages:
                return False
            self._pages[key] = page
            return True

    async def erase(self, key: str) -> None:
        async with self._lock:
            self._pages.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._pages = {}

    async def replace_all(self, pages: Mapping[str, Page]) -> None:
        staged = dict(pages)
        async with self._lock:
            self._pages = staged

    async def keys(self) -> list[str]:
        async with self._lock:
            return sorted(self._pages)


def _row(key: str, page: Page) -> tuple[str, str, str, bytes, str]:
    return (key, page.etag, page.last_modified, page.body, datetime.now(UTC).isoformat())


def _store_error(event: str, key: str, exc: aiosqlite.Error) -> PodproxyError:
    log.warning(event, key=key, exc_info=True)
    return PodproxyError(
        ErrorCode.CACHE_STORE_FAILED,
        f"Page cache operation failed for {key!r}: {exc}",
        recoverable=True,
    )
