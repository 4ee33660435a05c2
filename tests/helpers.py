"""Test doubles and feed builders shared across the suite."""

from __future__ import annotations

import asyncio
import gzip
from collections.abc import Callable
from typing import TYPE_CHECKING

from podproxy.cache import MemoryCache
from podproxy.fetcher import OriginResponse

if TYPE_CHECKING:
    from collections.abc import Mapping

    from podproxy.models.page import Page


def rss(title: str, items: list[str] | None = None) -> bytes:
    """A minimal RSS 2.0 document with one <item> per title in ``items``."""
    items = items if items is not None else ["Episode 1"]
    entries = "".join(
        f"<item><title>{item}</title><guid>{title}-{n}</guid>"
        f"<link>https://example.com/{n}</link>"
        f"<description>About {item}</description>"
        f'<enclosure url="https://cdn.example.com/{n}.mp3" type="audio/mpeg" length="1"/>'
        f"</item>"
        for n, item in enumerate(items)
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>https://example.com</link>"
        f"<description>{title} description</description>"
        f"{entries}</channel></rss>"
    ).encode()


def html_of(body: bytes) -> str:
    return gzip.decompress(body).decode("utf-8")


def origin_ok(url: str, content: bytes, etag: str = "", last_modified: str = "") -> OriginResponse:
    cache_headers = {}
    if etag:
        cache_headers["ETag"] = etag
    if last_modified:
        cache_headers["Last-Modified"] = last_modified
    return OriginResponse(
        url=url,
        status_code=200,
        etag=etag,
        last_modified=last_modified,
        body=content,
        cache_headers=cache_headers,
    )


def origin_not_modified(url: str) -> OriginResponse:
    return OriginResponse(url=url, status_code=304)


Outcome = OriginResponse | Exception | Callable[[str, str], OriginResponse]


class FakeFetcher:
    """Scripted stand-in for ``Fetcher`` that records every call."""

    def __init__(
        self,
        outcomes: dict[str, Outcome] | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.outcomes = outcomes or {}
        self.delays = delays or {}
        self.calls: list[tuple[str, str, str]] = []

    async def fetch(self, url: str, etag: str = "", last_modified: str = "") -> OriginResponse:
        self.calls.append((url, etag, last_modified))
        delay = self.delays.get(url, 0)
        if delay:
            await asyncio.sleep(delay)
        outcome = self.outcomes[url]
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(etag, last_modified)
        return outcome

    def urls(self) -> list[str]:
        return [call[0] for call in self.calls]


class CountingCache(MemoryCache):
    """MemoryCache that counts mutating calls."""

    def __init__(self) -> None:
        super().__init__()
        self.writes = 0

    async def set(self, key: str, page: Page) -> None:
        self.writes += 1
        await super().set(key, page)

    async def update(self, key: str, page: Page) -> bool:
        self.writes += 1
        return await super().update(key, page)

    async def erase(self, key: str) -> None:
        self.writes += 1
        await super().erase(key)

    async def clear(self) -> None:
        self.writes += 1
        await super().clear()

    async def replace_all(self, pages: Mapping[str, Page]) -> None:
        self.writes += 1
        await super().replace_all(pages)

