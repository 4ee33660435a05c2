"""Request-time revalidation of a single cached feed page.

The cache is a hint, the origin is ground truth: every request for a cached
feed issues a conditional GET. A 304 serves the stored body untouched; fresh
content is rendered and overwrites the entry before it is served, unless a
rebuild removed the entry in the meantime. On any error the stored entry is
left exactly as it was.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from podproxy.errors import ErrorCode, PodproxyError
from podproxy.models.page import ROOT_KEY
from podproxy.renderer import build_feed_page

if TYPE_CHECKING:
    from podproxy.cache import PageCache
    from podproxy.fetcher import Fetcher, OriginResponse
    from podproxy.models.page import Page

log = structlog.get_logger()


@dataclass
class ServedPage:
    body: bytes  # gzip-compressed HTML
    headers: dict[str, str] = field(default_factory=dict)
    revalidated: bool = False  # True when the origin sent new content


class Revalidator:
    def __init__(
        self,
        cache: PageCache,
        fetcher: Fetcher,
        *,
        fetch_on_miss: bool = False,
        mirror_cache_headers: bool = True,
    ) -> None:
        self._cache = cache
        self._fetcher = fetcher
        self._fetch_on_miss = fetch_on_miss
        self._mirror = mirror_cache_headers

    async def serve(self, url: str) -> ServedPage:
        """Return the current page for feed ``url``.

        Raises:
            PodproxyError: INVALID_INPUT for a blank or reserved url,
                PAGE_NOT_FOUND when the feed was never cached, or the origin,
                render or cache error that prevented serving it.
        """
        url = url.strip()
        if not url or url == ROOT_KEY:
            raise PodproxyError(ErrorCode.INVALID_INPUT, "url must be a feed URL")

        cached = await self._cache.get(url)
        if cached is None:
            if not self._fetch_on_miss:
                raise PodproxyError(ErrorCode.PAGE_NOT_FOUND, f"Podcast URL not found: {url}")
            return await self._fetch_uncached(url)

        response = await self._fetcher.fetch(
            url, etag=cached.etag, last_modified=cached.last_modified
        )
        if response.not_modified:
            log.debug("revalidate_not_modified", url=url)
            return ServedPage(body=cached.body, headers=self._headers(response, cached))

        _, page = await asyncio.to_thread(build_feed_page, response, url)
        if await self._cache.update(url, page):
            log.info("revalidate_refreshed", url=url, etag=page.etag)
        else:
            # Unsubscribed by a rebuild that published while we were fetching.
            log.info("revalidate_entry_dropped", url=url)
        return ServedPage(body=page.body, headers=self._headers(response, page), revalidated=True)

    async def _fetch_uncached(self, url: str) -> ServedPage:
        if not url.startswith(("http://", "https://")):
            raise PodproxyError(ErrorCode.INVALID_INPUT, "url must use http or https scheme")
        response = await self._fetcher.fetch(url)
        _, page = await asyncio.to_thread(build_feed_page, response, url)
        await self._cache.set(url, page)
        log.info("fetch_on_miss_cached", url=url)
        return ServedPage(body=page.body, headers=self._headers(response, page), revalidated=True)

    def _headers(self, response: OriginResponse, page: Page) -> dict[str, str]:
        if not self._mirror:
            return {}
        headers = dict(response.cache_headers)
        # A 304 may omit validators; fall back to the ones we stored.
        if page.etag:
            headers.setdefault("ETag", page.etag)
        if page.last_modified:
            headers.setdefault("Last-Modified", page.last_modified)
        return headers
