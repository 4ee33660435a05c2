"""Full-cache rebuilds.

A rebuild reads the subscription list, fetches and renders every feed
concurrently, and publishes the result as one generation. Until the whole
generation is in hand nothing touches the live cache: a bad list, a duplicate
URL or a single failing feed leaves the previous generation servable.

At most one rebuild runs at a time. Callers that arrive while one is in flight
join it and receive its outcome instead of starting a second fetch cycle.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from podproxy.errors import ErrorCode, PodproxyError
from podproxy.models.page import ROOT_KEY, FeedResult, Page
from podproxy.renderer import build_feed_page, render_index
from podproxy.subscriptions import ensure_unique, load_subscriptions

if TYPE_CHECKING:
    from pathlib import Path

    from podproxy.cache import PageCache
    from podproxy.fetcher import Fetcher
    from podproxy.subscriptions import FileSignature

log = structlog.get_logger()


@dataclass
class RebuildResult:
    feeds: int
    signature: FileSignature
    duration_seconds: float


class RebuildCoordinator:
    def __init__(self, cache: PageCache, fetcher: Fetcher, subscriptions_path: Path) -> None:
        self._cache = cache
        self._fetcher = fetcher
        self._path = subscriptions_path
        self._permit = asyncio.Lock()
        self._inflight: asyncio.Task[RebuildResult] | None = None
        # Signature of the list the latest attempt read, successful or not.
        self.last_signature: FileSignature | None = None

    @property
    def is_running(self) -> bool:
        return self._permit.locked()

    async def rebuild(self) -> RebuildResult:
        """Run a rebuild, or join the one already in flight.

        Raises:
            PodproxyError: the rebuild failed; the live cache is unchanged.
        """
        task = self._inflight
        if task is None or task.done():
            task = asyncio.create_task(self._run_exclusive())
            task.add_done_callback(_consume_exception)
            self._inflight = task
        return await asyncio.shield(task)

    async def aclose(self) -> None:
        """Cancel an in-flight rebuild and wait for it to unwind.

        Called at shutdown before the HTTP client and the cache connection close,
        so a half-finished rebuild never touches either after they are gone.
        """
        task = self._inflight
        self._inflight = None
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait({task})
        log.info("rebuild_cancelled", path=str(self._path))

    async def _run_exclusive(self) -> RebuildResult:
        async with self._permit:
            return await self._run()

    async def _run(self) -> RebuildResult:
        started = time.monotonic()

        self.last_signature = None
        subscriptions = await asyncio.to_thread(load_subscriptions, self._path)
        self.last_signature = subscriptions.signature
        feeds = subscriptions.feeds
        ensure_unique(feeds)

        log.info("rebuild_started", feeds=len(feeds), path=str(self._path))

        # One slot per feed, written once by the task that owns that index.
        slots: list[FeedResult | None] = [None] * len(feeds)
        try:
            async with asyncio.TaskGroup() as group:
                for index, url in enumerate(feeds):
                    group.create_task(self._build_feed(index, url, slots))
        except ExceptionGroup as group_error:
            first = _first_exception(group_error)
            if isinstance(first, PodproxyError):
                raise first from None
            raise PodproxyError(
                ErrorCode.FEED_FETCH_FAILED, f"Feed task failed: {first!r}"
            ) from first

        results = [slot for slot in slots if slot is not None]  # all filled on success
        staged: dict[str, Page] = {url: result.page for url, result in zip(feeds, results)}
        index_body = await asyncio.to_thread(
            render_index, [result.subscription for result in results]
        )
        staged[ROOT_KEY] = Page(last_modified=subscriptions.modified, body=index_body)

        await self._cache.replace_all(staged)

        duration = time.monotonic() - started
        log.info("rebuild_complete", feeds=len(feeds), duration_seconds=round(duration, 3))
        return RebuildResult(
            feeds=len(feeds),
            signature=subscriptions.signature,
            duration_seconds=duration,
        )

    async def _build_feed(self, index: int, url: str, slots: list[FeedResult | None]) -> None:
        response = await self._fetcher.fetch(url)
        subscription, page = await asyncio.to_thread(build_feed_page, response, url)
        slots[index] = FeedResult(subscription=subscription, page=page)
        log.debug("rebuild_feed_ready", url=url, position=index)


def _first_exception(group_error: BaseExceptionGroup) -> BaseException:
    first: BaseException = group_error
    while isinstance(first, BaseExceptionGroup):
        first = first.exceptions[0]
    return first


def _consume_exception(task: asyncio.Task[RebuildResult]) -> None:
    # Joined callers re-raise the error themselves; this only keeps asyncio
    # from reporting it as never retrieved when every caller was cancelled.
    if not task.cancelled():
        task.exception()
