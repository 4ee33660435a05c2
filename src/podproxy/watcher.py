"""Subscription list watcher.

Polls the list's mtime and content digest and triggers a rebuild when either
changes. The first poll always triggers, which populates the cache at startup.
Rebuild failures are logged here and go no further: they never reach HTTP
clients, and the next change gets another chance.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from podproxy.errors import PodproxyError
from podproxy.subscriptions import file_signature

if TYPE_CHECKING:
    from pathlib import Path

    from podproxy.rebuild import RebuildCoordinator
    from podproxy.subscriptions import FileSignature

log = structlog.get_logger()


class SubscriptionWatcher:
    def __init__(
        self,
        path: Path,
        coordinator: RebuildCoordinator,
        poll_interval: float = 2.0,
    ) -> None:
        self._path = path
        self._coordinator = coordinator
        self._poll_interval = poll_interval
        self._started = False
        self._last_seen: FileSignature | None = None
        self._task: asyncio.Task[None] | None = None

    async def check(self) -> bool:
        """Run one poll step. Returns True if a rebuild was triggered."""
        observed = await asyncio.to_thread(file_signature, self._path)
        if self._started and observed == self._last_seen:
            return False

        trigger = "change" if self._started else "startup"
        self._started = True
        try:
            result = await self._coordinator.rebuild()
            log.info("rebuild_triggered", trigger=trigger, feeds=result.feeds)
        except PodproxyError as exc:
            log.error(
                "rebuild_trigger_failed",
                trigger=trigger,
                code=exc.code,
                message=exc.message,
            )

        # A change that landed after the coordinator read the list is still
        # pending; comparing against what it read picks it up on the next poll.
        self._last_seen = self._coordinator.last_signature or observed
        return True

    async def run(self) -> None:
        while True:
            try:
                await self.check()
            except Exception:
                log.error("watcher_poll_error", path=str(self._path), exc_info=True)
            await asyncio.sleep(self._poll_interval)

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="subscription-watcher")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
