from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from podproxy.cache import PageCache
    from podproxy.config import Settings
    from podproxy.fetcher import Fetcher
    from podproxy.rebuild import RebuildCoordinator
    from podproxy.revalidate import Revalidator
    from podproxy.watcher import SubscriptionWatcher


@dataclass
class AppState:
    """Everything the request handlers need, built once per process."""

    settings: Settings
    cache: PageCache
    fetcher: Fetcher
    coordinator: RebuildCoordinator
    revalidator: Revalidator
    http_client: httpx.AsyncClient | None = None
    watcher: SubscriptionWatcher | None = None
