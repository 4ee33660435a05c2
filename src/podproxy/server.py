"""HTTP surface.

    GET /                     cached index page
    GET /podcast?url=<feed>   cached page for one feed, revalidated against its origin

Run with ``python -m podproxy.server`` or the ``podproxy`` console script.
"""

from __future__ import annotations

import gzip
import zlib
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from podproxy.cache import MemoryCache, SQLiteCache
from podproxy.config import Settings
from podproxy.errors import ORIGIN_ERRORS, ErrorCode, PodproxyError
from podproxy.fetcher import Fetcher, build_http_client
from podproxy.logging_config import setup_logging
from podproxy.models.page import ROOT_KEY
from podproxy.rebuild import RebuildCoordinator
from podproxy.revalidate import Revalidator
from podproxy.state import AppState
from podproxy.watcher import SubscriptionWatcher

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from podproxy.cache import PageCache

log = structlog.get_logger()

_HTML = "text/html; charset=utf-8"

_STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.PAGE_NOT_FOUND: 404,
    ErrorCode.CACHE_NOT_READY: 503,
}


def _status_for(code: ErrorCode) -> int:
    if code in ORIGIN_ERRORS:
        return 502
    return _STATUS_BY_CODE.get(code, 500)


async def build_state(settings: Settings, stack: AsyncExitStack) -> AppState:
    """Open the cache and HTTP client and wire every component together."""
    cache: PageCache
    if settings.cache.backend == "sqlite":
        db_path = Path(settings.cache.db_path).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await stack.enter_async_context(aiosqlite.connect(db_path))
        sqlite_cache = SQLiteCache(db)
        await sqlite_cache.init_db()
        cache = sqlite_cache
    else:
        cache = MemoryCache()

    client = await stack.enter_async_context(build_http_client(settings.fetcher))
    fetcher = Fetcher(client)
    subscriptions_path = Path(settings.subscriptions.path).expanduser()
    coordinator = RebuildCoordinator(cache, fetcher, subscriptions_path)
    # Runs before the client and the connection above are closed.
    stack.push_async_callback(coordinator.aclose)
    revalidator = Revalidator(
        cache,
        fetcher,
        fetch_on_miss=settings.proxy.fetch_on_miss,
        mirror_cache_headers=settings.proxy.mirror_cache_headers,
    )
    watcher = SubscriptionWatcher(
        subscriptions_path, coordinator, settings.watcher.poll_interval_seconds
    )
    return AppState(
        settings=settings,
        cache=cache,
        fetcher=fetcher,
        coordinator=coordinator,
        revalidator=revalidator,
        http_client=client,
        watcher=watcher,
    )


def accepts_gzip(accept_encoding: str) -> bool:
    """True when the Accept-Encoding header allows gzip with a non-zero q-value.

    An explicit ``gzip`` entry wins over the ``*`` wildcard.
    """
    qualities: dict[str, float] = {}
    for entry in accept_encoding.split(","):
        coding, *params = (part.strip() for part in entry.split(";"))
        if not coding:
            continue
        quality = 1.0
        for param in params:
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        qualities[coding.lower()] = quality
    for coding in ("gzip", "x-gzip", "*"):
        if coding in qualities:
            return qualities[coding] > 0
    return False


def _state(request: Request) -> AppState:
    return request.app.state.podproxy


def _html_response(request: Request, body: bytes, headers: dict[str, str]) -> Response:
    """Send the stored gzip body as-is, or inflated for clients without gzip."""
    headers = dict(headers)
    vary = [v.strip() for v in headers.pop("Vary", "").split(",") if v.strip()]
    if "accept-encoding" not in (v.lower() for v in vary):
        vary.append("Accept-Encoding")
    headers["Vary"] = ", ".join(vary)

    if accepts_gzip(request.headers.get("accept-encoding", "")):
        headers["Content-Encoding"] = "gzip"
        return Response(content=body, media_type=_HTML, headers=headers)

    try:
        content = gzip.decompress(body)
    except (OSError, EOFError, zlib.error) as exc:
        raise PodproxyError(ErrorCode.RENDER_FAILED, f"Stored page is corrupt: {exc}") from exc
    return Response(content=content, media_type=_HTML, headers=headers)


def create_app(settings: Settings | None = None, state: AppState | None = None) -> FastAPI:
    """Build the ASGI app. A prebuilt ``state`` skips the startup wiring."""
    settings = settings or (state.settings if state else Settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "podproxy", None) is not None:
            yield
            return
        async with AsyncExitStack() as stack:
            app_state = await build_state(settings, stack)
            if app_state.watcher is not None and settings.watcher.enabled:
                app_state.watcher.start()
                stack.push_async_callback(app_state.watcher.stop)
            else:
                try:
                    await app_state.coordinator.rebuild()
                except PodproxyError as exc:
                    log.error(
                        "rebuild_trigger_failed",
                        trigger="startup",
                        code=exc.code,
                        message=exc.message,
                    )
            app.state.podproxy = app_state
            log.info(
                "server_started",
                subscriptions=settings.subscriptions.path,
                cache_backend=settings.cache.backend,
                cached_pages=len(await app_state.cache.keys()),
            )
            yield

    app = FastAPI(title="podproxy", lifespan=lifespan, docs_url=None, redoc_url=None)
    if state is not None:
        app.state.podproxy = state

    @app.exception_handler(PodproxyError)
    async def podproxy_error_handler(request: Request, exc: PodproxyError) -> Response:
        status = _status_for(exc.code)
        if status >= 500:
            log.warning("request_failed", path=request.url.path, code=exc.code, message=exc.message)
        headers = {"Retry-After": "5"} if status == 503 else None
        return PlainTextResponse(exc.message, status_code=status, headers=headers)

    @app.get("/")
    async def index(request: Request) -> Response:
        page = await _state(request).cache.get(ROOT_KEY)
        if page is None:
            raise PodproxyError(
                ErrorCode.CACHE_NOT_READY,
                "The podcast list is still being built, try again shortly",
                recoverable=True,
            )
        headers = {"Last-Modified": page.last_modified} if page.last_modified else {}
        return _html_response(request, page.body, headers)

    @app.get("/podcast")
    async def podcast(request: Request, url: str | None = None) -> Response:
        if not url or not url.strip():
            raise PodproxyError(ErrorCode.INVALID_INPUT, "Missing url query parameter")
        served = await _state(request).revalidator.serve(url)
        return _html_response(request, served.body, served.headers)

    return app


def main() -> None:
    settings = Settings()
    setup_logging(settings.logging)
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
