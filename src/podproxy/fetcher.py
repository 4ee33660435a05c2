"""Origin fetcher: plain and conditional GETs against feed origins.

Every request carries the client's bounded timeout, so one unresponsive origin
cannot hang a rebuild generation or a page request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
import structlog

from podproxy.errors import ErrorCode, PodproxyError

if TYPE_CHECKING:
    from podproxy.config import FetcherSettings

log = structlog.get_logger()

# Upstream response headers worth mirroring onto our own response.
CACHE_HEADERS = ("ETag", "Last-Modified", "Cache-Control", "Expires", "Vary")


@dataclass
class OriginResponse:
    url: str
    status_code: int
    etag: str = ""
    last_modified: str = ""
    body: bytes = b""
    cache_headers: dict[str, str] = field(default_factory=dict)

    @property
    def not_modified(self) -> bool:
        return self.status_code == httpx.codes.NOT_MODIFIED


def build_http_client(settings: FetcherSettings | None = None) -> httpx.AsyncClient:
    """Create the shared httpx client used for every origin request."""
    if settings is None:
        from podproxy.config import FetcherSettings

        settings = FetcherSettings()
    return httpx.AsyncClient(
        follow_redirects=True,
        max_redirects=settings.max_redirects,
        timeout=httpx.Timeout(settings.timeout_seconds, connect=settings.connect_timeout_seconds),
        headers={"User-Agent": settings.user_agent},
    )


class Fetcher:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch(self, url: str, etag: str = "", last_modified: str = "") -> OriginResponse:
        """GET ``url``, conditionally when validators are given.

        Returns an ``OriginResponse`` for 2xx and 304 responses; raises
        ``PodproxyError`` for anything else.
        """
        headers: dict[str, str] = {}
        # Both validators go out together when we have them.
        if etag:
            headers["If-None-Match"] = etag
        if last_modified:
            headers["If-Modified-Since"] = last_modified

        log.debug("origin_fetch_start", url=url, conditional=bool(headers))
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.TooManyRedirects as exc:
            raise PodproxyError(
                ErrorCode.TOO_MANY_REDIRECTS,
                f"Too many redirects fetching {url}",
                recoverable=False,
            ) from exc
        except httpx.TimeoutException as exc:
            raise PodproxyError(
                ErrorCode.FEED_FETCH_FAILED,
                f"Timed out fetching {url}",
                recoverable=True,
            ) from exc
        except httpx.HTTPError as exc:
            raise PodproxyError(
                ErrorCode.FEED_FETCH_FAILED,
                f"Network error fetching {url}: {exc}",
                recoverable=True,
            ) from exc

        status = response.status_code
        log.debug("origin_fetch_complete", url=url, status=status)

        if status in (httpx.codes.NOT_FOUND, httpx.codes.GONE):
            raise PodproxyError(
                ErrorCode.FEED_NOT_FOUND,
                f"Origin returned HTTP {status} for {url}",
                recoverable=False,
            )
        if status != httpx.codes.NOT_MODIFIED and not response.is_success:
            raise PodproxyError(
                ErrorCode.FEED_FETCH_FAILED,
                f"Origin returned HTTP {status} for {url}",
                recoverable=True,
            )

        return OriginResponse(
            url=str(response.url),
            status_code=status,
            etag=response.headers.get("ETag", ""),
            last_modified=response.headers.get("Last-Modified", ""),
            body=response.content,
            cache_headers={
                name: response.headers[name] for name in CACHE_HEADERS if name in response.headers
            },
        )
