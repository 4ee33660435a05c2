from __future__ import annotations

from pydantic import BaseModel

# Cache key of the index page. Feed pages are keyed by their origin URL.
ROOT_KEY = "/"


class Page(BaseModel):
    """A rendered page as stored in the cache."""

    etag: str = ""  # Origin validator, empty when the origin sent none
    last_modified: str = ""  # HTTP-date, empty when the origin sent none
    body: bytes  # gzip-compressed HTML


class Subscription(BaseModel):
    """One row of the index page."""

    title: str
    proxy_link: str  # "/podcast?url=<quoted feed url>"


class FeedResult(BaseModel):
    """Output of one fetch+render task during a rebuild."""

    subscription: Subscription
    page: Page
