"""Feed parsing and HTML rendering.

Everything here is a pure function of its inputs: feedparser turns the origin
body into a ``Podcast``, Jinja2 renders it, gzip compresses it with a fixed
mtime so identical input always yields identical bytes.
"""

from __future__ import annotations

import gzip
import io
from typing import TYPE_CHECKING, Any
from urllib.parse import quote_plus

import feedparser
import jinja2

from podproxy.errors import ErrorCode, PodproxyError
from podproxy.models.feed import Enclosure, Image, Item, Metadata, Podcast, TocEntry
from podproxy.models.page import Page, Subscription

if TYPE_CHECKING:
    from collections.abc import Sequence

    from podproxy.fetcher import OriginResponse

_env = jinja2.Environment(
    loader=jinja2.PackageLoader("podproxy", "templates"),
    autoescape=jinja2.select_autoescape(),
    trim_blocks=True,
    lstrip_blocks=True,
)


def proxy_link(url: str) -> str:
    """Path under which the proxy serves the page for feed ``url``."""
    return "/podcast?url=" + quote_plus(url)


def _authors(authors: Sequence[Any]) -> str:
    names = []
    for author in authors:
        name = author.get("name", "")
        email = author.get("email", "")
        if name and email:
            names.append(f"{name} ({email})")
        elif name or email:
            names.append(name or email)
    return " ".join(names)


def _metadata(source: Any, fields: Sequence[tuple[str, str]]) -> list[Metadata]:
    metadata = []
    for label, attr in fields:
        if attr == "authors":
            value = _authors(source.get("authors", []))
        else:
            value = source.get(attr, "")
        if value:
            metadata.append(Metadata(key=label, value=value))
    return metadata


# Categories are left out: they are for search engines, not readers.
_FEED_METADATA = (
    ("Updated", "updated"),
    ("Published", "published"),
    ("Authors", "authors"),
    ("Copyright", "rights"),
    ("Generator", "generator"),
)
_ITEM_METADATA = (
    ("Updated", "updated"),
    ("Published", "published"),
    ("Authors", "authors"),
)


def _item(entry: Any) -> Item:
    images = []
    image = entry.get("image")
    if image and image.get("href"):
        images.append(Image(title=image.get("title", ""), url=image["href"]))

    enclosures = [
        Enclosure(url=enclosure["href"], type=enclosure.get("type", ""))
        for enclosure in entry.get("enclosures", [])
        if enclosure.get("href")
    ]

    # "content" usually repeats the description, so only the summary is kept.
    return Item(
        title=entry.get("title", ""),
        description=entry.get("summary", ""),
        link=entry.get("link", ""),
        guid=entry.get("id", ""),
        images=images,
        enclosures=enclosures,
        metadata=_metadata(entry, _ITEM_METADATA),
    )


def parse_feed(content: bytes) -> Podcast:
    """Parse an RSS/Atom document into a ``Podcast``.

    Raises:
        PodproxyError: FEED_PARSE_FAILED when feedparser finds neither a title
            nor any entries in a document it flagged as malformed.
    """
    parsed = feedparser.parse(io.BytesIO(content))
    feed = parsed.feed

    if parsed.bozo and not parsed.entries and not feed.get("title"):
        raise PodproxyError(
            ErrorCode.FEED_PARSE_FAILED,
            f"Could not parse feed: {parsed.get('bozo_exception', 'unknown error')}",
            recoverable=False,
        )

    images = []
    image = feed.get("image")
    if image and image.get("href"):
        images.append(Image(title=image.get("title", ""), url=image["href"]))

    items = [_item(entry) for entry in parsed.entries]
    toc = [TocEntry(guid=item.guid, title=item.title) for item in items]

    return Podcast(
        title=feed.get("title", ""),
        description=feed.get("subtitle", ""),
        language=feed.get("language", ""),
        link=feed.get("link", ""),
        images=images,
        items=items,
        metadata=_metadata(feed, _FEED_METADATA),
        toc=toc if len(toc) > 1 else [],
    )


def _render(template_name: str, **context: Any) -> bytes:
    try:
        html = _env.get_template(template_name).render(**context)
    except jinja2.TemplateError as exc:
        raise PodproxyError(
            ErrorCode.RENDER_FAILED,
            f"Failed to render {template_name}: {exc}",
            recoverable=False,
        ) from exc
    return gzip.compress(html.encode("utf-8"), mtime=0)


def render_podcast(podcast: Podcast) -> bytes:
    return _render("podcast.html", podcast=podcast)


def render_index(subscriptions: Sequence[Subscription]) -> bytes:
    return _render("index.html", subscriptions=subscriptions)


def build_feed_page(response: OriginResponse, feed_url: str) -> tuple[Subscription, Page]:
    """Turn a fresh origin response into the cached page and its index row."""
    podcast = parse_feed(response.body)
    page = Page(
        etag=response.etag,
        last_modified=response.last_modified,
        body=render_podcast(podcast),
    )
    subscription = Subscription(title=podcast.title or feed_url, proxy_link=proxy_link(feed_url))
    return subscription, page
