from __future__ import annotations

from podproxy.models.feed import Enclosure, Image, Item, Metadata, Podcast, TocEntry
from podproxy.models.page import ROOT_KEY, FeedResult, Page, Subscription

__all__ = [
    # page
    "ROOT_KEY",
    "Page",
    "Subscription",
    "FeedResult",
    # feed
    "Podcast",
    "Item",
    "Enclosure",
    "Image",
    "Metadata",
    "TocEntry",
]
