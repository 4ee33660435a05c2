from __future__ import annotations

from pydantic import BaseModel


class Metadata(BaseModel):
    key: str
    value: str


class Image(BaseModel):
    title: str = ""
    url: str


class Enclosure(BaseModel):
    url: str
    type: str = ""


class Item(BaseModel):
    """Single episode or article of a feed."""

    title: str = ""
    description: str = ""  # HTML, already sanitized by feedparser
    link: str = ""
    guid: str = ""
    images: list[Image] = []
    enclosures: list[Enclosure] = []
    metadata: list[Metadata] = []


class TocEntry(BaseModel):
    guid: str
    title: str


class Podcast(BaseModel):
    """Structured view of a parsed feed, as handed to the page template."""

    title: str = ""
    description: str = ""
    language: str = ""
    link: str = ""
    images: list[Image] = []
    items: list[Item] = []
    metadata: list[Metadata] = []
    # Only populated when there is more than one item to jump between.
    toc: list[TocEntry] = []
