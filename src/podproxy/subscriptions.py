"""Subscription list loading.

The list is a YAML sequence of feed URLs, in the order they should appear on
the index page::

    - https://example.com/feed.xml
    - https://example.org/podcast.rss
"""

from __future__ import annotations

import hashlib
from collections import Counter
from dataclasses import dataclass
from email.utils import formatdate
from typing import TYPE_CHECKING, NamedTuple

import yaml

from podproxy.errors import ErrorCode, PodproxyError

if TYPE_CHECKING:
    from pathlib import Path


class FileSignature(NamedTuple):
    mtime_ns: int
    digest: str  # SHA-256 of the file content


@dataclass
class SubscriptionList:
    feeds: list[str]
    signature: FileSignature
    modified: str  # HTTP-date of the file mtime


def _signature(path: Path, content: bytes) -> tuple[FileSignature, float]:
    stat = path.stat()
    return FileSignature(stat.st_mtime_ns, hashlib.sha256(content).hexdigest()), stat.st_mtime


def file_signature(path: Path) -> FileSignature | None:
    """Return the current signature of ``path``, or ``None`` if it cannot be read."""
    try:
        return _signature(path, path.read_bytes())[0]
    except OSError:
        return None


def load_subscriptions(path: Path) -> SubscriptionList:
    """Read and validate the subscription list at ``path``.

    Raises:
        PodproxyError: CONFIG_INVALID when the file is unreadable, is not valid
            YAML, or is not a list of non-empty strings.
    """
    try:
        content = path.read_bytes()
        signature, mtime = _signature(path, content)
    except OSError as exc:
        raise PodproxyError(
            ErrorCode.CONFIG_INVALID,
            f"Cannot read subscription list {path}: {exc}",
            recoverable=True,
        ) from exc

    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise PodproxyError(
            ErrorCode.CONFIG_INVALID,
            f"Subscription list {path} is not valid YAML: {exc}",
            recoverable=True,
        ) from exc

    if document is None:
        document = []
    if not isinstance(document, list):
        raise PodproxyError(
            ErrorCode.CONFIG_INVALID,
            f"Subscription list {path} must be a YAML sequence of feed URLs",
            recoverable=True,
        )

    feeds = []
    for position, entry in enumerate(document, start=1):
        if not isinstance(entry, str) or not entry.strip():
            raise PodproxyError(
                ErrorCode.CONFIG_INVALID,
                f"Entry {position} of {path} is not a feed URL: {entry!r}",
                recoverable=True,
            )
        feeds.append(entry.strip())

    return SubscriptionList(
        feeds=feeds,
        signature=signature,
        modified=formatdate(mtime, usegmt=True),
    )


def find_duplicates(feeds: list[str]) -> list[str]:
    """URLs that appear more than once, in order of first appearance."""
    counts = Counter(feeds)
    return [feed for feed in dict.fromkeys(feeds) if counts[feed] > 1]


def ensure_unique(feeds: list[str]) -> None:
    duplicates = find_duplicates(feeds)
    if duplicates:
        raise PodproxyError(
            ErrorCode.DUPLICATE_FEED,
            f"Duplicate feeds in subscription list: {', '.join(duplicates)}",
            recoverable=True,
        )
