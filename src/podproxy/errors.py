"""Error taxonomy shared by every podproxy component.

Library code raises ``PodproxyError`` with an ``ErrorCode``. The HTTP layer
maps codes to status codes; the change watcher logs them.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    # configuration
    CONFIG_INVALID = "CONFIG_INVALID"
    DUPLICATE_FEED = "DUPLICATE_FEED"
    # origin
    FEED_FETCH_FAILED = "FEED_FETCH_FAILED"
    FEED_NOT_FOUND = "FEED_NOT_FOUND"
    FEED_PARSE_FAILED = "FEED_PARSE_FAILED"
    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"
    # rendering
    RENDER_FAILED = "RENDER_FAILED"
    # storage
    CACHE_STORE_FAILED = "CACHE_STORE_FAILED"
    # client
    INVALID_INPUT = "INVALID_INPUT"
    PAGE_NOT_FOUND = "PAGE_NOT_FOUND"
    CACHE_NOT_READY = "CACHE_NOT_READY"


ORIGIN_ERRORS = frozenset(
    {
        ErrorCode.FEED_FETCH_FAILED,
        ErrorCode.FEED_NOT_FOUND,
        ErrorCode.FEED_PARSE_FAILED,
        ErrorCode.TOO_MANY_REDIRECTS,
    }
)


class PodproxyError(Exception):
    """Raised for every expected failure inside podproxy."""

    def __init__(self, code: ErrorCode, message: str, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    def __repr__(self) -> str:
        return f"PodproxyError(code={self.code!s}, message={self.message!r})"
