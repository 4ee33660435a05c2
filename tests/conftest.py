"""Suite-wide fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tests.helpers import CountingCache

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


@pytest.fixture()
def counting_cache() -> CountingCache:
    return CountingCache()


@pytest.fixture()
def subscriptions_file(tmp_path: Path) -> Callable[[list[str]], Path]:
    """Write a subscription list and return its path."""
    path = tmp_path / "podcasts.yaml"

    def write(feeds: list[str]) -> Path:
        path.write_text("".join(f"- {feed}\n" for feed in feeds), encoding="utf-8")
        return path

    return write
