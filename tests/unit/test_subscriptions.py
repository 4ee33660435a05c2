"""Unit tests for podproxy.subscriptions."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from podproxy.errors import ErrorCode, PodproxyError
from podproxy.subscriptions import (
    ensure_unique,
    file_signature,
    find_duplicates,
    load_subscriptions,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestLoadSubscriptions:
    def test_preserves_order(self, tmp_path: Path) -> None:
        path = tmp_path / "podcasts.yaml"
        path.write_text("- https://z.example/feed\n- https://a.example/feed\n")
        subscriptions = load_subscriptions(path)
        assert subscriptions.feeds == ["https://z.example/feed", "https://a.example/feed"]

    def test_modified_is_http_date(self, tmp_path: Path) -> None:
        path = tmp_path / "podcasts.yaml"
        path.write_text("- https://a.example/feed\n")
        os.utime(path, (0, 0))
        assert load_subscriptions(path).modified == "Thu, 01 Jan 1970 00:00:00 GMT"

    def test_empty_file_is_empty_list(self, tmp_path: Path) -> None:
        path = tmp_path / "podcasts.yaml"
        path.write_text("")
        assert load_subscriptions(path).feeds == []

    def test_entries_are_stripped(self, tmp_path: Path) -> None:
        path = tmp_path / "podcasts.yaml"
        path.write_text("- '  https://a.example/feed  '\n")
        assert load_subscriptions(path).feeds == ["https://a.example/feed"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(PodproxyError) as exc_info:
            load_subscriptions(tmp_path / "missing.yaml")
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "podcasts.yaml"
        path.write_text("- [unclosed\n")
        with pytest.raises(PodproxyError) as exc_info:
            load_subscriptions(path)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID

    def test_mapping_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "podcasts.yaml"
        path.write_text("feeds: https://a.example/feed\n")
        with pytest.raises(PodproxyError) as exc_info:
            load_subscriptions(path)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID

    def test_non_string_entry_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "podcasts.yaml"
        path.write_text("- https://a.example/feed\n- 42\n")
        with pytest.raises(PodproxyError) as exc_info:
            load_subscriptions(path)
        assert "Entry 2" in exc_info.value.message


class TestDuplicates:
    def test_find_duplicates_in_first_seen_order(self) -> None:
        feeds = ["b", "a", "b", "c", "a", "b"]
        assert find_duplicates(feeds) == ["b", "a"]

    def test_no_duplicates(self) -> None:
        assert find_duplicates(["a", "b"]) == []
        ensure_unique(["a", "b"])

    def test_ensure_unique_raises(self) -> None:
        with pytest.raises(PodproxyError) as exc_info:
            ensure_unique(["https://a.example/feed", "https://a.example/feed"])
        assert exc_info.value.code == ErrorCode.DUPLICATE_FEED
        assert "https://a.example/feed" in exc_info.value.message


class TestFileSignature:
    def test_missing_file_is_none(self, tmp_path: Path) -> None:
        assert file_signature(tmp_path / "missing.yaml") is None

    def test_content_change_changes_signature(self, tmp_path: Path) -> None:
        path = tmp_path / "podcasts.yaml"
        path.write_text("- https://a.example/feed\n")
        os.utime(path, (100, 100))
        before = file_signature(path)
        path.write_text("- https://b.example/feed\n")
        os.utime(path, (100, 100))
        assert file_signature(path) != before

    def test_touch_changes_signature(self, tmp_path: Path) -> None:
        path = tmp_path / "podcasts.yaml"
        path.write_text("- https://a.example/feed\n")
        os.utime(path, (100, 100))
        before = file_signature(path)
        os.utime(path, (200, 200))
        assert file_signature(path) != before

    def test_matches_loaded_signature(self, tmp_path: Path) -> None:
        path = tmp_path / "podcasts.yaml"
        path.write_text("- https://a.example/feed\n")
        assert load_subscriptions(path).signature == file_signature(path)
