"""Tests for per-namespace entry storage and key sanitization."""

import orjson
import pytest

from plugincache.storage import StorageBackend
from plugincache.store import EntryStore, sanitize_key


def make_entry(data="value"):
    return {
        "data": data,
        "createdAt": "2026-01-01T00:00:00+00:00",
        "lastAccessedAt": "2026-01-01T00:00:00+00:00",
        "expiresAt": "2026-01-01T00:05:00+00:00",
        "size": len(orjson.dumps(data)),
    }


@pytest.fixture
def store(tmp_path):
    return EntryStore(str(tmp_path), "order-manager", StorageBackend())


class TestSanitizeKey:
    """Test filesystem-safe key conversion."""

    def test_safe_key_unchanged(self):
        assert sanitize_key("orders_2024-open") == "orders_2024-open"

    def test_unsafe_characters_replaced(self):
        assert sanitize_key("orders?status=open&page=2") == "orders_status_open_page_2"
        assert sanitize_key("../etc/passwd") == "___etc_passwd"
        assert sanitize_key("café") == "caf_"

    def test_collisions_are_possible(self):
        """Test that distinct keys can share a file stem."""
        assert sanitize_key("a:b") == sanitize_key("a/b")


class TestEntryStore:
    """Test reading and writing entry files."""

    def test_path_layout(self, store, tmp_path):
        assert store.path_for("a?b") == str(tmp_path / "order-manager" / "a_b.json")

    def test_write_creates_directory(self, store, tmp_path):
        location = store.write("orders", make_entry())

        assert location == str(tmp_path / "order-manager" / "orders.json")
        assert store.exists("orders")

    def test_read_round_trip(self, store):
        store.write("orders", make_entry({"id": 1}))

        assert store.read("orders")["data"] == {"id": 1}

    def test_read_missing(self, store):
        assert store.read("missing") is None

    def test_read_corrupt(self, store, tmp_path):
        store.ensure_directory()
        (tmp_path / "order-manager" / "bad.json").write_text("not json")

        assert store.read("bad") is None

    def test_read_missing_fields(self, store, tmp_path):
        """Test that a parsable file without entry fields is rejected."""
        store.ensure_directory()
        (tmp_path / "order-manager" / "partial.json").write_bytes(
            orjson.dumps({"data": 1, "size": 1})
        )

        assert store.read("partial") is None

    def test_read_non_object(self, store, tmp_path):
        store.ensure_directory()
        (tmp_path / "order-manager" / "list.json").write_bytes(orjson.dumps([1, 2]))

        assert store.read("list") is None

    def test_delete(self, store):
        store.write("orders", make_entry())

        assert store.delete("orders") is True
        assert store.delete("orders") is False
        assert not store.exists("orders")
