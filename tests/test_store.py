"""
Tests for roundup/store.py

Both stores run the same behaviour checks; the SQLite store uses a
temporary file so no real cache DB is touched.

Run with: pytest tests/test_store.py
"""

import sqlite3

import pytest

from roundup.store import MemoryStore, SqliteStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return SqliteStore(tmp_path / "cache.db", "research")


class TestKeyValueStore:
    def test_get_missing_returns_none(self, store):
        assert store.get("acme") is None

    def test_set_then_get(self, store):
        store.set("acme", {"data": {"name": "Acme"}, "timestamp": 1, "vertical": "gambling"})
        assert store.get("acme") == {"data": {"name": "Acme"}, "timestamp": 1, "vertical": "gambling"}

    def test_set_overwrites(self, store):
        store.set("acme", {"v": 1})
        store.set("acme", {"v": 2})
        assert store.get("acme") == {"v": 2}

    def test_returned_value_is_a_copy(self, store):
        store.set("acme", {"tags": ["a"]})
        value = store.get("acme")
        value["tags"].append("b")
        assert store.get("acme") == {"tags": ["a"]}

    def test_delete(self, store):
        store.set("acme", {"v": 1})
        assert store.delete("acme") is True
        assert store.get("acme") is None
        assert store.delete("acme") is False

    def test_list_matching_filters_and_keeps_insertion_order(self, store):
        store.set("b", {"vertical": "gambling"})
        store.set("a", {"vertical": "crypto"})
        store.set("c", {"vertical": "gambling"})

        matches = store.list_matching(lambda _k, v: v["vertical"] == "gambling")

        assert [k for k, _ in matches] == ["b", "c"]

    def test_clear(self, store):
        store.set("a", {"v": 1})
        store.clear()
        assert store.list_matching(lambda _k, _v: True) == []


class TestSqliteStore:
    def test_namespaces_are_isolated(self, tmp_path):
        db = tmp_path / "cache.db"
        research = SqliteStore(db, "research")
        reviews = SqliteStore(db, "reviews")

        research.set("acme", {"kind": "research"})
        reviews.set("acme", {"kind": "review"})
        reviews.clear()

        assert research.get("acme") == {"kind": "research"}
        assert reviews.get("acme") is None

    def test_persists_across_instances(self, tmp_path):
        db = tmp_path / "cache.db"
        SqliteStore(db, "research").set("acme", {"v": 1})
        assert SqliteStore(db, "research").get("acme") == {"v": 1}

    def test_creates_parent_directories(self, tmp_path):
        db = tmp_path / "nested" / "dir" / "cache.db"
        SqliteStore(db, "research")
        assert db.exists()

    def test_corrupt_row_is_skipped(self, tmp_path):
        db = tmp_path / "cache.db"
        store = SqliteStore(db, "research")
        store.set("good", {"v": 1})
        with sqlite3.connect(db) as conn:
            conn.execute(
                "INSERT INTO cache_entries (namespace, key, value) VALUES (?, ?, ?)",
                ("research", "bad", "{not json"),
            )

        assert store.get("bad") is None
        assert [k for k, _ in store.list_matching(lambda _k, _v: True)] == ["good"]
