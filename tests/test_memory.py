"""Tests for the persistent per-project memory store."""

import json
import os

import pytest

from jumble_mcp.errors import NotFoundError, PersistenceError, ValidationError
from jumble_mcp.memory import MemoryEntry, MemoryStore


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / ".jumble" / "memory.json"


@pytest.fixture
def store(store_path):
    return MemoryStore.open(store_path)


class TestOpen:
    """Tests for MemoryStore.open."""

    def test_creates_empty_file(self, store_path):
        store = MemoryStore.open(store_path)

        assert len(store) == 0
        assert store.persistent
        data = json.loads(store_path.read_text())
        assert data == {"version": 1, "entries": {}}

    def test_open_for_project(self, tmp_path):
        store = MemoryStore.open_for_project(tmp_path)
        assert store.path == tmp_path / ".jumble" / "memory.json"
        assert store.path.exists()

    def test_empty_file_is_empty_store(self, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("")
        assert len(MemoryStore.open(store_path)) == 0

    def test_corrupt_file_raises(self, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("{not json")
        with pytest.raises(PersistenceError, match="Corrupted"):
            MemoryStore.open(store_path)

    def test_bad_entry_shape_raises(self, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text(json.dumps({"version": 1, "entries": {"k": {"value": 1}}}))
        with pytest.raises(PersistenceError):
            MemoryStore.open(store_path)

    def test_in_memory_store_is_not_persistent(self):
        store = MemoryStore()
        store.store("k", "v")
        assert not store.persistent
        assert store.get("k").value == "v"


class TestStoreAndGet:
    """Tests for store/get round trips and persistence."""

    def test_store_then_get(self, store):
        entry, replaced = store.store("db", "postgres 15", source="agent")

        assert replaced is False
        assert store.get("db") == entry
        assert entry.value == "postgres 15"
        assert entry.source == "agent"

    def test_store_persists_across_reopen(self, store, store_path):
        store.store("db", "postgres 15")
        reopened = MemoryStore.open(store_path)
        assert reopened.get("db").value == "postgres 15"

    def test_overwrite_replaces_value(self, store):
        store.store("k", "one")
        entry, replaced = store.store("k", "two")

        assert replaced is True
        assert store.get("k").value == "two"
        assert len(store) == 1

    def test_timestamp_never_decreases(self, store):
        first, _ = store.store("k", "one")
        second, _ = store.store("k", "two")
        assert second.timestamp >= first.timestamp

    def test_future_timestamp_is_kept_on_overwrite(self, store_path):
        store_path.parent.mkdir(parents=True)
        future = "2999-01-01T00:00:00+00:00"
        store_path.write_text(json.dumps({
            "version": 1,
            "entries": {"k": {"value": "old", "timestamp": future, "source": None}},
        }))
        store = MemoryStore.open(store_path)

        entry, _ = store.store("k", "new")

        assert entry.timestamp == future

    def test_get_missing_raises(self, store):
        with pytest.raises(NotFoundError, match="Memory 'nope' not found"):
            store.get("nope")

    def test_file_is_valid_json_after_save(self, store, store_path):
        store.store("b", "2")
        store.store("a", "1")
        data = json.loads(store_path.read_text())
        assert list(data["entries"]) == ["a", "b"]
        assert not store_path.with_suffix(".json.tmp").exists()


class TestListAndSearch:
    """Tests for list and search."""

    @pytest.fixture
    def filled(self, store):
        store.store("api/auth", "Uses JWT")
        store.store("api/rate-limit", "100 req/min")
        store.store("db/schema", "See migrations; auth tables live in users.sql")
        return store

    def test_list_sorted(self, filled):
        assert [k for k, _ in filled.list()] == ["api/auth", "api/rate-limit", "db/schema"]

    def test_list_pattern_is_case_insensitive(self, filled):
        assert [k for k, _ in filled.list("API/")] == ["api/auth", "api/rate-limit"]

    def test_search_matches_keys_and_values(self, filled):
        assert [k for k, _ in filled.search("AUTH")] == ["api/auth", "db/schema"]

    def test_search_no_match(self, filled):
        assert filled.search("redis") == []


class TestDeleteAndClear:
    """Tests for delete and clear."""

    def test_delete(self, store, store_path):
        store.store("k", "v")
        removed = store.delete("k")

        assert removed.value == "v"
        assert "k" not in store
        assert MemoryStore.open(store_path).list() == []

    def test_delete_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.delete("nope")

    def test_clear_requires_confirm(self, store):
        store.store("k", "v")
        with pytest.raises(ValidationError, match="confirm"):
            store.clear()
        assert "k" in store

    def test_clear_truthy_non_bool_is_not_confirmation(self, store):
        store.store("k", "v")
        with pytest.raises(ValidationError):
            store.clear(confirm="yes")
        assert len(store) == 1

    def test_clear_all(self, store):
        store.store("a", "1")
        store.store("b", "2")
        assert store.clear(confirm=True) == 2
        assert len(store) == 0

    def test_clear_pattern(self, store):
        store.store("tmp/a", "1")
        store.store("keep", "2")
        assert store.clear("tmp/", confirm=True) == 1
        assert store.keys() == ["keep"]


class TestSaveFailure:
    """A failed save leaves the in-memory map untouched."""

    @pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="requires POSIX permissions as non-root")
    def test_store_failure_keeps_previous_state(self, store, store_path):
        store.store("k", "original")
        store_path.parent.chmod(0o500)
        try:
            with pytest.raises(PersistenceError):
                store.store("k", "changed")
        finally:
            store_path.parent.chmod(0o700)

        assert store.get("k").value == "original"

    def test_write_error_does_not_commit(self, store, monkeypatch):
        store.store("k", "original")

        def fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("jumble_mcp.memory.os.replace", fail)

        with pytest.raises(PersistenceError, match="disk full"):
            store.delete("k")
        assert store.get("k").value == "original"


class TestMemoryEntry:
    def test_from_dict(self):
        entry = MemoryEntry.from_dict({"value": "v", "timestamp": "t"})
        assert entry.source is None

    def test_from_dict_rejects_non_string_source(self):
        with pytest.raises(ValueError):
            MemoryEntry.from_dict({"value": "v", "timestamp": "t", "source": 3})
