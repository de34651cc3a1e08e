"""Tests for ``clawview.core.cursors``: idempotent, forward-only, bounded."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from clawview.core.cursors import Cursor, CursorStore


@dataclass(frozen=True)
class Item:
    ts_ms: int
    dedupe_key: str


class TestCursor:
    def test_zero_cursor_covers_nothing(self):
        cursor = Cursor(category="api")
        assert cursor.covers(1, "a") is False

    def test_covers_older_timestamps(self):
        cursor = Cursor(category="api", last_ts_ms=100, last_keys=("b",))
        assert cursor.covers(99, "anything") is True

    def test_covers_boundary_only_for_known_keys(self):
        cursor = Cursor(category="api", last_ts_ms=100, last_keys=("b",))
        assert cursor.covers(100, "b") is True
        assert cursor.covers(100, "c") is False
        assert cursor.covers(101, "b") is False

    def test_record_roundtrip_tolerates_garbage(self):
        assert Cursor.from_record("api", "not a dict").last_ts_ms == 0
        restored = Cursor.from_record("api", {"last_ts_ms": "oops", "last_keys": "x"})
        assert restored.last_ts_ms == 0
        assert restored.last_keys == ()


class TestCursorStoreAdvance:
    def test_first_advance_accepts_everything_in_time_order(self, storage):
        store = CursorStore(storage)
        batch = [Item(30, "c"), Item(10, "a"), Item(20, "b")]

        accepted = store.advance("api", batch)

        assert [i.dedupe_key for i in accepted] == ["a", "b", "c"]
        assert store.peek("api").last_ts_ms == 30

    def test_advance_is_idempotent(self, storage):
        store = CursorStore(storage)
        batch = [Item(10, "a"), Item(20, "b"), Item(20, "c")]

        first = store.advance("api", batch)
        second = store.advance("api", batch)

        assert len(first) == 3
        assert second == []

    def test_overlapping_window_yields_only_new_facts(self, storage):
        store = CursorStore(storage)
        store.advance("api", [Item(10, "a"), Item(20, "b")])

        accepted = store.advance("api", [Item(10, "a"), Item(20, "b"), Item(20, "b2"), Item(30, "c")])

        assert [i.dedupe_key for i in accepted] == ["b2", "c"]

    def test_same_timestamp_different_keys_are_distinct(self, storage):
        store = CursorStore(storage)
        store.advance("api", [Item(50, "x")])

        accepted = store.advance("api", [Item(50, "x"), Item(50, "y")])

        assert [i.dedupe_key for i in accepted] == ["y"]
        assert set(store.peek("api").last_keys) == {"x", "y"}

    def test_duplicates_within_a_batch_accepted_once(self, storage):
        store = CursorStore(storage)
        accepted = store.advance("api", [Item(10, "a"), Item(10, "a")])
        assert len(accepted) == 1

    def test_invalid_facts_are_ignored(self, storage):
        store = CursorStore(storage)
        accepted = store.advance("api", [Item(0, "a"), Item(10, ""), Item(-5, "b")])
        assert accepted == []
        assert storage.read_text(store.file_name("api")) is None

    def test_cursor_never_moves_backwards(self, storage):
        store = CursorStore(storage)
        store.advance("api", [Item(100, "a")])

        accepted = store.advance("api", [Item(50, "old")])

        assert accepted == []
        assert store.peek("api").last_ts_ms == 100

    def test_boundary_keys_are_bounded(self, storage):
        store = CursorStore(storage, max_keys=3)
        store.advance("api", [Item(10, f"k{i}") for i in range(10)])

        cursor = store.peek("api")

        assert len(cursor.last_keys) == 3
        assert cursor.last_keys == ("k7", "k8", "k9")

    def test_categories_are_independent(self, storage):
        store = CursorStore(storage)
        store.advance("api", [Item(100, "a")])
        assert store.advance("cron", [Item(50, "a")]) == [Item(50, "a")]

    def test_prefix_separates_cursor_owners(self, storage):
        extraction = CursorStore(storage)
        sync = CursorStore(storage, prefix="sync-")
        extraction.advance("api", [Item(10, "a")])

        assert sync.peek("api").last_ts_ms == 0
        assert "api-cursor.json" in storage.files
        assert "sync-api-cursor.json" not in storage.files


class TestCursorStoreSelectCommit:
    def test_select_does_not_persist(self, storage):
        store = CursorStore(storage)
        advance = store.select("api", [Item(10, "a")])

        assert advance.changed is True
        assert storage.read_text(store.file_name("api")) is None

    def test_select_respects_limit(self, storage):
        store = CursorStore(storage)
        advance = store.select("api", [Item(i, f"k{i}") for i in range(1, 6)], limit=2)

        assert [i.dedupe_key for i in advance.accepted] == ["k1", "k2"]
        assert advance.cursor.last_ts_ms == 2

        store.commit(advance.cursor)
        rest = store.select("api", [Item(i, f"k{i}") for i in range(1, 6)])
        assert [i.dedupe_key for i in rest.accepted] == ["k3", "k4", "k5"]

    def test_unchanged_select_returns_previous(self, storage):
        store = CursorStore(storage)
        advance = store.select("api", [])
        assert advance.changed is False
        assert advance.cursor == advance.previous

    def test_commit_ignores_backward_cursor(self, storage):
        store = CursorStore(storage)
        store.commit(Cursor(category="api", last_ts_ms=100, last_keys=("a",)))

        result = store.commit(Cursor(category="api", last_ts_ms=10, last_keys=("z",)))

        assert result.last_ts_ms == 100
        assert store.peek("api").last_keys == ("a",)


@pytest.mark.integration
class TestCursorStoreOnDisk:
    def test_cursor_survives_a_new_store(self, file_storage):
        CursorStore(file_storage).advance("api", [Item(10, "a")])
        assert CursorStore(file_storage).advance("api", [Item(10, "a")]) == []

    def test_corrupt_cursor_file_reads_as_zero(self, file_storage):
        file_storage.write_atomic("api-cursor.json", "{not json")
        assert CursorStore(file_storage).peek("api").last_ts_ms == 0
