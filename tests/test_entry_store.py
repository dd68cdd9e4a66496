"""
Tests for the SQLite entry store.
"""

import re
import sqlite3

import pytest

from telescope.entry_store import EntryStore
from telescope.query import compile_tag_query
from telescope.types import EntryQueryOptions, EntryRecord


def _uuids(entries):
    return [e.uuid for e in entries]


class TestWrites:
    """Appending entries."""

    def test_record_fills_identity(self, store):
        entry = store.record("request", {"uri": "/"}, ["status:200"])
        assert entry.uuid
        assert entry.batch_id
        assert entry.sequence == 1
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}", entry.created_at)

    def test_sequences_increase(self, store):
        first = store.record("request")
        second = store.record("request")
        assert second.sequence > first.sequence

    def test_batch_shares_batch_id(self, store):
        stored = store.store([EntryRecord(type="request"), EntryRecord(type="query")])
        assert stored[0].batch_id == stored[1].batch_id
        assert stored[0].uuid != stored[1].uuid

    def test_explicit_batch_id_kept(self, store):
        entry = store.record("job", batch_id="batch-1")
        assert entry.batch_id == "batch-1"

    def test_duplicate_tags_collapse(self, store):
        entry = store.record("request", tags=["a", "b", "a"])
        assert entry.tags == ("a", "b")
        assert store.get(entry.uuid).tags == ("a", "b")

    def test_malformed_created_at_rejected(self, store):
        with pytest.raises(ValueError):
            store.record("request", created_at="yesterday")
        assert store.count() == 0

    def test_failed_batch_leaves_nothing_behind(self, store):
        good = EntryRecord(type="request", created_at="2024-03-15 10:00:00")
        with pytest.raises(ValueError):
            store.store([good, EntryRecord(type="request", created_at="garbage")])
        store.record("job")
        assert store.count() == 1
        assert store.get_entries("request") == []

    def test_duplicate_uuid_rolls_back_batch(self, store):
        with pytest.raises(sqlite3.IntegrityError):
            store.store([
                EntryRecord(type="request", uuid="same"),
                EntryRecord(type="query", uuid="other"),
                EntryRecord(type="job", uuid="same"),
            ])
        store.record("job")
        assert store.count() == 1
        assert store.get("other") is None

    def test_get_roundtrip(self, store):
        entry = store.record(
            "request",
            {"uri": "/ünïcode", "status": 403},
            ["status:403"],
            family_hash="fam",
            should_display_on_index=False,
            created_at="2024-03-15 10:00:00",
        )
        loaded = store.get(entry.uuid)
        assert loaded == entry

    def test_get_missing(self, store):
        assert store.get("nope") is None

    def test_persists_across_reopen(self, tmp_path):
        db = tmp_path / "sub" / "telescope.db"
        with EntryStore(db) as first:
            entry = first.record("request", tags=["x"])
        with EntryStore(db) as second:
            assert second.get(entry.uuid).tags == ("x",)

    def test_prune(self, seeded):
        store, stored = seeded
        assert store.prune("2024-03-16 00:00:00") == 2
        assert store.count() == 3
        assert store.get(stored[0].uuid) is None
        assert store.tagged_uuids(["method:POST"]) == set()

    def test_prune_rejects_bad_timestamp(self, store):
        with pytest.raises(ValueError):
            store.prune("2024-03")


class TestGetEntries:
    """Query scope: type, batch, family, tags, pagination, visibility."""

    def test_index_hides_hidden_entries(self, seeded):
        store, stored = seeded
        results = store.get_entries()
        assert _uuids(results) == [e.uuid for e in reversed(stored[:4])]

    def test_type(self, seeded):
        store, stored = seeded
        assert _uuids(store.get_entries("query")) == [stored[3].uuid]

    def test_family_hash_shows_hidden(self, seeded):
        store, stored = seeded
        results = store.get_entries("query", EntryQueryOptions(family_hash="fam1"))
        assert _uuids(results) == [stored[4].uuid, stored[3].uuid]

    def test_tag_shows_hidden(self, seeded):
        store, stored = seeded
        results = store.get_entries(None, EntryQueryOptions(tag="slow"))
        assert _uuids(results) == [stored[4].uuid, stored[3].uuid]

    def test_batch_id(self, seeded):
        store, stored = seeded
        other = store.record("request")
        results = store.get_entries(None, EntryQueryOptions(batch_id=other.batch_id))
        assert _uuids(results) == [other.uuid]

    def test_before_sequence_and_limit(self, seeded):
        store, stored = seeded
        results = store.get_entries(
            "request", EntryQueryOptions(before_sequence=stored[2].sequence, limit=1)
        )
        assert _uuids(results) == [stored[1].uuid]

    @pytest.mark.parametrize("tag, expected", [
        ("status:403", [2, 0]),
        ("status:403;method:GET", [2]),
        ("status:403|method:GET", [2, 1, 0]),
        ("status:200,status:403", [2, 1, 0]),
        ("created:>2024-01-01", [2, 1]),
        ("created:!2024-03", [0]),
        ("created:2024-03,status:403", [2]),
        ("created:15-03-2024", [1]),
        ("created:>nonsense", []),
        ("Status:403", []),
        (" | ", [2, 1, 0]),
    ])
    def test_tag_queries(self, seeded, tag, expected):
        store, stored = seeded
        results = store.get_entries("request", EntryQueryOptions(tag=tag))
        assert _uuids(results) == [stored[i].uuid for i in expected]

    @pytest.mark.parametrize("tag", [
        "status:403|slow",
        "created:>=2024-03-15 10:00;method:GET",
        "created:!2024-04,slow|status:200",
        "created:2024,method:POST",
        "created:<2024-04-02 09:00:01",
    ])
    def test_sql_agrees_with_matches(self, seeded, tag):
        store, stored = seeded
        node = compile_tag_query(tag, store.timezone)
        in_memory = {e.uuid for e in stored if node.matches(e)}
        from_sql = set(_uuids(store.get_entries(None, EntryQueryOptions(tag=tag))))
        assert from_sql == in_memory

    def test_filter_entries(self, seeded):
        store, stored = seeded
        results = store.filter_entries(compile_tag_query("method:GET"), limit=1)
        assert _uuids(results) == [stored[2].uuid]

    def test_tagged_uuids(self, seeded):
        store, stored = seeded
        assert store.tagged_uuids(["method:POST", "slow"]) == {
            stored[0].uuid, stored[3].uuid, stored[4].uuid,
        }
        assert store.tagged_uuids([]) == set()


class TestTimezone:
    """Store timezone drives created: queries."""

    def test_unknown_timezone(self, tmp_path):
        with pytest.raises(ValueError):
            EntryStore(tmp_path / "t.db", timezone="Nowhere/Special")

    def test_unix_timestamp_day(self, tmp_path):
        with EntryStore(tmp_path / "t.db", timezone="UTC") as store:
            inside = store.record("request", created_at="2023-11-14 12:00:00")
            store.record("request", created_at="2023-11-15 12:00:00")
            results = store.get_entries(None, EntryQueryOptions(tag="created:>=1700000000"))
            assert inside.uuid in _uuids(results)
            results = store.get_entries(None, EntryQueryOptions(tag="created:<1700000000"))
            assert results == []
