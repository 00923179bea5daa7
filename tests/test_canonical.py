"""Tests for store-backed canonical records and merges."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from supplierlens.entity_resolution.canonical import (
    DeduplicationStats,
    get_canonical_record,
    get_statistics,
    list_canonical_ids,
    load_record,
    merge_duplicate,
    record_statistics,
    resolve_canonical_id,
    save_records,
)
from supplierlens.errors import RecordNotFoundError
from supplierlens.events import CollectingSink

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def seeded(store, eagle_a, eagle_b, unrelated):
    save_records(store, [eagle_a, eagle_b, unrelated])
    return store


# =========================================================================
# Records and forwarding
# =========================================================================


class TestRecords:
    """Tests for persistence and pointer resolution."""

    def test_round_trip(self, seeded, eagle_a):
        assert load_record(seeded, "biz-a") == eagle_a

    def test_unknown_id(self, seeded):
        assert load_record(seeded, "nope") is None
        assert resolve_canonical_id(seeded, "nope") == "nope"

    def test_chain(self, store):
        store.set("business:merged:a", "b")
        store.set("business:merged:b", "c")
        assert resolve_canonical_id(store, "a") == "c"

    def test_cycle_terminates(self, store):
        store.set("business:merged:x", "y")
        store.set("business:merged:y", "x")
        assert resolve_canonical_id(store, "x") == "y"


# =========================================================================
# merge_duplicate
# =========================================================================


class TestMergeDuplicate:
    """Tests for the persisted merge."""

    def test_writes_canonical_and_pointer(self, seeded, settings):
        canonical = merge_duplicate(seeded, "biz-a", "biz-b", settings=settings, merged_at=NOW)

        assert canonical.id == "biz-b"
        assert resolve_canonical_id(seeded, "biz-a") == "biz-b"
        assert get_canonical_record(seeded, "biz-a").name == "Eagle Technologies Inc."
        assert list_canonical_ids(seeded) == ["biz-b", "biz-z"]

        history = seeded.get("merge:history:biz-b:biz-a")
        assert history["secondary"]["id"] == "biz-a"
        assert history["primary_before"]["name"] == "Eagle Technologies"

    def test_idempotent(self, seeded, settings):
        merge_duplicate(seeded, "biz-a", "biz-b", settings=settings, merged_at=NOW)
        again = merge_duplicate(seeded, "biz-b", "biz-a", settings=settings)
        assert again.id == "biz-b"
        assert get_statistics(seeded).merges_completed == 1

    def test_missing_record(self, seeded, settings):
        with pytest.raises(RecordNotFoundError, match="nope"):
            merge_duplicate(seeded, "biz-a", "nope", settings=settings)
        assert resolve_canonical_id(seeded, "biz-a") == "biz-a"

    def test_invalidates_caches(self, seeded, settings):
        for key in ("priority:score:biz-a", "quality:score:biz-b", "duplicate:biz-a:biz-b"):
            seeded.set(key, {"stale": True})
        merge_duplicate(seeded, "biz-a", "biz-b", settings=settings, merged_at=NOW)
        assert seeded.get("priority:score:biz-a") is None
        assert seeded.get("quality:score:biz-b") is None
        assert seeded.get("duplicate:biz-a:biz-b") is None

    def test_emits_event(self, seeded, settings):
        sink = CollectingSink()
        merge_duplicate(seeded, "biz-a", "biz-b", settings=settings, sink=sink, merged_at=NOW)
        (event,) = sink.of_kind("merge_completed")
        assert event.primary_id == "biz-b"
        assert event.secondary_id == "biz-a"
        assert "name" in event.affected_fields

    def test_history_expires_before_pointer(self, seeded, settings, clock):
        merge_duplicate(seeded, "biz-a", "biz-b", settings=settings, merged_at=NOW)
        clock.advance(settings.merge_history_ttl)
        assert seeded.get("merge:history:biz-b:biz-a") is None
        assert resolve_canonical_id(seeded, "biz-a") == "biz-b"
        clock.advance(settings.forwarding_pointer_ttl)
        assert resolve_canonical_id(seeded, "biz-a") == "biz-a"

    def test_merging_forwarded_id_uses_survivor(self, seeded, settings, unrelated):
        merge_duplicate(seeded, "biz-a", "biz-b", settings=settings, merged_at=NOW)
        canonical = merge_duplicate(seeded, "biz-a", "biz-z", settings=settings, merged_at=NOW)
        assert {resolve_canonical_id(seeded, i) for i in ("biz-a", "biz-b", "biz-z")} == {
            canonical.id
        }


# =========================================================================
# Statistics
# =========================================================================


class TestStatistics:
    def test_accumulates(self, store):
        record_statistics(store, DeduplicationStats(pairs_processed=3, duplicates_found=1))
        totals = record_statistics(store, DeduplicationStats(pairs_processed=2))
        assert totals == DeduplicationStats(pairs_processed=5, duplicates_found=1)
        assert get_statistics(store) == totals
