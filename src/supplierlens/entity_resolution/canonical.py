"""Store-backed canonical records: persistence, forwarding, and merges.

A merge writes exactly one canonical record and then a forwarding
pointer from the secondary id.  If the pointer write fails the store is
left with two live records, which the next detection run re-detects.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

import structlog

from supplierlens.config import Settings, get_settings
from supplierlens.entity_resolution.merge import merge_records
from supplierlens.entity_resolution.similarity import calculate_similarity
from supplierlens.errors import RecordNotFoundError
from supplierlens.events import EventSink, MergeCompleted, safe_emit
from supplierlens.ingest import record_from_dict
from supplierlens.models import BusinessRecord, MatchingField, pair_key, to_jsonable
from supplierlens.store import (
    DEDUP_STATS_KEY,
    DUPLICATE_KEY,
    FORWARD_KEY,
    MERGE_HISTORY_KEY,
    PRIORITY_SCORE_KEY,
    QUALITY_SCORE_KEY,
    RECORD_KEY,
    KeyValueStore,
)

logger = structlog.get_logger(__name__)

MAX_FORWARDING_HOPS = 64


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def save_record(store: KeyValueStore, record: BusinessRecord) -> None:
    store.set(RECORD_KEY.format(id=record.id), to_jsonable(record))


def save_records(store: KeyValueStore, records: Sequence[BusinessRecord]) -> int:
    for record in records:
        save_record(store, record)
    return len(records)


def load_record(store: KeyValueStore, record_id: str) -> BusinessRecord | None:
    """Load the record stored under *record_id* without following pointers."""
    payload = store.get(RECORD_KEY.format(id=record_id))
    if payload is None:
        return None
    return record_from_dict(payload)


def resolve_canonical_id(store: KeyValueStore, record_id: str) -> str:
    """Follow forwarding pointers from *record_id* to the surviving id.

    A cycle (or an implausibly long chain) stops at the last id visited
    and is logged.
    """
    seen = {record_id}
    current = record_id
    for _ in range(MAX_FORWARDING_HOPS):
        target = store.get(FORWARD_KEY.format(id=current))
        if not target:
            return current
        target = str(target)
        if target in seen:
            logger.warning("forwarding_cycle_detected", record_id=record_id, at=current)
            return current
        seen.add(target)
        current = target
    logger.warning("forwarding_chain_too_long", record_id=record_id, at=current)
    return current


def get_canonical_record(store: KeyValueStore, record_id: str) -> BusinessRecord | None:
    """Load whichever record *record_id* currently resolves to."""
    return load_record(store, resolve_canonical_id(store, record_id))


def list_canonical_ids(store: KeyValueStore) -> list[str]:
    """Ids of stored records that are not forwarded elsewhere."""
    prefix = RECORD_KEY.format(id="")
    forward_prefix = FORWARD_KEY.format(id="")
    ids = []
    for key in store.keys(prefix):
        if key.startswith(forward_prefix):
            continue
        record_id = key[len(prefix):]
        if store.get(FORWARD_KEY.format(id=record_id)) is None:
            ids.append(record_id)
    return ids


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

@dataclass
class DeduplicationStats:
    pairs_processed: int = 0
    duplicates_found: int = 0
    merges_completed: int = 0
    manual_reviews_pending: int = 0

    def add(self, other: DeduplicationStats) -> DeduplicationStats:
        return DeduplicationStats(
            pairs_processed=self.pairs_processed + other.pairs_processed,
            duplicates_found=self.duplicates_found + other.duplicates_found,
            merges_completed=self.merges_completed + other.merges_completed,
            manual_reviews_pending=self.manual_reviews_pending + other.manual_reviews_pending,
        )


def get_statistics(store: KeyValueStore) -> DeduplicationStats:
    payload = store.get(DEDUP_STATS_KEY) or {}
    return DeduplicationStats(**{k: int(v) for k, v in payload.items()})


def record_statistics(store: KeyValueStore, delta: DeduplicationStats) -> DeduplicationStats:
    """Add *delta* to the stored counters and return the new totals."""
    totals = get_statistics(store).add(delta)
    store.set(DEDUP_STATS_KEY, asdict(totals))
    return totals


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def merge_duplicate(
    store: KeyValueStore,
    business1: str,
    business2: str,
    *,
    matching_fields: Sequence[MatchingField] | None = None,
    settings: Settings | None = None,
    sink: EventSink | None = None,
    merged_at: datetime | None = None,
) -> BusinessRecord:
    """Merge two stored records and forward the secondary to the survivor.

    Both ids are resolved through forwarding pointers first; when they
    already resolve to the same record the call is a no-op returning
    that record.

    Raises
    ------
    RecordNotFoundError
        If either record is not in the store.  Nothing is written.
    """
    settings = settings or get_settings()

    id1 = resolve_canonical_id(store, business1)
    id2 = resolve_canonical_id(store, business2)
    record1 = load_record(store, id1)
    if record1 is None:
        raise RecordNotFoundError(id1)
    if id1 == id2:
        logger.info("merge_skipped_already_merged", business1=business1, business2=business2,
                    canonical_id=id1)
        return record1
    record2 = load_record(store, id2)
    if record2 is None:
        raise RecordNotFoundError(id2)

    # Cached field comparisons are stale once either side has been merged.
    if matching_fields is None or (id1, id2) != (business1, business2):
        matching_fields = calculate_similarity(record1, record2).matching_fields

    merged_at = merged_at or datetime.now(timezone.utc)
    canonical, secondary, strategy = merge_records(
        record1, record2, matching_fields, merged_at=merged_at
    )

    save_record(store, canonical)
    store.set(
        FORWARD_KEY.format(id=secondary.id),
        canonical.id,
        ttl_seconds=settings.forwarding_pointer_ttl,
    )
    if strategy.preserve_history:
        store.set(
            MERGE_HISTORY_KEY.format(primary=canonical.id, secondary=secondary.id),
            {
                "primary_id": canonical.id,
                "secondary_id": secondary.id,
                "merged_at": merged_at.isoformat(),
                "strategy": to_jsonable(strategy),
                "primary_before": to_jsonable(record1 if record1.id == canonical.id else record2),
                "secondary": to_jsonable(secondary),
            },
            ttl_seconds=settings.merge_history_ttl,
        )

    # Cached results for either id no longer describe a live record.
    store.delete(
        DUPLICATE_KEY.format(pair=pair_key(canonical.id, secondary.id)),
        PRIORITY_SCORE_KEY.format(id=canonical.id),
        PRIORITY_SCORE_KEY.format(id=secondary.id),
        QUALITY_SCORE_KEY.format(id=canonical.id),
        QUALITY_SCORE_KEY.format(id=secondary.id),
    )
    record_statistics(store, DeduplicationStats(merges_completed=1))

    affected = tuple(
        rule.field
        for rule in strategy.fields_to_merge
        if rule.source != "primary" or rule.conflict_resolution == "combine"
    )
    safe_emit(
        sink,
        MergeCompleted(
            primary_id=canonical.id,
            secondary_id=secondary.id,
            merged_id=canonical.id,
            affected_fields=affected,
        ),
    )
    logger.info(
        "merge_completed",
        primary_id=canonical.id,
        secondary_id=secondary.id,
        affected_fields=len(affected),
    )
    return canonical
