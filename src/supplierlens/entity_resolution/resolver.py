"""Duplicate detection orchestrator.

Builds the search indices once per batch, finds candidates per record,
scores each pair exactly once, and reports every pair that is not
``keep_both``.  Records are processed in chunks of ``batch_size`` with a
progress event after each chunk; cancellation is checked between chunks
and before each record starts.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import structlog

from supplierlens.batch import BatchReport
from supplierlens.config import Settings, get_settings
from supplierlens.entity_resolution.candidates import ProcessedPairs, find_candidates
from supplierlens.entity_resolution.canonical import (
    DeduplicationStats,
    merge_duplicate,
    record_statistics,
)
from supplierlens.entity_resolution.classifier import determine_merge_action
from supplierlens.entity_resolution.confidence import (
    ConfidenceAdjuster,
    HeuristicConfidenceAdjuster,
)
from supplierlens.entity_resolution.config import DeduplicationConfig
from supplierlens.entity_resolution.indexing import SearchIndices, build_search_indices
from supplierlens.entity_resolution.similarity import calculate_similarity
from supplierlens.errors import RecordNotFoundError
from supplierlens.events import DuplicateFound, EventSink, Progress, safe_emit
from supplierlens.models import (
    BusinessRecord,
    DuplicateCandidate,
    MatchingField,
    MergeAction,
    pair_key,
    to_jsonable,
)
from supplierlens.store import DUPLICATE_KEY, FORWARD_KEY, KeyValueStore

logger = structlog.get_logger(__name__)


@dataclass
class DetectionResult:
    candidates: list[DuplicateCandidate] = field(default_factory=list)
    stats: DeduplicationStats = field(default_factory=DeduplicationStats)
    report: BatchReport = field(default_factory=BatchReport)


@dataclass
class _RecordOutcome:
    record_id: str
    candidates: list[DuplicateCandidate] = field(default_factory=list)
    pairs: int = 0
    error: str | None = None
    skipped: bool = False


# ---------------------------------------------------------------------------
# Pair scoring
# ---------------------------------------------------------------------------

def score_pair(
    record1: BusinessRecord,
    record2: BusinessRecord,
    config: DeduplicationConfig | None = None,
    adjuster: ConfidenceAdjuster | None = None,
) -> DuplicateCandidate:
    """Score one pair and attach confidence and the suggested action."""
    config = config or DeduplicationConfig()
    adjuster = adjuster or HeuristicConfidenceAdjuster()

    result = calculate_similarity(record1, record2, config)
    confidence = adjuster.adjust(record1, record2, result.score, result.matching_fields)
    action = determine_merge_action(result.score, result.matching_fields, config)

    return DuplicateCandidate(
        business1=record1.id,
        business2=record2.id,
        similarity_score=result.score,
        matching_fields=result.matching_fields,
        confidence=confidence,
        suggested_action=action,
    )


def _detect_for_record(
    record: BusinessRecord,
    indices: SearchIndices,
    processed: ProcessedPairs,
    config: DeduplicationConfig,
    adjuster: ConfidenceAdjuster,
    cancel: threading.Event | None,
) -> _RecordOutcome:
    outcome = _RecordOutcome(record_id=record.id)
    if cancel is not None and cancel.is_set():
        outcome.skipped = True
        return outcome

    try:
        for other in find_candidates(record, indices, phonetic=config.enable_phonetic_matching):
            if not processed.claim(record.id, other.id):
                continue
            outcome.pairs += 1
            candidate = score_pair(record, other, config, adjuster)
            logger.debug(
                "pair_scored",
                pair=candidate.pair_key,
                score=round(candidate.similarity_score, 4),
                action=candidate.suggested_action.value,
            )
            if candidate.suggested_action is not MergeAction.KEEP_BOTH:
                outcome.candidates.append(candidate)
    except Exception as exc:
        logger.warning("duplicate_detection_record_failed", record_id=record.id, exc_info=True)
        outcome.error = str(exc) or type(exc).__name__
    return outcome


# ---------------------------------------------------------------------------
# Batch detection
# ---------------------------------------------------------------------------

def _forwarded_ids(store: KeyValueStore | None, records: Sequence[BusinessRecord]) -> dict[str, str]:
    if store is None:
        return {}
    forwarded = {}
    for record in records:
        try:
            target = store.get(FORWARD_KEY.format(id=record.id))
        except Exception as exc:
            logger.warning("forward_lookup_failed", record_id=record.id, error=str(exc))
            continue
        if target:
            forwarded[record.id] = str(target)
    return forwarded


def find_duplicates(
    records: Sequence[BusinessRecord],
    config: DeduplicationConfig | None = None,
    *,
    store: KeyValueStore | None = None,
    sink: EventSink | None = None,
    adjuster: ConfidenceAdjuster | None = None,
    processed: ProcessedPairs | None = None,
    cancel: threading.Event | None = None,
    workers: int = 1,
    settings: Settings | None = None,
) -> DetectionResult:
    """Detect duplicate pairs within *records*.

    Parameters
    ----------
    records:
        One bounded batch.  Records already forwarded to another id in
        *store* are rejected rather than compared.
    config:
        Thresholds, toggles, and weights.  Defaults to
        ``DeduplicationConfig()``.
    store:
        When given, reported candidates are cached under
        ``duplicate:{pair}`` and the stored statistics are updated.
    processed:
        Pair keys already scored; pass the same instance to continue a
        run without rescoring.  A fresh set is used by default.
    cancel:
        Once set, no further records are started; records in flight
        finish normally.
    workers:
        Threads used to score records within a chunk.

    Returns
    -------
    DetectionResult
        Candidates in discovery order, statistics for this run, and the
        per-record report.
    """
    config = config or DeduplicationConfig()
    adjuster = adjuster or HeuristicConfidenceAdjuster()
    processed = processed if processed is not None else ProcessedPairs()
    result = DetectionResult()

    forwarded = _forwarded_ids(store, records)
    for record_id, target in forwarded.items():
        result.report.rejected(record_id, f"Record already merged into {target!r}")
    live = [r for r in records if r.id not in forwarded]

    total = len(live)
    logger.info("duplicate_detection_started", records=total, workers=workers)

    indices = build_search_indices(live, phonetic=config.enable_phonetic_matching)
    executor = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None
    done = 0

    try:
        for start in range(0, total, config.batch_size):
            if cancel is not None and cancel.is_set():
                result.report.cancelled = True
                break
            chunk = live[start : start + config.batch_size]

            def run(record: BusinessRecord) -> _RecordOutcome:
                return _detect_for_record(record, indices, processed, config, adjuster, cancel)

            outcomes = list(executor.map(run, chunk)) if executor else [run(r) for r in chunk]

            for outcome in outcomes:
                if outcome.skipped:
                    result.report.cancelled = True
                    continue
                done += 1
                result.stats.pairs_processed += outcome.pairs
                if outcome.error is not None:
                    result.report.failed(outcome.record_id, outcome.error)
                    continue
                result.report.ok(outcome.record_id)
                for candidate in outcome.candidates:
                    _report_candidate(candidate, result, store, sink, settings)

            safe_emit(
                sink,
                Progress(
                    stage="deduplication",
                    processed=done,
                    total=total,
                    duplicates_found=result.stats.duplicates_found,
                ),
            )
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    if store is not None:
        try:
            record_statistics(store, result.stats)
        except Exception as exc:
            logger.warning("dedup_stats_write_failed", error=str(exc))

    logger.info(
        "duplicate_detection_complete",
        processed=done,
        total=total,
        pairs=result.stats.pairs_processed,
        duplicates_found=result.stats.duplicates_found,
        cancelled=result.report.cancelled,
    )
    return result


def _report_candidate(
    candidate: DuplicateCandidate,
    result: DetectionResult,
    store: KeyValueStore | None,
    sink: EventSink | None,
    settings: Settings | None,
) -> None:
    result.candidates.append(candidate)
    result.stats.duplicates_found += 1
    if candidate.suggested_action is MergeAction.MANUAL_REVIEW:
        result.stats.manual_reviews_pending += 1
    if store is not None:
        ttl = (settings or get_settings()).duplicate_candidate_ttl
        try:
            store.set(DUPLICATE_KEY.format(pair=candidate.pair_key), to_jsonable(candidate), ttl)
        except Exception as exc:
            logger.warning("duplicate_cache_failed", pair=candidate.pair_key, error=str(exc))
    safe_emit(sink, DuplicateFound(candidate))


# ---------------------------------------------------------------------------
# Cached candidates
# ---------------------------------------------------------------------------

def candidate_from_dict(data: dict[str, Any]) -> DuplicateCandidate:
    return DuplicateCandidate(
        business1=str(data["business1"]),
        business2=str(data["business2"]),
        similarity_score=float(data["similarity_score"]),
        matching_fields=tuple(
            MatchingField(
                field=f["field"],
                value1=f.get("value1"),
                value2=f.get("value2"),
                similarity=float(f["similarity"]),
                match_type=f["match_type"],
            )
            for f in data.get("matching_fields", [])
        ),
        confidence=float(data["confidence"]),
        suggested_action=MergeAction(data["suggested_action"]),
    )


def get_cached_candidate(
    store: KeyValueStore, business1: str, business2: str
) -> DuplicateCandidate | None:
    payload = store.get(DUPLICATE_KEY.format(pair=pair_key(business1, business2)))
    return None if payload is None else candidate_from_dict(payload)


# ---------------------------------------------------------------------------
# Auto-merge
# ---------------------------------------------------------------------------

def merge_candidates(
    store: KeyValueStore,
    candidates: Sequence[DuplicateCandidate],
    *,
    settings: Settings | None = None,
    sink: EventSink | None = None,
) -> BatchReport:
    """Merge every candidate whose suggested action is ``merge``.

    A failing merge is reported for its pair and the rest continue.
    """
    report = BatchReport()
    for candidate in candidates:
        if candidate.suggested_action is not MergeAction.MERGE:
            continue
        try:
            merge_duplicate(
                store,
                candidate.business1,
                candidate.business2,
                matching_fields=candidate.matching_fields,
                settings=settings,
                sink=sink,
            )
        except RecordNotFoundError as exc:
            logger.error("merge_failed", pair=candidate.pair_key, error=str(exc))
            report.failed(candidate.pair_key, str(exc))
            continue
        except Exception as exc:
            logger.error("merge_failed", pair=candidate.pair_key, exc_info=True)
            report.failed(candidate.pair_key, str(exc))
            continue
        report.ok(candidate.pair_key)
    logger.info("auto_merge_complete", **report.summary())
    return report
