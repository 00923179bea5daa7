"""Priority scoring: weighted components, tiering, caching, and batch ranking."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from supplierlens.batch import BatchReport
from supplierlens.config import Settings, get_settings
from supplierlens.events import EventSink, Progress, ScoreCalculated, safe_emit
from supplierlens.ingest import parse_datetime
from supplierlens.models import (
    BusinessPriorityScore,
    BusinessRecord,
    PriorityTier,
    round_half_up,
    tier_for_score,
    to_jsonable,
)
from supplierlens.prioritization.components import (
    data_quality_component,
    geographic_score,
    indigenous_score,
    industry_score,
    partnership_score,
    procurement_score,
    relationship_score,
    revenue_score,
)
from supplierlens.prioritization.context import EmptyScoringContext, ScoringContext
from supplierlens.prioritization.criteria import PrioritizationCriteria
from supplierlens.prioritization.recommendations import (
    RecommendationRefiner,
    generate_recommendations,
)
from supplierlens.store import PRIORITY_SCORE_KEY, KeyValueStore

logger = structlog.get_logger(__name__)

PROGRESS_EVERY = 50


@dataclass
class BatchScoringResult:
    scores: list[BusinessPriorityScore] = field(default_factory=list)
    report: BatchReport = field(default_factory=BatchReport)


def calculate_components(
    record: BusinessRecord,
    criteria: PrioritizationCriteria,
    context: ScoringContext,
    now: datetime | None = None,
) -> dict[str, float]:
    return {
        "revenue": revenue_score(record),
        "procurement": procurement_score(record),
        "partnership": partnership_score(record, criteria, context),
        "data_quality": data_quality_component(record, now),
        "geographic": geographic_score(record, criteria),
        "industry": industry_score(record, criteria),
        "indigenous": indigenous_score(record),
        "relationship": relationship_score(context.relationships(record.id)),
    }


def calculate_priority_score(
    record: BusinessRecord,
    criteria: PrioritizationCriteria | None = None,
    *,
    context: ScoringContext | None = None,
    refiner: RecommendationRefiner | None = None,
    store: KeyValueStore | None = None,
    settings: Settings | None = None,
    sink: EventSink | None = None,
    now: datetime | None = None,
) -> BusinessPriorityScore:
    """Score one record and, when *store* is given, replace its cached score.

    The tier is taken from the unrounded weighted sum, so 89.9 is gold
    even though the reported ``overall_score`` is 90.
    """
    criteria = criteria or PrioritizationCriteria()
    context = context or EmptyScoringContext()
    now = now or datetime.now(timezone.utc)

    components = calculate_components(record, criteria, context, now)
    overall = sum(components[name] * weight for name, weight in criteria.weights.items())
    tier = tier_for_score(overall)

    score = BusinessPriorityScore(
        business_id=record.id,
        overall_score=round_half_up(overall),
        components=components,
        tier=tier,
        recommended_actions=tuple(generate_recommendations(record, components, tier, refiner)),
        calculated_at=now,
    )

    if store is not None:
        ttl = (settings or get_settings()).priority_score_ttl
        store.set(PRIORITY_SCORE_KEY.format(id=record.id), to_jsonable(score), ttl)

    logger.debug(
        "priority_score_calculated",
        business_id=record.id,
        score=round(overall, 2),
        tier=tier.value,
    )
    safe_emit(sink, ScoreCalculated(score))
    return score


def calculate_batch_priority_scores(
    records: Sequence[BusinessRecord],
    criteria: PrioritizationCriteria | None = None,
    *,
    context: ScoringContext | None = None,
    refiner: RecommendationRefiner | None = None,
    store: KeyValueStore | None = None,
    settings: Settings | None = None,
    sink: EventSink | None = None,
) -> BatchScoringResult:
    """Score every record, highest overall score first.

    A record that fails to score is reported and skipped; the rest of the
    batch continues.
    """
    criteria = criteria or PrioritizationCriteria()
    result = BatchScoringResult()
    total = len(records)
    logger.info("priority_scoring_started", records=total)

    for index, record in enumerate(records, start=1):
        try:
            score = calculate_priority_score(
                record,
                criteria,
                context=context,
                refiner=refiner,
                store=store,
                settings=settings,
                sink=sink,
            )
        except Exception as exc:
            logger.warning("priority_scoring_record_failed", business_id=record.id, exc_info=True)
            result.report.failed(record.id, str(exc) or type(exc).__name__)
        else:
            result.scores.append(score)
            result.report.ok(record.id)

        if index % PROGRESS_EVERY == 0 or index == total:
            safe_emit(sink, Progress(stage="prioritization", processed=index, total=total))

    result.scores.sort(key=lambda s: s.overall_score, reverse=True)
    logger.info("priority_scoring_complete", **result.report.summary())
    return result


# ---------------------------------------------------------------------------
# Cached scores
# ---------------------------------------------------------------------------

def priority_score_from_dict(data: dict[str, Any]) -> BusinessPriorityScore:
    return BusinessPriorityScore(
        business_id=str(data["business_id"]),
        overall_score=int(data["overall_score"]),
        components={k: float(v) for k, v in data.get("components", {}).items()},
        tier=PriorityTier(data["tier"]),
        recommended_actions=tuple(data.get("recommended_actions", [])),
        calculated_at=parse_datetime(data.get("calculated_at")) or datetime.now(timezone.utc),
    )


def get_cached_score(store: KeyValueStore, business_id: str) -> BusinessPriorityScore | None:
    payload = store.get(PRIORITY_SCORE_KEY.format(id=business_id))
    return None if payload is None else priority_score_from_dict(payload)


def _cached_scores(store: KeyValueStore) -> list[BusinessPriorityScore]:
    scores = []
    for key in store.keys(PRIORITY_SCORE_KEY.format(id="")):
        payload = store.get(key)
        if payload is not None:
            scores.append(priority_score_from_dict(payload))
    return scores


def get_top_businesses_by_tier(
    store: KeyValueStore, tier: PriorityTier, limit: int = 100
) -> list[str]:
    """Ids of cached scores in *tier*, best first."""
    in_tier = [s for s in _cached_scores(store) if s.tier is tier]
    in_tier.sort(key=lambda s: s.overall_score, reverse=True)
    return [s.business_id for s in in_tier[:limit]]


def get_scoring_statistics(store: KeyValueStore) -> dict[str, Any]:
    """Count, mean score, and tier distribution over cached scores."""
    scores = _cached_scores(store)
    distribution = {tier.value: 0 for tier in PriorityTier}
    for s in scores:
        distribution[s.tier.value] += 1
    average = sum(s.overall_score for s in scores) / len(scores) if scores else 0.0
    return {
        "total_scored": len(scores),
        "average_score": round(average, 2),
        "tier_distribution": distribution,
    }


def update_criteria(
    store: KeyValueStore | None,
    criteria: PrioritizationCriteria,
    **changes,
) -> PrioritizationCriteria:
    """Return re-validated criteria and drop every cached score.

    Raises
    ------
    WeightConfigurationError
        If the updated weights are invalid; the cache is left intact.
    """
    updated = criteria.updated(**changes)
    if store is not None:
        keys = store.keys(PRIORITY_SCORE_KEY.format(id=""))
        if keys:
            store.delete(*keys)
        logger.info("priority_criteria_updated", invalidated=len(keys))
    return updated
