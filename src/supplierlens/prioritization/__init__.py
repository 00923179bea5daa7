"""Priority scoring and tiering of canonical business records."""

from __future__ import annotations

from supplierlens.prioritization.context import (
    EmptyScoringContext,
    ScoringContext,
    StoreScoringContext,
    save_relationship,
    set_nearby_count,
)
from supplierlens.prioritization.criteria import (
    DEFAULT_WEIGHTS,
    PrioritizationCriteria,
    normalize_weights,
)
from supplierlens.prioritization.engine import (
    BatchScoringResult,
    calculate_batch_priority_scores,
    calculate_priority_score,
    get_cached_score,
    get_scoring_statistics,
    get_top_businesses_by_tier,
    update_criteria,
)
from supplierlens.prioritization.recommendations import (
    HttpRecommendationRefiner,
    deterministic_recommendations,
    generate_recommendations,
)

__all__ = [
    "DEFAULT_WEIGHTS",
    "BatchScoringResult",
    "EmptyScoringContext",
    "HttpRecommendationRefiner",
    "PrioritizationCriteria",
    "ScoringContext",
    "StoreScoringContext",
    "calculate_batch_priority_scores",
    "calculate_priority_score",
    "deterministic_recommendations",
    "generate_recommendations",
    "get_cached_score",
    "get_scoring_statistics",
    "get_top_businesses_by_tier",
    "normalize_weights",
    "save_relationship",
    "set_nearby_count",
    "update_criteria",
]
