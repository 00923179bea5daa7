"""Duplicate detection and canonical-record merging for business records."""

from __future__ import annotations

from supplierlens.entity_resolution.candidates import ProcessedPairs, find_candidates
from supplierlens.entity_resolution.canonical import (
    DeduplicationStats,
    get_canonical_record,
    get_statistics,
    load_record,
    merge_duplicate,
    resolve_canonical_id,
    save_record,
    save_records,
)
from supplierlens.entity_resolution.classifier import determine_merge_action
from supplierlens.entity_resolution.confidence import (
    DedupeConfidenceAdjuster,
    HeuristicConfidenceAdjuster,
    heuristic_confidence,
    train_confidence_model,
)
from supplierlens.entity_resolution.config import DeduplicationConfig, MatchingWeights
from supplierlens.entity_resolution.indexing import SearchIndices, build_search_indices
from supplierlens.entity_resolution.merge import (
    determine_primary_record,
    generate_merge_rules,
    merge_records,
    perform_merge,
    select_highest_quality,
)
from supplierlens.entity_resolution.resolver import (
    DetectionResult,
    find_duplicates,
    get_cached_candidate,
    merge_candidates,
    score_pair,
)
from supplierlens.entity_resolution.similarity import SimilarityResult, calculate_similarity
from supplierlens.entity_resolution.validation import (
    compute_resolution_metrics,
    generate_validation_report,
)

__all__ = [
    "DedupeConfidenceAdjuster",
    "DeduplicationConfig",
    "DeduplicationStats",
    "DetectionResult",
    "HeuristicConfidenceAdjuster",
    "MatchingWeights",
    "ProcessedPairs",
    "SearchIndices",
    "SimilarityResult",
    "build_search_indices",
    "calculate_similarity",
    "compute_resolution_metrics",
    "determine_merge_action",
    "determine_primary_record",
    "find_candidates",
    "find_duplicates",
    "generate_merge_rules",
    "generate_validation_report",
    "get_cached_candidate",
    "get_canonical_record",
    "get_statistics",
    "heuristic_confidence",
    "load_record",
    "merge_candidates",
    "merge_duplicate",
    "merge_records",
    "perform_merge",
    "resolve_canonical_id",
    "save_record",
    "save_records",
    "score_pair",
    "select_highest_quality",
    "train_confidence_model",
]
