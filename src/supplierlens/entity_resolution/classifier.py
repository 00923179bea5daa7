"""Map a scored pair onto a merge action."""

from __future__ import annotations

from collections.abc import Sequence

from supplierlens.entity_resolution.config import DeduplicationConfig
from supplierlens.models import MatchingField, MergeAction

STRONG_IDENTIFIERS = ("business_number", "phone", "email")


def conflicting_identifiers(fields: Sequence[MatchingField]) -> list[str]:
    """Strong identifiers present on both records that do not match exactly."""
    return [f.field for f in fields if f.field in STRONG_IDENTIFIERS and f.similarity < 1.0]


def has_exact_business_number(fields: Sequence[MatchingField]) -> bool:
    return any(f.field == "business_number" and f.similarity >= 1.0 for f in fields)


def determine_merge_action(
    score: float,
    fields: Sequence[MatchingField],
    config: DeduplicationConfig | None = None,
) -> MergeAction:
    """Deterministic action for a pair.

    An identical business number is decisive: the pair merges unless a
    phone or email present on both sides disagrees, which sends it to
    manual review.  Otherwise:

    1. score >= auto-merge threshold -> ``merge``
    2. score below the similarity threshold -> ``keep_both``
    3. a strong identifier conflicts -> ``manual_review``
    4. anything else -> ``mark_duplicate``
    """
    config = config or DeduplicationConfig()
    conflicts = conflicting_identifiers(fields)

    if has_exact_business_number(fields):
        return MergeAction.MANUAL_REVIEW if conflicts else MergeAction.MERGE
    if score >= config.auto_merge_threshold:
        return MergeAction.MERGE
    if score < config.similarity_threshold:
        return MergeAction.KEEP_BOTH
    if conflicts:
        return MergeAction.MANUAL_REVIEW
    return MergeAction.MARK_DUPLICATE
