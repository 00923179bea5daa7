"""Primary-record choice, field merge rules, and merge execution.

Everything here is pure: records in, canonical record out.  Persisting
the result and forwarding the secondary id is done by
:mod:`supplierlens.entity_resolution.canonical`.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import structlog

from supplierlens.models import (
    SYSTEM_FIELDS,
    BusinessRecord,
    BusinessType,
    FieldMergeRule,
    MatchingField,
    MergeStrategy,
    to_jsonable,
)

logger = structlog.get_logger(__name__)

# Margin by which one record's preference score must lead to win outright.
PRIMARY_SCORE_MARGIN = 2

# A compared field this similar keeps the primary's value.
SIMILAR_FIELD_THRESHOLD = 0.9

MERGEABLE_FIELDS: tuple[str, ...] = tuple(
    f.name for f in dataclasses.fields(BusinessRecord) if f.name not in SYSTEM_FIELDS
)


# ---------------------------------------------------------------------------
# Primary record selection
# ---------------------------------------------------------------------------

def record_completeness(record: BusinessRecord) -> int:
    """Points for populated identity fields; richer records score higher."""
    score = 0
    if record.name:
        score += 1
    if record.business_number:
        score += 2
    if record.phone:
        score += 1
    if record.email:
        score += 1
    if record.website:
        score += 1
    if record.address is not None and record.address.street:
        score += 1
    if record.description:
        score += 1
    if record.contacts:
        score += 2
    if record.certifications:
        score += 2
    return score


def preference_score(record: BusinessRecord) -> int:
    score = record_completeness(record)
    if record.verified:
        score += 10
    if record.is_enriched:
        score += 5
    return score


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _recency_key(record: BusinessRecord) -> tuple[bool, datetime | None]:
    return (record.discovered_at is not None, _as_utc(record.discovered_at))


def determine_primary_record(
    record1: BusinessRecord,
    record2: BusinessRecord,
) -> tuple[BusinessRecord, BusinessRecord]:
    """Return ``(primary, secondary)``.

    The record with the higher preference score wins when it leads by at
    least two points; otherwise the more recently discovered record wins.
    Equal discovery times fall back to the lexically smaller id so the
    choice never depends on argument order.
    """
    score1, score2 = preference_score(record1), preference_score(record2)
    if abs(score1 - score2) >= PRIMARY_SCORE_MARGIN:
        return (record1, record2) if score1 > score2 else (record2, record1)

    recency1, recency2 = _recency_key(record1), _recency_key(record2)
    if recency1 != recency2:
        if not recency1[0] or not recency2[0]:
            return (record1, record2) if recency1[0] else (record2, record1)
        return (record1, record2) if recency1[1] > recency2[1] else (record2, record1)

    return (record1, record2) if record1.id <= record2.id else (record2, record1)


# ---------------------------------------------------------------------------
# Rule generation
# ---------------------------------------------------------------------------

def has_value(value: Any) -> bool:
    """Whether a field carries information worth keeping."""
    if value is None or value is False:
        return False
    if isinstance(value, BusinessType):
        return value is not BusinessType.UNKNOWN
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) > 0
    return True


def _populated_count(value: Any) -> int:
    return sum(1 for f in dataclasses.fields(value) if has_value(getattr(value, f.name)))


def select_highest_quality(value1: Any, value2: Any) -> Any:
    """Pick the richer of two conflicting values.

    Longer non-empty strings win; structured values with more populated
    attributes win; otherwise the first (primary) value is kept.
    """
    if isinstance(value1, str) and isinstance(value2, str):
        return value2 if len(value2.strip()) > len(value1.strip()) else value1
    if dataclasses.is_dataclass(value1) and dataclasses.is_dataclass(value2):
        return value2 if _populated_count(value2) > _populated_count(value1) else value1
    return value1 if has_value(value1) else value2


def _rule_for_field(
    name: str,
    primary_value: Any,
    secondary_value: Any,
    matching: MatchingField | None,
) -> FieldMergeRule | None:
    primary_has, secondary_has = has_value(primary_value), has_value(secondary_value)
    if not primary_has and not secondary_has:
        return None

    if to_jsonable(primary_value) == to_jsonable(secondary_value):
        return FieldMergeRule(name, "primary", "primary_wins")
    if primary_has and not secondary_has:
        return FieldMergeRule(name, "primary", "primary_wins")
    if secondary_has and not primary_has:
        return FieldMergeRule(name, "secondary", "secondary_wins")
    if isinstance(primary_value, list) and isinstance(secondary_value, list):
        source = "primary" if len(primary_value) >= len(secondary_value) else "secondary"
        return FieldMergeRule(name, source, "combine")
    if matching is not None and matching.similarity > SIMILAR_FIELD_THRESHOLD:
        return FieldMergeRule(name, "primary", "primary_wins")
    return FieldMergeRule(name, "highest_quality", "manual")


def generate_merge_rules(
    primary: BusinessRecord,
    secondary: BusinessRecord,
    matching_fields: Sequence[MatchingField] = (),
) -> MergeStrategy:
    """Build the field-by-field strategy for merging *secondary* into *primary*."""
    by_name = {f.field: f for f in matching_fields}
    rules = []
    for name in MERGEABLE_FIELDS:
        rule = _rule_for_field(
            name, getattr(primary, name), getattr(secondary, name), by_name.get(name)
        )
        if rule is not None:
            rules.append(rule)
    return MergeStrategy(primary_record=primary.id, fields_to_merge=tuple(rules))


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

def combine_values(first: list, second: list) -> list:
    """Order-preserving union without duplicates."""
    combined: list = []
    for item in [*first, *second]:
        if item not in combined:
            combined.append(item)
    return combined


def _newest(primary: BusinessRecord, secondary: BusinessRecord) -> BusinessRecord:
    primary_seen, secondary_seen = _as_utc(primary.last_seen), _as_utc(secondary.last_seen)
    if secondary_seen is None:
        return primary
    if primary_seen is None or secondary_seen > primary_seen:
        return secondary
    return primary


def resolve_field_value(
    rule: FieldMergeRule,
    primary: BusinessRecord,
    secondary: BusinessRecord,
) -> Any:
    primary_value = getattr(primary, rule.field)
    secondary_value = getattr(secondary, rule.field)

    if rule.conflict_resolution == "combine" and isinstance(primary_value, list):
        return combine_values(primary_value, list(secondary_value or []))
    if rule.source == "secondary":
        return secondary_value
    if rule.source == "newest":
        return getattr(_newest(primary, secondary), rule.field)
    if rule.source == "highest_quality":
        return select_highest_quality(primary_value, secondary_value)
    return primary_value


def perform_merge(
    primary: BusinessRecord,
    secondary: BusinessRecord,
    strategy: MergeStrategy,
    *,
    merged_at: datetime | None = None,
) -> BusinessRecord:
    """Apply *strategy* and return the canonical record.

    The result keeps the primary's id and carries both source ids, the
    merge time, and the strategy so the decision can be audited or undone.
    Rules naming unknown or system fields are ignored.
    """
    values: dict[str, Any] = {}
    for rule in strategy.fields_to_merge:
        if rule.field not in MERGEABLE_FIELDS:
            logger.warning("merge_rule_ignored", field=rule.field, primary_id=primary.id)
            continue
        values[rule.field] = resolve_field_value(rule, primary, secondary)

    return dataclasses.replace(
        primary,
        **values,
        merged_from=[primary.id, secondary.id],
        merged_at=merged_at or datetime.now(timezone.utc),
        merge_strategy=strategy,
    )


def merge_records(
    record1: BusinessRecord,
    record2: BusinessRecord,
    matching_fields: Sequence[MatchingField] = (),
    *,
    merged_at: datetime | None = None,
) -> tuple[BusinessRecord, BusinessRecord, MergeStrategy]:
    """Choose the primary, derive rules, and merge.

    Returns
    -------
    tuple
        ``(canonical, secondary, strategy)``
    """
    primary, secondary = determine_primary_record(record1, record2)
    strategy = generate_merge_rules(primary, secondary, matching_fields)
    canonical = perform_merge(primary, secondary, strategy, merged_at=merged_at)
    return canonical, secondary, strategy
