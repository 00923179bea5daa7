"""Data-quality scoring for a single business record.

The overall score is a fixed convex combination of five sub-scores:

=====================  ======
completeness           0.30
accuracy               0.25
freshness              0.20
source reliability     0.15
verification level     0.10
=====================  ======
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

import structlog

from supplierlens.config import Settings, get_settings
from supplierlens.ingest import parse_datetime
from supplierlens.models import (
    BusinessRecord,
    DataQualityRecommendation,
    DataQualityScore,
    round_half_up,
    to_jsonable,
)
from supplierlens.quality.fields import (
    FIELD_IMPORTANCE,
    FieldAssessment,
    assess_fields,
    find_inconsistencies,
    format_checks,
    validity_score,
)
from supplierlens.store import QUALITY_SCORE_KEY, KeyValueStore

logger = structlog.get_logger(__name__)

QUALITY_WEIGHTS: dict[str, float] = {
    "completeness": 0.30,
    "accuracy": 0.25,
    "freshness": 0.20,
    "source_reliability": 0.15,
    "verification_level": 0.10,
}

CRITICAL_FIELD_WEIGHTS: dict[str, int] = {
    "name": 2,
    "business_number": 3,
    "phone": 2,
    "email": 2,
    "website": 1,
    "address.street": 2,
    "description": 1,
}

BONUS_WEIGHTS: dict[str, int] = {
    "verified": 5,
    "contacts": 3,
    "certifications": 2,
    "financial_info": 2,
    "procurement_readiness": 2,
}

# (max age in days, score); anything older scores STALE_SCORE
FRESHNESS_STEPS: tuple[tuple[int, int], ...] = ((30, 100), (90, 80), (180, 60), (365, 40))
STALE_SCORE = 20

RECOMMENDATION_THRESHOLD = 70
VALIDITY_THRESHOLD = 70
MAX_RECOMMENDATIONS = 10
_IMPACT_ORDER = {"high": 3, "medium": 2, "low": 1}

CONSISTENCY_SUGGESTIONS: dict[str, str] = {
    "Email and website domains do not match": "Confirm the business email uses the company domain",
    "Postal code does not match province": "Verify the postal code and province",
    "Conflicting industry classifications": "Review industry tags and keep the primary activity",
}


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------

def _critical_value(record: BusinessRecord, name: str) -> Any:
    if name == "address.street":
        return record.address.street if record.address is not None else None
    return getattr(record, name)


def find_missing_fields(record: BusinessRecord) -> list[str]:
    """Critical fields that are empty, in weight-table order."""
    return [name for name in CRITICAL_FIELD_WEIGHTS if not _critical_value(record, name)]


def completeness_score(record: BusinessRecord) -> int:
    missing = set(find_missing_fields(record))
    earned = sum(w for name, w in CRITICAL_FIELD_WEIGHTS.items() if name not in missing)
    earned += sum(w for name, w in BONUS_WEIGHTS.items() if getattr(record, name))
    total = sum(CRITICAL_FIELD_WEIGHTS.values()) + sum(BONUS_WEIGHTS.values())
    return round_half_up(earned / total * 100)


def accuracy_score(record: BusinessRecord) -> int:
    if record.verified:
        return 90
    details = record.verification_details
    if details is not None and details.confidence is not None:
        return round_half_up(min(max(details.confidence, 0.0), 1.0) * 100)
    return 50


def record_age_days(record: BusinessRecord, now: datetime) -> int | None:
    reference = record.last_seen
    if reference is None:
        return None
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    return math.ceil((now - reference).total_seconds() / 86400)


def freshness_score(record: BusinessRecord, now: datetime | None = None) -> int:
    """Step function of age, measured from enrichment time else discovery time."""
    age = record_age_days(record, now or datetime.now(timezone.utc))
    if age is None:
        return STALE_SCORE
    for max_days, score in FRESHNESS_STEPS:
        if age <= max_days:
            return score
    return STALE_SCORE


def source_reliability_score(record: BusinessRecord) -> int:
    reliability = record.source.reliability if record.source is not None else 0.5
    return round_half_up(min(max(reliability, 0.0), 1.0) * 100)


def verification_level_score(record: BusinessRecord) -> int:
    if record.verified:
        return 100
    if record.tax_debt_status is not None:
        return 80
    if record.verification_details is not None:
        return 60
    if record.business_number:
        return 40
    return 20


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

def _missing_field_recommendation(name: str) -> DataQualityRecommendation:
    weight = CRITICAL_FIELD_WEIGHTS[name]
    label = name.replace("address.", "").replace("_", " ")
    return DataQualityRecommendation(
        field=name,
        issue=f"Missing {label}",
        impact="high" if weight >= 2 else "medium",
        suggestion=f"Add {label} to improve completeness",
        estimated_improvement=float(weight * 5),
    )


def _field_recommendations(assessment: FieldAssessment) -> list[DataQualityRecommendation]:
    weight = FIELD_IMPORTANCE.get(assessment.field, 1)
    impact = "high" if weight >= 3 else "medium" if weight >= 2 else "low"
    improvement = (100 - assessment.quality) * weight / 10
    return [
        DataQualityRecommendation(
            field=assessment.field,
            issue=assessment.issues[i] if i < len(assessment.issues) else "Quality below threshold",
            impact=impact,
            suggestion=suggestion,
            estimated_improvement=improvement,
        )
        for i, suggestion in enumerate(assessment.suggestions)
    ]


def generate_recommendations(
    missing_fields: list[str],
    assessments: list[FieldAssessment],
    completeness: int,
    accuracy: int,
    freshness: int,
    inconsistencies: list[str] | None = None,
    validity: int | None = None,
) -> list[DataQualityRecommendation]:
    """Rank improvement suggestions by impact, then estimated gain; keep the top ten.

    *validity* is None when the record has no field with a format rule.
    """
    recommendations = [_missing_field_recommendation(name) for name in missing_fields]

    # Absent critical fields are already covered above.
    covered = {name.split(".")[0] for name in missing_fields}
    for assessment in assessments:
        if assessment.quality >= RECOMMENDATION_THRESHOLD:
            continue
        if assessment.quality == 0 and assessment.field in covered:
            continue
        recommendations.extend(_field_recommendations(assessment))

    for issue in inconsistencies or ():
        recommendations.append(
            DataQualityRecommendation(
                "consistency",
                issue,
                "medium",
                CONSISTENCY_SUGGESTIONS.get(issue, "Resolve conflicting field values"),
                5.0,
            )
        )

    if completeness < 70:
        recommendations.append(
            DataQualityRecommendation(
                "overall",
                "Low completeness score",
                "high",
                "Complete missing critical fields to improve data completeness",
                15.0,
            )
        )
    if accuracy < 70:
        recommendations.append(
            DataQualityRecommendation(
                "overall",
                "Low accuracy score",
                "high",
                "Verify business information through official sources",
                20.0,
            )
        )
    if freshness < 50:
        recommendations.append(
            DataQualityRecommendation(
                "overall",
                "Outdated information",
                "medium",
                "Update business information to ensure currency",
                10.0,
            )
        )
    if validity is not None and validity < VALIDITY_THRESHOLD:
        recommendations.append(
            DataQualityRecommendation(
                "overall",
                "Invalid field formats",
                "medium",
                "Correct fields that fail format validation",
                10.0,
            )
        )

    recommendations.sort(key=lambda r: (-_IMPACT_ORDER[r.impact], -r.estimated_improvement))
    return recommendations[:MAX_RECOMMENDATIONS]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def assess_data_quality(record: BusinessRecord, now: datetime | None = None) -> DataQualityScore:
    """Score one record's data quality.

    Parameters
    ----------
    record:
        The record to assess.  Missing optional fields lower the score but
        never raise.
    now:
        Reference time for freshness; defaults to the current UTC time.

    Returns
    -------
    DataQualityScore
        Integer sub-scores in [0, 100] and an overall score equal to their
        weighted sum, rounded half-up.
    """
    now = now or datetime.now(timezone.utc)

    sub_scores = {
        "completeness": completeness_score(record),
        "accuracy": accuracy_score(record),
        "freshness": freshness_score(record, now),
        "source_reliability": source_reliability_score(record),
        "verification_level": verification_level_score(record),
    }
    overall = round_half_up(sum(sub_scores[k] * w for k, w in QUALITY_WEIGHTS.items()))

    missing = find_missing_fields(record)
    recommendations = generate_recommendations(
        missing,
        assess_fields(record),
        sub_scores["completeness"],
        sub_scores["accuracy"],
        sub_scores["freshness"],
        inconsistencies=find_inconsistencies(record),
        validity=validity_score(record) if format_checks(record) else None,
    )

    logger.debug("data_quality_assessed", business_id=record.id, overall=overall, **sub_scores)
    return DataQualityScore(
        business_id=record.id,
        overall_score=overall,
        missing_fields=tuple(missing),
        recommendations=tuple(recommendations),
        last_assessed=now,
        **sub_scores,
    )


def quality_score_from_dict(data: dict[str, Any]) -> DataQualityScore:
    return DataQualityScore(
        business_id=str(data["business_id"]),
        overall_score=int(data["overall_score"]),
        completeness=int(data["completeness"]),
        accuracy=int(data["accuracy"]),
        freshness=int(data["freshness"]),
        source_reliability=int(data["source_reliability"]),
        verification_level=int(data["verification_level"]),
        missing_fields=tuple(data.get("missing_fields", [])),
        recommendations=tuple(
            DataQualityRecommendation(**r) for r in data.get("recommendations", [])
        ),
        last_assessed=parse_datetime(data.get("last_assessed")) or datetime.now(timezone.utc),
    )


def get_data_quality(
    store: KeyValueStore,
    record: BusinessRecord,
    *,
    settings: Settings | None = None,
    refresh: bool = False,
) -> DataQualityScore:
    """Return the cached assessment for *record*, computing and caching it if absent."""
    key = QUALITY_SCORE_KEY.format(id=record.id)
    if not refresh:
        cached = store.get(key)
        if cached is not None:
            return quality_score_from_dict(cached)

    score = assess_data_quality(record)
    ttl = (settings or get_settings()).quality_score_ttl
    store.set(key, to_jsonable(score), ttl)
    return score
