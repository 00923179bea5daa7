"""Data-quality assessment of business records."""

from __future__ import annotations

from supplierlens.quality.assessor import (
    QUALITY_WEIGHTS,
    assess_data_quality,
    completeness_score,
    find_missing_fields,
    freshness_score,
    get_data_quality,
)
from supplierlens.quality.fields import FieldAssessment, assess_field, assess_fields

__all__ = [
    "QUALITY_WEIGHTS",
    "FieldAssessment",
    "assess_data_quality",
    "assess_field",
    "assess_fields",
    "completeness_score",
    "find_missing_fields",
    "freshness_score",
    "get_data_quality",
]
