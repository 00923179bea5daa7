"""Validated scoring criteria: component weights and priority lists."""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

import structlog

from supplierlens.config import Settings
from supplierlens.errors import WeightConfigurationError

logger = structlog.get_logger(__name__)

WEIGHT_TOLERANCE = 0.01

DEFAULT_WEIGHTS: dict[str, float] = {
    "revenue": 0.25,
    "procurement": 0.20,
    "partnership": 0.15,
    "data_quality": 0.10,
    "geographic": 0.10,
    "industry": 0.10,
    "indigenous": 0.05,
    "relationship": 0.05,
}

HIGH_PRIORITY_INDUSTRIES = (
    "construction",
    "professional services",
    "it services",
    "consulting",
    "engineering",
    "architecture",
    "environmental services",
    "security services",
    "facilities management",
    "transportation",
)
MEDIUM_PRIORITY_INDUSTRIES = (
    "manufacturing",
    "wholesale trade",
    "equipment rental",
    "training services",
    "marketing",
    "communications",
    "legal services",
    "financial services",
)
LOW_PRIORITY_INDUSTRIES = (
    "retail",
    "hospitality",
    "food services",
    "personal services",
    "entertainment",
)
EXCLUDED_INDUSTRIES = ("gambling", "adult entertainment", "tobacco", "cannabis")

PRIMARY_MARKETS = ("ON", "QC", "BC", "AB")
SECONDARY_MARKETS = ("MB", "SK", "NS", "NB")
NORTHERN_TERRITORIES = ("NT", "YT", "NU")
URBAN_CENTERS = (
    "Toronto",
    "Montreal",
    "Vancouver",
    "Calgary",
    "Edmonton",
    "Ottawa",
    "Winnipeg",
    "Quebec City",
    "Hamilton",
    "Halifax",
)



def normalize_weights(weights: Mapping[str, float]) -> dict[str, float]:
    """Fill in defaults, validate, and rescale weights to sum to 1.0.

    A set whose sum is off by more than the tolerance is rescaled
    proportionally and a warning is logged.

    Raises
    ------
    WeightConfigurationError
        For unknown component names, negative or non-finite weights, or a
        non-positive total.
    """
    unknown = set(weights) - set(DEFAULT_WEIGHTS)
    if unknown:
        msg = f"Unknown priority weight(s): {', '.join(sorted(unknown))}"
        raise WeightConfigurationError(msg)

    merged = {**DEFAULT_WEIGHTS, **{k: float(v) for k, v in weights.items()}}
    for name, value in merged.items():
        if not math.isfinite(value) or value < 0:
            msg = f"Priority weight {name!r} must be a non-negative number, got {value}"
            raise WeightConfigurationError(msg)

    total = sum(merged.values())
    if total <= 0:
        msg = "Priority weights must have a positive sum"
        raise WeightConfigurationError(msg)

    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        logger.warning("priority_weights_normalized", original_sum=round(total, 4))
        merged = {name: value / total for name, value in merged.items()}
    return merged


@dataclass(frozen=True)
class PrioritizationCriteria:
    """Weights and lookup lists used by every component scorer.

    Build once and pass by reference; weights are validated and
    normalised at construction.
    """

    weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    high_priority_industries: tuple[str, ...] = HIGH_PRIORITY_INDUSTRIES
    medium_priority_industries: tuple[str, ...] = MEDIUM_PRIORITY_INDUSTRIES
    low_priority_industries: tuple[str, ...] = LOW_PRIORITY_INDUSTRIES
    excluded_industries: tuple[str, ...] = EXCLUDED_INDUSTRIES
    primary_markets: tuple[str, ...] = PRIMARY_MARKETS
    secondary_markets: tuple[str, ...] = SECONDARY_MARKETS
    urban_centers: tuple[str, ...] = URBAN_CENTERS
    remote_bonus: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "weights", MappingProxyType(normalize_weights(self.weights)))

    @classmethod
    def from_settings(cls, settings: Settings) -> PrioritizationCriteria:
        return cls(weights=settings.priority_weights or DEFAULT_WEIGHTS)

    def weight(self, component: str) -> float:
        return self.weights[component]

    def updated(self, **changes) -> PrioritizationCriteria:
        """Return a copy with *changes* applied; a ``weights`` change is merged."""
        if "weights" in changes:
            changes["weights"] = {**self.weights, **changes["weights"]}
        return dataclasses.replace(self, **changes)
