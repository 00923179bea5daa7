"""Validated deduplication configuration, built once and passed by reference."""

from __future__ import annotations

from dataclasses import dataclass, field

from supplierlens.config import Settings
from supplierlens.errors import ConfigurationError


@dataclass(frozen=True)
class MatchingWeights:
    """Per-field weights of the aggregate similarity.

    Absent fields drop out and the mean is renormalised over the fields
    present on both records, so these need not sum to 1.0.
    """

    business_number: float = 0.30
    name: float = 0.25
    phone: float = 0.15
    email: float = 0.10
    website: float = 0.10
    address: float = 0.05
    industry: float = 0.05

    def __post_init__(self) -> None:
        for name, value in self.as_dict().items():
            if value < 0:
                msg = f"Matching weight for {name!r} must be non-negative, got {value}"
                raise ConfigurationError(msg)

    def as_dict(self) -> dict[str, float]:
        return {
            "business_number": self.business_number,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "website": self.website,
            "address": self.address,
            "industry": self.industry,
        }


@dataclass(frozen=True)
class DeduplicationConfig:
    similarity_threshold: float = 0.7
    auto_merge_threshold: float = 0.9
    enable_phonetic_matching: bool = True
    enable_address_matching: bool = True
    batch_size: int = 100
    weights: MatchingWeights = field(default_factory=MatchingWeights)

    def __post_init__(self) -> None:
        for name in ("similarity_threshold", "auto_merge_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                msg = f"{name} must be within [0, 1], got {value}"
                raise ConfigurationError(msg)
        if self.auto_merge_threshold < self.similarity_threshold:
            msg = (
                f"auto_merge_threshold ({self.auto_merge_threshold}) must not be below "
                f"similarity_threshold ({self.similarity_threshold})"
            )
            raise ConfigurationError(msg)
        if self.batch_size < 1:
            msg = f"batch_size must be positive, got {self.batch_size}"
            raise ConfigurationError(msg)

    @classmethod
    def from_settings(cls, settings: Settings) -> DeduplicationConfig:
        return cls(
            similarity_threshold=settings.similarity_threshold,
            auto_merge_threshold=settings.auto_merge_threshold,
            enable_phonetic_matching=settings.enable_phonetic_matching,
            enable_address_matching=settings.enable_address_matching,
            batch_size=settings.batch_size,
        )
