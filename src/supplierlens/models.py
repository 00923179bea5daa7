"""Domain records shared by the resolution, quality, and prioritization layers."""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class BusinessType(str, Enum):
    INDIGENOUS_OWNED = "indigenous_owned"
    INDIGENOUS_PARTNERSHIP = "indigenous_partnership"
    INDIGENOUS_AFFILIATED = "indigenous_affiliated"
    BILL_C5_READY = "bill_c5_ready"
    CANADIAN_GENERAL = "canadian_general"
    POTENTIAL_PARTNER = "potential_partner"
    UNKNOWN = "unknown"


class CertificationType(str, Enum):
    CCAB = "ccab"
    PAR = "par"
    ISO = "iso"
    INDIGENOUS_BUSINESS = "indigenous_business"
    SUPPLIER_DIVERSITY = "supplier_diversity"
    INDUSTRY_SPECIFIC = "industry_specific"


INDIGENOUS_CERTIFICATIONS = frozenset(
    {CertificationType.CCAB, CertificationType.PAR, CertificationType.INDIGENOUS_BUSINESS}
)


# ---------------------------------------------------------------------------
# Business record and its parts
# ---------------------------------------------------------------------------

@dataclass
class Address:
    street: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None
    country: str = "CA"
    is_on_reserve: bool = False
    territory_name: str | None = None

    def format(self) -> str:
        return ", ".join(p for p in (self.street, self.city, self.province, self.postal_code) if p)


@dataclass
class FinancialInfo:
    estimated_revenue: float | None = None
    employee_count: int | None = None
    year_established: int | None = None
    has_government_contracts: bool = False


@dataclass
class VerificationDetails:
    verified: bool = False
    confidence: float | None = None
    province: str | None = None
    federal_status: str | None = None
    last_verified: datetime | None = None
    issues: list[str] = field(default_factory=list)


@dataclass
class TaxDebtStatus:
    has_debt: bool = False
    total_debt: float | None = None
    procurement_eligible: bool = True
    last_checked: datetime | None = None


@dataclass
class Certification:
    type: CertificationType
    issuer: str = ""
    number: str | None = None
    status: str = "active"  # "active" | "expired" | "pending"


@dataclass
class Contact:
    name: str
    title: str | None = None
    email: str | None = None
    phone: str | None = None
    is_primary: bool = False


@dataclass
class IndigenousDetails:
    ownership_percentage: float | None = None
    nation: str | None = None
    community: str | None = None
    indigenous_employee_percentage: float | None = None
    community_benefit_agreements: bool = False
    traditional_territory_work: bool = False


@dataclass
class ProcurementReadiness:
    score: float | None = None
    has_insurance: bool = False
    has_bonding: bool = False
    has_health_safety: bool = False
    past_performance: float | None = None  # 0-5 rating
    capabilities: list[str] = field(default_factory=list)
    naics_codes: list[str] = field(default_factory=list)


@dataclass
class SourceDescriptor:
    type: str = "web_crawl"
    name: str = ""
    url: str | None = None
    reliability: float = 0.5  # 0-1


@dataclass
class BusinessRecord:
    """A discovered or enriched organisation.

    ``id`` is immutable.  A record merged into another keeps existing in the
    store behind a forwarding pointer and is never re-emitted on its own.
    """

    id: str
    name: str = ""
    type: BusinessType = BusinessType.UNKNOWN
    legal_name: str | None = None
    business_number: str | None = None
    description: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    address: Address | None = None
    industry: list[str] = field(default_factory=list)
    financial_info: FinancialInfo | None = None
    verified: bool = False
    verification_details: VerificationDetails | None = None
    tax_debt_status: TaxDebtStatus | None = None
    certifications: list[Certification] = field(default_factory=list)
    contacts: list[Contact] = field(default_factory=list)
    indigenous_details: IndigenousDetails | None = None
    procurement_readiness: ProcurementReadiness | None = None
    source: SourceDescriptor | None = None
    discovered_at: datetime | None = None
    enriched_at: datetime | None = None
    # Merge provenance, set only on canonical records produced by a merge
    merged_from: list[str] = field(default_factory=list)
    merged_at: datetime | None = None
    merge_strategy: MergeStrategy | None = None

    @property
    def is_enriched(self) -> bool:
        return self.enriched_at is not None

    @property
    def last_seen(self) -> datetime | None:
        return self.enriched_at or self.discovered_at


# Fields the merge engine never rewrites.
SYSTEM_FIELDS = frozenset(
    {"id", "discovered_at", "enriched_at", "merged_from", "merged_at", "merge_strategy"}
)


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------

class MergeAction(str, Enum):
    MERGE = "merge"
    MARK_DUPLICATE = "mark_duplicate"
    MANUAL_REVIEW = "manual_review"
    KEEP_BOTH = "keep_both"


@dataclass(frozen=True)
class MatchingField:
    """Outcome of comparing one field between two records."""

    field: str
    value1: Any
    value2: Any
    similarity: float
    match_type: str  # "exact" | "fuzzy" | "partial"


@dataclass(frozen=True)
class DuplicateCandidate:
    business1: str
    business2: str
    similarity_score: float
    matching_fields: tuple[MatchingField, ...]
    confidence: float
    suggested_action: MergeAction

    @property
    def pair_key(self) -> str:
        return pair_key(self.business1, self.business2)

    def get_field(self, name: str) -> MatchingField | None:
        for f in self.matching_fields:
            if f.field == name:
                return f
        return None


@dataclass(frozen=True)
class FieldMergeRule:
    field: str
    source: str  # "primary" | "secondary" | "newest" | "highest_quality"
    conflict_resolution: str  # "primary_wins" | "secondary_wins" | "combine" | "manual"


@dataclass(frozen=True)
class MergeStrategy:
    primary_record: str
    fields_to_merge: tuple[FieldMergeRule, ...]
    preserve_history: bool = True
    notify_affected_systems: bool = True


def pair_key(id1: str, id2: str) -> str:
    """Order-independent key for a record pair."""
    return ":".join(sorted((id1, id2)))


# ---------------------------------------------------------------------------
# Data quality and prioritization
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DataQualityRecommendation:
    field: str
    issue: str
    impact: str  # "high" | "medium" | "low"
    suggestion: str
    estimated_improvement: float


@dataclass(frozen=True)
class DataQualityScore:
    business_id: str
    overall_score: int
    completeness: int
    accuracy: int
    freshness: int
    source_reliability: int
    verification_level: int
    missing_fields: tuple[str, ...]
    recommendations: tuple[DataQualityRecommendation, ...]
    last_assessed: datetime


class PriorityTier(str, Enum):
    PLATINUM = "platinum"
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"
    STANDARD = "standard"

    @property
    def threshold(self) -> float:
        return TIER_THRESHOLDS[self]

    @property
    def rank(self) -> int:
        """Ordinal where STANDARD is 0 and PLATINUM is 4."""
        return len(TIER_THRESHOLDS) - 1 - list(TIER_THRESHOLDS).index(self)


# Ordered from the highest tier down; the first threshold met wins.
TIER_THRESHOLDS: dict[PriorityTier, float] = {
    PriorityTier.PLATINUM: 90.0,
    PriorityTier.GOLD: 75.0,
    PriorityTier.SILVER: 60.0,
    PriorityTier.BRONZE: 40.0,
    PriorityTier.STANDARD: float("-inf"),
}


def tier_for_score(score: float) -> PriorityTier:
    """Map an overall score to its tier using fixed, non-overlapping thresholds."""
    for tier, threshold in TIER_THRESHOLDS.items():
        if score >= threshold:
            return tier
    return PriorityTier.STANDARD


@dataclass(frozen=True)
class BusinessPriorityScore:
    business_id: str
    overall_score: int
    components: dict[str, float]
    tier: PriorityTier
    recommended_actions: tuple[str, ...]
    calculated_at: datetime


class RelationshipType(str, Enum):
    PARENT_SUBSIDIARY = "parent_subsidiary"
    SUPPLIER = "supplier"
    CUSTOMER = "customer"
    PARTNER = "partner"
    COMPETITOR = "competitor"
    INVESTOR = "investor"
    FRANCHISEE = "franchisee"


@dataclass(frozen=True)
class BusinessRelationship:
    business1: str
    business2: str
    relationship_type: RelationshipType
    strength: float  # 0-1


# ---------------------------------------------------------------------------
# JSON conversion
# ---------------------------------------------------------------------------

def to_jsonable(value: Any) -> Any:
    """Convert dataclasses, enums, and datetimes into JSON-serialisable data."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return value


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (``round`` uses banker's rounding)."""
    return int(math.floor(value + 0.5))
