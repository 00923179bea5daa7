"""The eight component scorers, each returning a value in [0, 100]."""

from __future__ import annotations

from datetime import datetime

from supplierlens.models import (
    INDIGENOUS_CERTIFICATIONS,
    BusinessRecord,
    BusinessRelationship,
    BusinessType,
    RelationshipType,
)
from supplierlens.normalize import normalize_string, province_code
from supplierlens.prioritization.context import ScoringContext
from supplierlens.prioritization.criteria import (
    NORTHERN_TERRITORIES,
    PrioritizationCriteria,
)
from supplierlens.quality.assessor import assess_data_quality

# (minimum revenue, points), highest first
REVENUE_STEPS: tuple[tuple[float, int], ...] = (
    (50_000_000, 70),
    (25_000_000, 60),
    (10_000_000, 50),
    (5_000_000, 40),
    (1_000_000, 30),
    (500_000, 20),
    (100_000, 10),
)
EMPLOYEE_STEPS: tuple[tuple[int, int], ...] = ((500, 20), (100, 15), (50, 10), (10, 5))

PARTNERSHIP_TYPE_BONUS = {
    BusinessType.INDIGENOUS_OWNED: 20,
    BusinessType.INDIGENOUS_PARTNERSHIP: 15,
    BusinessType.INDIGENOUS_AFFILIATED: 10,
    BusinessType.POTENTIAL_PARTNER: 25,
}
INDIGENOUS_TYPE_BASE = {
    BusinessType.INDIGENOUS_OWNED: 80,
    BusinessType.INDIGENOUS_PARTNERSHIP: 60,
    BusinessType.INDIGENOUS_AFFILIATED: 40,
}
RELATIONSHIP_MULTIPLIERS = {
    RelationshipType.CUSTOMER: 15,
    RelationshipType.SUPPLIER: 10,
    RelationshipType.PARTNER: 20,
    RelationshipType.PARENT_SUBSIDIARY: 5,
    RelationshipType.INVESTOR: 10,
    RelationshipType.FRANCHISEE: 5,
    RelationshipType.COMPETITOR: -5,
}
NETWORK_STEPS: tuple[tuple[int, int], ...] = ((10, 15), (5, 10), (3, 5))


def _step(value: float, steps, default: int = 0) -> int:
    for threshold, points in steps:
        if value >= threshold:
            return points
    return default


def _clamp(score: float) -> float:
    return min(max(score, 0.0), 100.0)


# ---------------------------------------------------------------------------
# Scorers
# ---------------------------------------------------------------------------

def revenue_score(record: BusinessRecord) -> float:
    """Revenue step (5-70) + employee bonus (0-20) + government contracts (10).

    Records without any financial snapshot score a flat 20.
    """
    info = record.financial_info
    if info is None:
        return 20.0
    score = _step(info.estimated_revenue or 0, REVENUE_STEPS, default=5)
    score += _step(info.employee_count or 0, EMPLOYEE_STEPS)
    if info.has_government_contracts:
        score += 10
    return _clamp(score)


def procurement_score(record: BusinessRecord) -> float:
    readiness = record.procurement_readiness
    if readiness is None:
        return 10.0

    score = readiness.score if readiness.score is not None else 10.0
    score += 10 * sum((readiness.has_insurance, readiness.has_bonding, readiness.has_health_safety))
    if readiness.past_performance is not None and readiness.past_performance >= 4:
        score += 15
    score += _step(len(readiness.capabilities), ((10, 10), (5, 5)))
    active = sum(1 for c in record.certifications if c.status == "active")
    score += min(active * 5, 20)
    if readiness.naics_codes:
        score += 5
    return _clamp(score)


def industry_score(record: BusinessRecord, criteria: PrioritizationCriteria) -> float:
    """Best tag score: high 90, medium 60, low 30, excluded 0, other 50.

    More than three non-excluded tags adds 10.  No tags scores a flat 30.
    """
    tags = [t for t in (normalize_string(tag) for tag in record.industry) if t]
    if not tags:
        return 30.0

    def matches(tag: str, names: tuple[str, ...]) -> bool:
        return any(normalize_string(name) in tag for name in names)

    best = 0
    eligible = 0
    for tag in tags:
        if matches(tag, criteria.excluded_industries):
            continue
        eligible += 1
        if matches(tag, criteria.high_priority_industries):
            best = max(best, 90)
        elif matches(tag, criteria.medium_priority_industries):
            best = max(best, 60)
        elif matches(tag, criteria.low_priority_industries):
            best = max(best, 30)
        else:
            best = max(best, 50)

    score = best
    if eligible > 3:
        score += 10
    return _clamp(score)


def partnership_score(
    record: BusinessRecord,
    criteria: PrioritizationCriteria,
    context: ScoringContext,
) -> float:
    score = 50 + PARTNERSHIP_TYPE_BONUS.get(record.type, 0)

    partners = sum(
        1
        for r in context.relationships(record.id)
        if r.relationship_type is RelationshipType.PARTNER
    )
    score += min(partners * 5, 15)

    if industry_score(record, criteria) >= 80:
        score += 10
    if record.address is not None and context.nearby_business_count(record) > 10:
        score += 5
    return _clamp(score)


def data_quality_component(record: BusinessRecord, now: datetime | None = None) -> float:
    return float(assess_data_quality(record, now).overall_score)


def geographic_score(record: BusinessRecord, criteria: PrioritizationCriteria) -> float:
    address = record.address
    if address is None:
        return 30.0

    province = province_code(address.province)
    score = 50
    if province in criteria.primary_markets:
        score += 30
    elif province in criteria.secondary_markets:
        score += 20
    else:
        score += 10

    city = normalize_string(address.city)
    if city and city in {normalize_string(c) for c in criteria.urban_centers}:
        score += 15
    if criteria.remote_bonus and address.is_on_reserve:
        score += 10
    if province in NORTHERN_TERRITORIES:
        score += 5
    return _clamp(score)


def indigenous_score(record: BusinessRecord) -> float:
    score = INDIGENOUS_TYPE_BASE.get(record.type, 0)

    details = record.indigenous_details
    if details is not None:
        ownership = details.ownership_percentage or 0
        if ownership >= 51:
            score += 10
        elif ownership >= 33:
            score += 5
        employees = details.indigenous_employee_percentage or 0
        if employees >= 50:
            score += 5
        elif employees >= 25:
            score += 3
        if details.community_benefit_agreements:
            score += 3
        if details.traditional_territory_work:
            score += 2

    if any(c.type in INDIGENOUS_CERTIFICATIONS for c in record.certifications):
        score += 10
    return _clamp(score)


def relationship_score(relationships: list[BusinessRelationship]) -> float:
    if not relationships:
        return 20.0
    score = 40.0
    for r in relationships:
        strength = min(max(r.strength, 0.0), 1.0)
        score += RELATIONSHIP_MULTIPLIERS.get(r.relationship_type, 0) * strength
    score += _step(len(relationships), NETWORK_STEPS)
    return _clamp(score)
