"""Per-field and aggregate similarity between two business records.

Each field scorer returns ``None`` when the field is absent or malformed
on either side; absent fields are dropped from the weighted mean rather
than counted as a mismatch.
"""

from __future__ import annotations

from dataclasses import dataclass
from statistics import fmean

from supplierlens.entity_resolution.config import DeduplicationConfig
from supplierlens.models import Address, BusinessRecord, MatchingField
from supplierlens.normalize import (
    extract_domain,
    extract_email_domain,
    is_abbreviation,
    jaccard_similarity,
    normalize_business_number,
    normalize_phone,
    normalize_postal_code,
    normalize_string,
    phonetic_key,
    string_similarity,
)

MIN_PHONE_DIGITS = 7


@dataclass(frozen=True)
class SimilarityResult:
    score: float
    matching_fields: tuple[MatchingField, ...]

    def get_field(self, name: str) -> MatchingField | None:
        for f in self.matching_fields:
            if f.field == name:
                return f
        return None


def match_type(similarity: float) -> str:
    if similarity >= 1.0:
        return "exact"
    if similarity >= 0.8:
        return "fuzzy"
    return "partial"


# ---------------------------------------------------------------------------
# Field scorers
# ---------------------------------------------------------------------------

def business_number_similarity(bn1: str | None, bn2: str | None) -> float | None:
    a, b = normalize_business_number(bn1), normalize_business_number(bn2)
    if not a or not b:
        return None
    return 1.0 if a == b else 0.0


def name_similarity(name1: str | None, name2: str | None, *, phonetic: bool = True) -> float | None:
    """Mean of edit-distance, token-overlap, phonetic, and abbreviation signals.

    Identical normalised names short-circuit to 1.0.  The abbreviation
    signal only contributes when one name is the initials of the other.
    """
    a, b = normalize_string(name1), normalize_string(name2)
    if not a or not b:
        return None
    if a == b:
        return 1.0

    scores = [
        string_similarity(a, b),
        jaccard_similarity(a.split(" "), b.split(" ")),
    ]
    if phonetic:
        scores.append(1.0 if phonetic_key(a) == phonetic_key(b) else 0.5)
    if is_abbreviation(a, b) or is_abbreviation(b, a):
        scores.append(0.9)
    return fmean(scores)


def phone_similarity(phone1: str | None, phone2: str | None) -> float | None:
    a, b = normalize_phone(phone1), normalize_phone(phone2)
    if len(a) < MIN_PHONE_DIGITS or len(b) < MIN_PHONE_DIGITS:
        return None
    if a == b:
        return 1.0
    # One number carries an extension or country code the other lacks
    if a in b or b in a:
        return 0.9
    if a[-7:] == b[-7:]:
        return 0.8
    return 0.0


def email_similarity(email1: str | None, email2: str | None) -> float | None:
    domain1, domain2 = extract_email_domain(email1), extract_email_domain(email2)
    if not domain1 or not domain2:
        return None
    a, b = str(email1).strip().lower(), str(email2).strip().lower()
    if a == b:
        return 1.0
    if domain1 != domain2:
        return 0.0
    local1, local2 = a.rsplit("@", 1)[0], b.rsplit("@", 1)[0]
    return 0.5 + 0.5 * string_similarity(local1, local2)


def website_similarity(url1: str | None, url2: str | None) -> float | None:
    a, b = extract_domain(url1), extract_domain(url2)
    if not a or not b:
        return None
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.9
    base1, base2 = a.rsplit(".", 1)[0], b.rsplit(".", 1)[0]
    return 0.8 * string_similarity(base1, base2)


def address_similarity(addr1: Address | None, addr2: Address | None) -> float | None:
    """Mean over the address parts present on both sides."""
    if addr1 is None or addr2 is None:
        return None

    scores: list[float] = []

    postal1 = normalize_postal_code(addr1.postal_code)
    postal2 = normalize_postal_code(addr2.postal_code)
    if postal1 and postal2:
        if postal1 == postal2:
            scores.append(1.0)
        elif postal1[:3] == postal2[:3]:
            scores.append(0.5)
        else:
            scores.append(0.0)

    city1, city2 = normalize_string(addr1.city), normalize_string(addr2.city)
    if city1 and city2:
        scores.append(string_similarity(city1, city2))

    prov1, prov2 = normalize_string(addr1.province), normalize_string(addr2.province)
    if prov1 and prov2:
        scores.append(1.0 if prov1 == prov2 else 0.0)

    street1, street2 = normalize_string(addr1.street), normalize_string(addr2.street)
    if street1 and street2:
        scores.append(string_similarity(street1, street2))

    if not scores:
        return None
    return fmean(scores)


def industry_similarity(tags1: list[str], tags2: list[str]) -> float | None:
    a = {t for t in (normalize_string(tag) for tag in tags1 or []) if t}
    b = {t for t in (normalize_string(tag) for tag in tags2 or []) if t}
    if not a or not b:
        return None
    return jaccard_similarity(a, b)


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

def compare_fields(
    record1: BusinessRecord,
    record2: BusinessRecord,
    config: DeduplicationConfig,
) -> list[MatchingField]:
    """Score every field present on both records, in a fixed order."""
    fields: list[MatchingField] = []

    def add(name: str, value1, value2, similarity: float | None) -> None:
        if similarity is None:
            return
        similarity = min(max(similarity, 0.0), 1.0)
        fields.append(MatchingField(name, value1, value2, similarity, match_type(similarity)))

    add(
        "business_number",
        record1.business_number,
        record2.business_number,
        business_number_similarity(record1.business_number, record2.business_number),
    )
    add(
        "name",
        record1.name,
        record2.name,
        name_similarity(record1.name, record2.name, phonetic=config.enable_phonetic_matching),
    )
    add("phone", record1.phone, record2.phone, phone_similarity(record1.phone, record2.phone))
    add("email", record1.email, record2.email, email_similarity(record1.email, record2.email))
    add(
        "website",
        record1.website,
        record2.website,
        website_similarity(record1.website, record2.website),
    )
    if config.enable_address_matching and record1.address and record2.address:
        add(
            "address",
            record1.address.format(),
            record2.address.format(),
            address_similarity(record1.address, record2.address),
        )
    add(
        "industry",
        tuple(record1.industry),
        tuple(record2.industry),
        industry_similarity(record1.industry, record2.industry),
    )
    return fields


def calculate_similarity(
    record1: BusinessRecord,
    record2: BusinessRecord,
    config: DeduplicationConfig | None = None,
) -> SimilarityResult:
    """Weighted mean of the per-field similarities, renormalised over present fields.

    Returns a score of 0.0 when the records share no comparable field.
    """
    config = config or DeduplicationConfig()
    weights = config.weights.as_dict()
    fields = compare_fields(record1, record2, config)

    weighted = 0.0
    total_weight = 0.0
    for f in fields:
        weight = weights.get(f.field, 0.0)
        weighted += f.similarity * weight
        total_weight += weight

    score = weighted / total_weight if total_weight > 0 else 0.0
    return SimilarityResult(score=min(max(score, 0.0), 1.0), matching_fields=tuple(fields))
