"""Tests for per-field and aggregate record similarity."""

from __future__ import annotations

import pytest

from supplierlens.entity_resolution.config import DeduplicationConfig
from supplierlens.entity_resolution.similarity import (
    address_similarity,
    business_number_similarity,
    calculate_similarity,
    email_similarity,
    industry_similarity,
    match_type,
    name_similarity,
    phone_similarity,
    website_similarity,
)
from supplierlens.models import Address, BusinessRecord

# =========================================================================
# Field scorers
# =========================================================================


class TestBusinessNumber:
    """Business numbers match exactly or not at all."""

    def test_separators_ignored(self):
        assert business_number_similarity("123 456 789", "123-456-789") == 1.0

    def test_mismatch(self):
        assert business_number_similarity("123456789", "987654321") == 0.0

    def test_absent(self):
        assert business_number_similarity(None, "123456789") is None


class TestNameSimilarity:
    """Tests for the combined name signal."""

    def test_identical_after_normalisation(self):
        assert name_similarity("Café Boréal", "cafe boreal!") == 1.0

    def test_legal_suffix_variant(self):
        score = name_similarity("Eagle Technologies Inc.", "Eagle Technologies")
        assert score == pytest.approx((1 - 4 / 22 + 2 / 3 + 1.0) / 3)

    def test_abbreviation_lifts_score(self):
        with_initials = name_similarity("IBM", "International Business Machines", phonetic=False)
        without = name_similarity("XYZ", "International Business Machines", phonetic=False)
        assert with_initials > 0.3
        assert without < 0.1

    def test_absent(self):
        assert name_similarity("", "Eagle") is None


class TestPhoneSimilarity:
    """Tests for digit-based phone comparison."""

    def test_formatting_ignored(self):
        assert phone_similarity("(613) 555-0100", "613.555.0100") == 1.0

    def test_country_code(self):
        assert phone_similarity("613-555-0100", "+1 613 555 0100") == 0.9

    def test_same_local_number(self):
        assert phone_similarity("613-555-0100", "416-555-0100") == 0.8

    def test_different(self):
        assert phone_similarity("613-555-0100", "416-555-7788") == 0.0

    def test_too_short_is_absent(self):
        assert phone_similarity("555-01", "555-01") is None


class TestEmailSimilarity:
    """Tests for email comparison."""

    def test_exact_case_insensitive(self):
        assert email_similarity("Info@Eagle.ca", "info@eagle.ca") == 1.0

    def test_same_domain(self):
        assert email_similarity("john@eagle.ca", "jon@eagle.ca") == pytest.approx(0.875)

    def test_different_domain(self):
        assert email_similarity("john@eagle.ca", "john@raven.ca") == 0.0

    def test_malformed_is_absent(self):
        assert email_similarity("not-an-email", "john@eagle.ca") is None


class TestWebsiteSimilarity:
    """Tests for website domain comparison."""

    def test_scheme_and_www_ignored(self):
        assert website_similarity("https://www.eagle.ca/about", "eagle.ca") == 1.0

    def test_subdomain(self):
        assert website_similarity("shop.eagle.ca", "eagle.ca") == 0.9

    def test_different_tld(self):
        assert website_similarity("eagle.ca", "eagle.com") == pytest.approx(0.8)


class TestAddressSimilarity:
    """Tests for part-wise address comparison."""

    def test_identical(self):
        addr = Address(street="1 Main St", city="Ottawa", province="ON", postal_code="K1A 0B1")
        assert address_similarity(addr, addr) == 1.0

    def test_postal_prefix_only(self):
        score = address_similarity(Address(postal_code="K1A 0B1"), Address(postal_code="k1a9z9"))
        assert score == 0.5

    def test_nothing_comparable(self):
        assert address_similarity(Address(city="Ottawa"), Address(province="ON")) is None

    def test_missing_side(self):
        assert address_similarity(None, Address(city="Ottawa")) is None


class TestIndustrySimilarity:
    def test_jaccard_of_tags(self):
        assert industry_similarity(["Construction", "Engineering"], ["construction"]) == 0.5

    def test_empty(self):
        assert industry_similarity([], ["construction"]) is None


class TestMatchType:
    def test_boundaries(self):
        assert match_type(1.0) == "exact"
        assert match_type(0.8) == "fuzzy"
        assert match_type(0.79) == "partial"


# =========================================================================
# Aggregate
# =========================================================================


class TestCalculateSimilarity:
    """Tests for the weighted aggregate."""

    def test_eagle_pair(self, eagle_a, eagle_b):
        result = calculate_similarity(eagle_a, eagle_b)
        name = (1 - 4 / 22 + 2 / 3 + 1.0) / 3
        assert result.score == pytest.approx((0.30 + 0.25 * name + 0.15) / 0.70)
        assert [f.field for f in result.matching_fields] == ["business_number", "name", "phone"]
        assert result.get_field("business_number").match_type == "exact"
        assert result.get_field("email") is None

    def test_symmetric(self, eagle_a, eagle_b, unrelated):
        for left, right in ((eagle_a, eagle_b), (eagle_a, unrelated)):
            assert calculate_similarity(left, right).score == pytest.approx(
                calculate_similarity(right, left).score
            )

    def test_postal_only_overlap_stays_low(self):
        r1 = BusinessRecord(id="m", name="Maple Leaf Roofing", address=Address(postal_code="K1A 0B1"))
        r2 = BusinessRecord(
            id="b", name="Birch Tree Accounting", address=Address(postal_code="K1A 9Z9")
        )
        result = calculate_similarity(r1, r2)
        assert result.get_field("address").similarity == 0.5
        assert result.score < 0.5

    def test_no_comparable_fields(self):
        result = calculate_similarity(BusinessRecord(id="x"), BusinessRecord(id="y"))
        assert result.score == 0.0
        assert result.matching_fields == ()

    def test_address_matching_disabled(self):
        r1 = BusinessRecord(id="a", name="Eagle", address=Address(postal_code="K1A 0B1"))
        r2 = BusinessRecord(id="b", name="Eagle", address=Address(postal_code="K1A 0B1"))
        config = DeduplicationConfig(enable_address_matching=False)
        result = calculate_similarity(r1, r2, config)
        assert result.get_field("address") is None
        assert result.score == 1.0

    def test_score_within_unit_interval(self, rich_record, unrelated):
        result = calculate_similarity(rich_record, unrelated)
        assert 0.0 <= result.score <= 1.0
        assert all(0.0 <= f.similarity <= 1.0 for f in result.matching_fields)
