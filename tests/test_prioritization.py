"""Tests for priority scoring, tiering, recommendations, and caching."""

from __future__ import annotations

import math
from unittest.mock import MagicMock, patch

import httpx
import pytest
from structlog.testing import capture_logs

from supplierlens.config import Settings
from supplierlens.errors import WeightConfigurationError
from supplierlens.events import CollectingSink
from supplierlens.models import (
    Address,
    BusinessPriorityScore,
    BusinessRecord,
    BusinessRelationship,
    BusinessType,
    FinancialInfo,
    IndigenousDetails,
    PriorityTier,
    RelationshipType,
    to_jsonable,
)
from supplierlens.prioritization.components import (
    geographic_score,
    indigenous_score,
    industry_score,
    partnership_score,
    procurement_score,
    relationship_score,
    revenue_score,
)
from supplierlens.prioritization.context import (
    EmptyScoringContext,
    StoreScoringContext,
    save_relationship,
    set_nearby_count,
)
from supplierlens.prioritization.criteria import (
    DEFAULT_WEIGHTS,
    PrioritizationCriteria,
    normalize_weights,
)
from supplierlens.prioritization.engine import (
    calculate_batch_priority_scores,
    calculate_priority_score,
    get_cached_score,
    get_scoring_statistics,
    get_top_businesses_by_tier,
    update_criteria,
)
from supplierlens.prioritization.recommendations import (
    HttpRecommendationRefiner,
    deterministic_recommendations,
    generate_recommendations,
    parse_suggestions,
)

CRITERIA = PrioritizationCriteria()


def _components(value: float) -> dict[str, float]:
    return {name: value for name in DEFAULT_WEIGHTS}


# =========================================================================
# Criteria
# =========================================================================


class TestCriteria:
    """Tests for weight validation and normalisation."""

    def test_defaults_sum_to_one(self):
        assert sum(CRITERIA.weights.values()) == pytest.approx(1.0)

    def test_rescaled_with_warning(self):
        with capture_logs() as logs:
            criteria = PrioritizationCriteria(weights={"revenue": 0.5})
        assert criteria.weight("revenue") == pytest.approx(0.4)
        assert sum(criteria.weights.values()) == pytest.approx(1.0)
        assert any(e["event"] == "priority_weights_normalized" for e in logs)

    def test_within_tolerance_untouched(self):
        with capture_logs() as logs:
            weights = normalize_weights({"revenue": 0.255})
        assert weights["revenue"] == 0.255
        assert logs == []

    @pytest.mark.parametrize(
        "weights",
        [
            {"bogus": 0.1},
            {"revenue": -0.1},
            {"revenue": math.nan},
            dict.fromkeys(DEFAULT_WEIGHTS, 0.0),
        ],
    )
    def test_invalid(self, weights):
        with pytest.raises(WeightConfigurationError):
            PrioritizationCriteria(weights=weights)

    def test_weights_read_only(self):
        with pytest.raises(TypeError):
            CRITERIA.weights["revenue"] = 1.0

    def test_updated_merges_weights(self):
        updated = CRITERIA.updated(weights={"revenue": 0.25, "procurement": 0.20})
        assert dict(updated.weights) == pytest.approx(DEFAULT_WEIGHTS)
        assert updated.remote_bonus is True

    def test_from_settings(self):
        settings = Settings(_env_file=None, priority_weights={"indigenous": 0.3})
        criteria = PrioritizationCriteria.from_settings(settings)
        assert criteria.weight("indigenous") == pytest.approx(0.3 / 1.25)


# =========================================================================
# Components
# =========================================================================


class TestComponents:
    """Tests for the component scorers."""

    def test_revenue(self):
        big = BusinessRecord(
            id="x",
            financial_info=FinancialInfo(
                estimated_revenue=60_000_000, employee_count=600, has_government_contracts=True
            ),
        )
        assert revenue_score(big) == 100
        assert revenue_score(BusinessRecord(id="x")) == 20
        assert revenue_score(BusinessRecord(id="x", financial_info=FinancialInfo())) == 5

    def test_procurement(self, rich_record):
        assert procurement_score(BusinessRecord(id="x")) == 10
        # 40 base + insurance + bonding + one active certification + NAICS
        assert procurement_score(rich_record) == 70

    @pytest.mark.parametrize(
        ("tags", "expected"),
        [
            ([], 30),
            (["Construction"], 90),
            (["Wholesale Trade"], 60),
            (["Entertainment"], 30),
            (["Adult Entertainment"], 0),
            (["Widgets"], 50),
            (["Retail", "Construction"], 90),
            (["Widgets", "Gadgets", "Gizmos", "Sprockets"], 60),
        ],
    )
    def test_industry(self, tags, expected):
        assert industry_score(BusinessRecord(id="x", industry=tags), CRITERIA) == expected

    def test_geographic(self):
        assert geographic_score(BusinessRecord(id="x"), CRITERIA) == 30
        toronto = Address(city="Toronto", province="Ontario")
        assert geographic_score(BusinessRecord(id="x", address=toronto), CRITERIA) == 95
        iqaluit = Address(city="Iqaluit", province="NU", is_on_reserve=True)
        assert geographic_score(BusinessRecord(id="x", address=iqaluit), CRITERIA) == 75

    def test_indigenous(self, rich_record):
        assert indigenous_score(rich_record) == 90
        assert indigenous_score(BusinessRecord(id="x")) == 0
        record = BusinessRecord(
            id="x",
            type=BusinessType.INDIGENOUS_PARTNERSHIP,
            indigenous_details=IndigenousDetails(
                ownership_percentage=40,
                indigenous_employee_percentage=60,
                community_benefit_agreements=True,
            ),
        )
        assert indigenous_score(record) == 60 + 5 + 5 + 3

    def test_relationship(self):
        assert relationship_score([]) == 20
        partner = BusinessRelationship("a", "b", RelationshipType.PARTNER, 1.0)
        competitor = BusinessRelationship("a", "c", RelationshipType.COMPETITOR, 0.5)
        assert relationship_score([partner]) == 60
        assert relationship_score([competitor]) == 37.5

    def test_partnership(self, rich_record):
        # 50 base + 20 indigenous-owned + 10 high-priority industry
        assert partnership_score(rich_record, CRITERIA, EmptyScoringContext()) == 80


class TestStoreScoringContext:
    """Tests for store-backed relationships and density."""

    def test_relationships_both_directions(self, store):
        save_relationship(store, BusinessRelationship("a", "b", RelationshipType.PARTNER, 0.8))
        context = StoreScoringContext(store)
        assert [r.business2 for r in context.relationships("a")] == ["b"]
        assert [r.business1 for r in context.relationships("b")] == ["a"]

    def test_malformed_relationship_skipped(self, store):
        store.set("relationship:a:z", {"business1": "a"})
        assert StoreScoringContext(store).relationships("a") == []

    def test_nearby_count(self, store, rich_record):
        set_nearby_count(store, "m5x", 12)
        assert StoreScoringContext(store).nearby_business_count(rich_record) == 12

    def test_partnership_uses_context(self, store, rich_record):
        for other in ("p1", "p2", "p3", "p4"):
            save_relationship(
                store, BusinessRelationship("biz-rich", other, RelationshipType.PARTNER, 1.0)
            )
        set_nearby_count(store, "M5X", 11)
        context = StoreScoringContext(store)
        # 80 + partners capped at 15 + dense area 5
        assert partnership_score(rich_record, CRITERIA, context) == 100


# =========================================================================
# Overall score and tiers
# =========================================================================


class TestCalculatePriorityScore:
    """Tests for the weighted score."""

    def test_rich_record(self, rich_record, now):
        score = calculate_priority_score(rich_record, now=now)
        assert score.components == {
            "revenue": 70,
            "procurement": 70,
            "partnership": 80,
            "data_quality": 96,
            "geographic": 95,
            "industry": 90,
            "indigenous": 90,
            "relationship": 20,
        }
        assert score.overall_score == 77
        assert score.tier is PriorityTier.GOLD
        assert score.calculated_at == now
        assert "Gold tier - include in premium opportunity notifications" in (
            score.recommended_actions
        )

    def test_platinum(self, eagle_a):
        with patch(
            "supplierlens.prioritization.engine.calculate_components",
            return_value=_components(91),
        ):
            score = calculate_priority_score(eagle_a)
        assert score.overall_score == 91
        assert score.tier is PriorityTier.PLATINUM

    def test_tier_uses_unrounded_score(self, eagle_a):
        with patch(
            "supplierlens.prioritization.engine.calculate_components",
            return_value=_components(89.9),
        ):
            score = calculate_priority_score(eagle_a)
        assert score.overall_score == 90
        assert score.tier is PriorityTier.GOLD

    def test_emits_event(self, rich_record):
        sink = CollectingSink()
        calculate_priority_score(rich_record, sink=sink)
        (event,) = sink.of_kind("score_calculated")
        assert event.score.business_id == "biz-rich"

    def test_all_components_bounded(self, eagle_a, unrelated, rich_record):
        for record in (eagle_a, unrelated, rich_record, BusinessRecord(id="empty")):
            score = calculate_priority_score(record)
            assert all(0 <= v <= 100 for v in score.components.values())
            assert 0 <= score.overall_score <= 100


# =========================================================================
# Recommendations
# =========================================================================


class TestRecommendations:
    """Tests for deterministic and refined actions."""

    def test_low_components(self):
        actions = deterministic_recommendations(_components(10), PriorityTier.STANDARD)
        assert actions == [
            "Improve data quality by completing missing fields and verifying information",
            "Consider targeting for growth programs or smaller contracts initially",
            "Assist with procurement readiness: certifications, bonding, and insurance",
            "Standard tier - monitor for improvement opportunities",
        ]

    def test_refiner_skipped_below_silver(self, eagle_a):
        refiner = MagicMock()
        generate_recommendations(eagle_a, _components(50), PriorityTier.BRONZE, refiner)
        refiner.refine.assert_not_called()

    def test_refiner_appends_unique(self, eagle_a):
        refiner = MagicMock()
        refiner.refine.return_value = [
            "Join the regional supplier network",
            "Silver tier - regular engagement and opportunity matching",
        ]
        actions = generate_recommendations(eagle_a, _components(65), PriorityTier.SILVER, refiner)
        assert actions[-1] == "Join the regional supplier network"
        assert len(actions) == len(set(actions))

    def test_refiner_failure_ignored(self, eagle_a):
        refiner = MagicMock()
        refiner.refine.side_effect = RuntimeError("down")
        actions = generate_recommendations(eagle_a, _components(80), PriorityTier.GOLD, refiner)
        assert actions == deterministic_recommendations(_components(80), PriorityTier.GOLD)

    def test_parse_suggestions(self):
        content = "1. Pitch to Ontario buyers\n- Add bonding\n\n* Join CCAB\n- Fourth idea"
        assert parse_suggestions(content) == [
            "Pitch to Ontario buyers",
            "Add bonding",
            "Join CCAB",
        ]


class TestHttpRecommendationRefiner:
    """Tests for the chat-completions refiner using a mock transport."""

    @staticmethod
    def _refiner(handler) -> HttpRecommendationRefiner:
        client = httpx.Client(
            base_url="https://llm.test/v1", transport=httpx.MockTransport(handler)
        )
        return HttpRecommendationRefiner(client, "test-model")

    def test_parses_choices(self, rich_record):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            return httpx.Response(
                200, json={"choices": [{"message": {"content": "- Bid on RFQs\n- Add ISO"}}]}
            )

        refiner = self._refiner(handler)
        result = refiner.refine(rich_record, _components(80), PriorityTier.GOLD)
        refiner.close()

        assert result == ["Bid on RFQs", "Add ISO"]
        assert seen["path"] == "/v1/chat/completions"

    def test_server_error_returns_empty(self, rich_record):
        refiner = self._refiner(lambda request: httpx.Response(500))
        assert refiner.refine(rich_record, _components(80), PriorityTier.GOLD) == []

    def test_malformed_body_returns_empty(self, rich_record):
        refiner = self._refiner(lambda request: httpx.Response(200, json={"choices": []}))
        assert refiner.refine(rich_record, _components(80), PriorityTier.GOLD) == []

    def test_from_settings(self):
        assert HttpRecommendationRefiner.from_settings(Settings(_env_file=None)) is None
        settings = Settings(_env_file=None, recommendation_api_url="https://llm.test/v1")
        refiner = HttpRecommendationRefiner.from_settings(settings)
        assert isinstance(refiner, HttpRecommendationRefiner)
        refiner.close()


# =========================================================================
# Batch scoring and cache
# =========================================================================


def _cache_score(store, business_id: str, overall: int, tier: PriorityTier, now) -> None:
    score = BusinessPriorityScore(business_id, overall, _components(overall), tier, (), now)
    store.set(f"priority:score:{business_id}", to_jsonable(score))


class TestBatchScoring:
    """Tests for ranking a batch."""

    def test_sorted_descending(self, eagle_a, unrelated, rich_record):
        result = calculate_batch_priority_scores([eagle_a, rich_record, unrelated])
        overall = [s.overall_score for s in result.scores]
        assert overall == sorted(overall, reverse=True)
        assert result.scores[0].business_id == "biz-rich"
        assert result.report.count("ok") == 3

    def test_progress_every_fifty(self):
        records = [BusinessRecord(id=f"r-{i}") for i in range(120)]
        sink = CollectingSink()
        calculate_batch_priority_scores(records, sink=sink)
        assert [e.processed for e in sink.of_kind("progress")] == [50, 100, 120]

    def test_failure_isolated(self, eagle_a, unrelated):
        def components(record, criteria, context, now=None):
            if record.id == "biz-z":
                raise ValueError("bad record")
            return _components(50)

        with patch(
            "supplierlens.prioritization.engine.calculate_components", side_effect=components
        ):
            result = calculate_batch_priority_scores([eagle_a, unrelated])

        assert [s.business_id for s in result.scores] == ["biz-a"]
        assert result.report.count("failed") == 1
        assert result.report.outcomes[1].error == "bad record"


class TestScoreCache:
    """Tests for cached scores, ranking queries, and invalidation."""

    def test_cached_round_trip(self, store, settings, rich_record, now):
        score = calculate_priority_score(rich_record, store=store, settings=settings, now=now)
        assert get_cached_score(store, "biz-rich") == score

    def test_cache_expires(self, store, settings, clock, rich_record):
        calculate_priority_score(rich_record, store=store, settings=settings)
        clock.advance(settings.priority_score_ttl)
        assert get_cached_score(store, "biz-rich") is None

    def test_top_by_tier(self, store, now):
        _cache_score(store, "a", 80, PriorityTier.GOLD, now)
        _cache_score(store, "b", 88, PriorityTier.GOLD, now)
        _cache_score(store, "c", 95, PriorityTier.PLATINUM, now)
        assert get_top_businesses_by_tier(store, PriorityTier.GOLD) == ["b", "a"]
        assert get_top_businesses_by_tier(store, PriorityTier.GOLD, limit=1) == ["b"]

    def test_statistics(self, store, now):
        _cache_score(store, "a", 80, PriorityTier.GOLD, now)
        _cache_score(store, "c", 95, PriorityTier.PLATINUM, now)
        stats = get_scoring_statistics(store)
        assert stats["total_scored"] == 2
        assert stats["average_score"] == 87.5
        assert stats["tier_distribution"]["gold"] == 1
        assert stats["tier_distribution"]["standard"] == 0

    def test_empty_statistics(self, store):
        assert get_scoring_statistics(store)["average_score"] == 0.0

    def test_update_criteria_clears_cache(self, store, now):
        _cache_score(store, "a", 80, PriorityTier.GOLD, now)
        updated = update_criteria(store, CRITERIA, weights={"indigenous": 0.3})
        assert updated.weight("indigenous") == pytest.approx(0.3 / 1.25)
        assert store.keys("priority:score:") == []

    def test_invalid_update_keeps_cache(self, store, now):
        _cache_score(store, "a", 80, PriorityTier.GOLD, now)
        with pytest.raises(WeightConfigurationError):
            update_criteria(store, CRITERIA, weights={"revenue": -1})
        assert get_cached_score(store, "a") is not None
