"""Tests for tier classification and shared model helpers."""

from __future__ import annotations

import pytest

from supplierlens.models import PriorityTier, round_half_up, tier_for_score

# =========================================================================
# Tiers
# =========================================================================


class TestTierForScore:
    """Tests for the score to tier step function."""

    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (0, PriorityTier.STANDARD),
            (39.99, PriorityTier.STANDARD),
            (40, PriorityTier.BRONZE),
            (59.99, PriorityTier.BRONZE),
            (60, PriorityTier.SILVER),
            (74.99, PriorityTier.SILVER),
            (75, PriorityTier.GOLD),
            (89.9, PriorityTier.GOLD),
            (90, PriorityTier.PLATINUM),
            (100, PriorityTier.PLATINUM),
        ],
    )
    def test_boundaries(self, score, expected):
        assert tier_for_score(score) is expected

    def test_monotonic_over_range(self):
        ranks = [tier_for_score(step / 100).rank for step in range(0, 10001)]
        assert all(a <= b for a, b in zip(ranks, ranks[1:]))
        assert set(ranks) == {0, 1, 2, 3, 4}

    def test_every_tier_reached_at_its_threshold(self):
        for tier in PriorityTier:
            if tier is PriorityTier.STANDARD:
                continue
            assert tier_for_score(tier.threshold) is tier

    def test_rank_order(self):
        assert [t.rank for t in PriorityTier] == [4, 3, 2, 1, 0]


class TestRoundHalfUp:
    def test_halves_round_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(89.4) == 89
