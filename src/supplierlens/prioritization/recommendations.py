"""Recommended actions for a scored record.

The deterministic rules are authoritative.  An optional refiner may add
suggestions from an OpenAI-compatible chat endpoint; it is advisory and
any failure leaves the deterministic list untouched.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Protocol

import httpx
import structlog

from supplierlens.config import Settings
from supplierlens.models import BusinessRecord, PriorityTier

logger = structlog.get_logger(__name__)

TIER_ACTIONS: dict[PriorityTier, tuple[str, ...]] = {
    PriorityTier.PLATINUM: (
        "Platinum tier - assign dedicated account manager",
        "Fast-track for major procurement opportunities",
    ),
    PriorityTier.GOLD: (
        "Gold tier - include in premium opportunity notifications",
        "Provide enhanced support services",
    ),
    PriorityTier.SILVER: ("Silver tier - regular engagement and opportunity matching",),
    PriorityTier.BRONZE: ("Bronze tier - include in general outreach campaigns",),
    PriorityTier.STANDARD: ("Standard tier - monitor for improvement opportunities",),
}

MAX_REFINED = 3
_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


class RecommendationRefiner(Protocol):
    def refine(
        self, record: BusinessRecord, components: Mapping[str, float], tier: PriorityTier
    ) -> list[str]: ...


def deterministic_recommendations(
    components: Mapping[str, float], tier: PriorityTier
) -> list[str]:
    actions = []
    if components["data_quality"] < 70:
        actions.append(
            "Improve data quality by completing missing fields and verifying information"
        )
    if components["revenue"] < 50:
        actions.append("Consider targeting for growth programs or smaller contracts initially")
    if components["procurement"] < 60:
        actions.append("Assist with procurement readiness: certifications, bonding, and insurance")
    if components["industry"] >= 80:
        actions.append("High-priority industry - prioritize for government contract opportunities")
    if components["geographic"] >= 80:
        actions.append("Strategic location - leverage for regional procurement opportunities")
    if components["partnership"] >= 70:
        actions.append("Strong partnership potential - facilitate B2B connections")
    actions.extend(TIER_ACTIONS[tier])
    return actions


def generate_recommendations(
    record: BusinessRecord,
    components: Mapping[str, float],
    tier: PriorityTier,
    refiner: RecommendationRefiner | None = None,
) -> list[str]:
    """Deterministic actions, plus refined ones for silver tier and above, de-duplicated."""
    actions = deterministic_recommendations(components, tier)
    if refiner is not None and tier.rank >= PriorityTier.SILVER.rank:
        try:
            actions.extend(refiner.refine(record, components, tier))
        except Exception:
            logger.warning("recommendation_refiner_failed", business_id=record.id, exc_info=True)
    return list(dict.fromkeys(actions))


# ---------------------------------------------------------------------------
# HTTP refiner
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You are a business development expert focused on government procurement "
    "and Indigenous business growth."
)


def build_prompt(record: BusinessRecord, components: Mapping[str, float]) -> str:
    location = ""
    if record.address is not None:
        location = ", ".join(p for p in (record.address.city, record.address.province) if p)
    return "\n".join(
        [
            "Analyze this business profile and scores to generate 2-3 specific, "
            "actionable recommendations:",
            "",
            f"Business: {record.name}",
            f"Type: {record.type.value}",
            f"Industry: {', '.join(record.industry) or 'Unknown'}",
            f"Location: {location or 'Unknown'}",
            "",
            "Scores:",
            f"- Revenue: {components['revenue']:.0f}/100",
            f"- Procurement Readiness: {components['procurement']:.0f}/100",
            f"- Partnership Potential: {components['partnership']:.0f}/100",
            f"- Data Quality: {components['data_quality']:.0f}/100",
            "",
            "Keep each recommendation under 100 characters, one per line.",
        ]
    )


def parse_suggestions(content: str) -> list[str]:
    lines = (_BULLET.sub("", line).strip() for line in content.splitlines())
    return [line for line in lines if line][:MAX_REFINED]


class HttpRecommendationRefiner:
    """Ask an OpenAI-compatible ``/chat/completions`` endpoint for extra actions.

    Returns an empty list on any transport or response error.
    """

    def __init__(self, client: httpx.Client, model: str) -> None:
        self._client = client
        self._model = model

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpRecommendationRefiner | None:
        """Build a refiner when an endpoint is configured, else None."""
        if not settings.recommendation_api_url:
            return None
        headers = {"Accept": "application/json"}
        if settings.recommendation_api_key:
            headers["Authorization"] = f"Bearer {settings.recommendation_api_key}"
        client = httpx.Client(
            base_url=settings.recommendation_api_url,
            timeout=settings.recommendation_timeout,
            headers=headers,
        )
        return cls(client, settings.recommendation_model)

    def refine(
        self, record: BusinessRecord, components: Mapping[str, float], tier: PriorityTier
    ) -> list[str]:
        try:
            resp = self._client.post(
                "/chat/completions",
                json={
                    "model": self._model,
                    "messages": [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": build_prompt(record, components)},
                    ],
                    "max_tokens": 200,
                    "temperature": 0.7,
                },
            )
            resp.raise_for_status()
            content = resp.json()["choices"][0]["message"]["content"] or ""
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError):
            logger.warning("recommendation_refiner_error", business_id=record.id)
            return []
        return parse_suggestions(content)

    def close(self) -> None:
        self._client.close()
