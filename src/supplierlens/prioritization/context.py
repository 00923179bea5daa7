"""Lookups the scorers need beyond the record itself."""

from __future__ import annotations

from typing import Protocol

import structlog

from supplierlens.models import BusinessRecord, BusinessRelationship, RelationshipType
from supplierlens.normalize import postal_prefix
from supplierlens.store import NEARBY_KEY, RELATIONSHIP_PREFIX, KeyValueStore

logger = structlog.get_logger(__name__)


class ScoringContext(Protocol):
    def relationships(self, business_id: str) -> list[BusinessRelationship]: ...

    def nearby_business_count(self, record: BusinessRecord) -> int: ...


class EmptyScoringContext:
    """No relationship graph or geography available."""

    def relationships(self, business_id: str) -> list[BusinessRelationship]:
        return []

    def nearby_business_count(self, record: BusinessRecord) -> int:
        return 0


class StoreScoringContext:
    """Reads ``relationship:{id}:{other}`` and ``nearby:{prefix}`` keys.

    Malformed entries are skipped with a warning.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def relationships(self, business_id: str) -> list[BusinessRelationship]:
        prefix = RELATIONSHIP_PREFIX.format(id=business_id)
        found = []
        for key in self._store.keys(prefix):
            payload = self._store.get(key)
            if payload is None:
                continue
            try:
                found.append(relationship_from_dict(payload))
            except (KeyError, TypeError, ValueError):
                logger.warning("relationship_malformed", key=key)
        return found

    def nearby_business_count(self, record: BusinessRecord) -> int:
        if record.address is None:
            return 0
        prefix = postal_prefix(record.address.postal_code)
        if len(prefix) != 3:
            return 0
        value = self._store.get(NEARBY_KEY.format(prefix=prefix))
        if isinstance(value, list):
            return len(value)
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            logger.warning("nearby_count_malformed", prefix=prefix)
            return 0


def relationship_from_dict(data: dict) -> BusinessRelationship:
    return BusinessRelationship(
        business1=str(data["business1"]),
        business2=str(data["business2"]),
        relationship_type=RelationshipType(data["relationship_type"]),
        strength=min(max(float(data.get("strength", 1.0)), 0.0), 1.0),
    )


def save_relationship(store: KeyValueStore, relationship: BusinessRelationship) -> None:
    """Store *relationship* under both participants."""
    payload = {
        "business1": relationship.business1,
        "business2": relationship.business2,
        "relationship_type": relationship.relationship_type.value,
        "strength": relationship.strength,
    }
    store.set(RELATIONSHIP_PREFIX.format(id=relationship.business1) + relationship.business2, payload)
    store.set(RELATIONSHIP_PREFIX.format(id=relationship.business2) + relationship.business1, payload)


def set_nearby_count(store: KeyValueStore, prefix: str, count: int) -> None:
    store.set(NEARBY_KEY.format(prefix=prefix.upper()), count)
