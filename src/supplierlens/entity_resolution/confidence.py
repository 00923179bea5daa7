"""Confidence adjustment for scored record pairs.

The heuristic adjuster is the default and needs nothing beyond the
per-field similarities.  A trained ``dedupe`` model can be plugged in
instead; it only ever replaces the confidence value, never the aggregate
score or the suggested action, and falls back to the heuristic on error.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol

import dedupe
import structlog

from supplierlens.models import BusinessRecord, MatchingField
from supplierlens.normalize import (
    extract_domain,
    extract_email_domain,
    normalize_business_number,
    normalize_phone,
    normalize_string,
    postal_prefix,
)

logger = structlog.get_logger(__name__)

STRONG_FIELD_SIMILARITY = 0.9


class ConfidenceAdjuster(Protocol):
    def adjust(
        self,
        record1: BusinessRecord,
        record2: BusinessRecord,
        score: float,
        fields: Sequence[MatchingField],
    ) -> float: ...


def heuristic_confidence(score: float, fields: Sequence[MatchingField]) -> float:
    """Adjust the aggregate score by identifier signals.

    - exact business number: x1.3, capped at 1
    - neither phone nor email comparable: x0.8
    - three or more fields at >= 0.9: x1.1, capped at 1
    """
    by_name = {f.field: f for f in fields}
    confidence = score

    bn = by_name.get("business_number")
    if bn is not None and bn.similarity >= 1.0:
        confidence = min(confidence * 1.3, 1.0)

    if "phone" not in by_name and "email" not in by_name:
        confidence *= 0.8

    strong = sum(1 for f in fields if f.similarity >= STRONG_FIELD_SIMILARITY)
    if strong >= 3:
        confidence = min(confidence * 1.1, 1.0)

    return min(max(confidence, 0.0), 1.0)


class HeuristicConfidenceAdjuster:
    def adjust(
        self,
        record1: BusinessRecord,
        record2: BusinessRecord,
        score: float,
        fields: Sequence[MatchingField],
    ) -> float:
        return heuristic_confidence(score, fields)


# ---------------------------------------------------------------------------
# dedupe-backed adjuster
# ---------------------------------------------------------------------------

def dedupe_fields() -> list[Any]:
    """Variable definitions shared by training and scoring."""
    return [
        dedupe.variables.String("name"),
        dedupe.variables.Exact("business_number", has_missing=True),
        dedupe.variables.Exact("phone", has_missing=True),
        dedupe.variables.Exact("email_domain", has_missing=True),
        dedupe.variables.Exact("website", has_missing=True),
        dedupe.variables.Exact("postal_prefix", has_missing=True),
    ]


def to_dedupe_record(record: BusinessRecord) -> dict[str, str | None]:
    """Flatten a record into the blocking keys the dedupe model is trained on."""
    return {
        "name": normalize_string(record.name) or None,
        "business_number": normalize_business_number(record.business_number) or None,
        "phone": normalize_phone(record.phone) or None,
        "email_domain": extract_email_domain(record.email) or None,
        "website": extract_domain(record.website) or None,
        "postal_prefix": (postal_prefix(record.address.postal_code) if record.address else "")
        or None,
    }


class DedupeConfidenceAdjuster:
    """Use a trained dedupe model's match probability as the confidence.

    Any failure in the model (or a missing score) logs a warning and
    falls back to *fallback*, which defaults to the heuristic adjuster.
    """

    def __init__(self, model: Any, fallback: ConfidenceAdjuster | None = None) -> None:
        self._model = model
        self._fallback = fallback or HeuristicConfidenceAdjuster()

    @classmethod
    def from_settings_file(cls, settings_path: Path) -> DedupeConfidenceAdjuster:
        with open(settings_path, "rb") as f:
            return cls(dedupe.StaticDedupe(f))

    def adjust(
        self,
        record1: BusinessRecord,
        record2: BusinessRecord,
        score: float,
        fields: Sequence[MatchingField],
    ) -> float:
        pair = (
            (record1.id, to_dedupe_record(record1)),
            (record2.id, to_dedupe_record(record2)),
        )
        try:
            scores = self._model.score([pair])
            probability = float(scores["score"][0])
        except Exception:
            logger.warning(
                "confidence_model_failed",
                business1=record1.id,
                business2=record2.id,
                exc_info=True,
            )
            return self._fallback.adjust(record1, record2, score, fields)
        return min(max(probability, 0.0), 1.0)


def train_confidence_model(
    records: Iterable[BusinessRecord],
    matches: Iterable[tuple[str, str]],
    distinct: Iterable[tuple[str, str]],
    settings_path: Path | None = None,
) -> Any:
    """Train a dedupe model from labelled pairs, or load one from *settings_path*.

    Parameters
    ----------
    records:
        Every record referenced by a labelled pair.
    matches, distinct:
        Id pairs labelled as the same / different organisation.
    settings_path:
        If the file exists, the model is loaded from it.  Otherwise a new
        model is trained and (if the path is provided) saved there.

    Returns
    -------
    dedupe.Dedupe | dedupe.StaticDedupe
    """
    if settings_path and settings_path.exists():
        with open(settings_path, "rb") as f:
            return dedupe.StaticDedupe(f)

    data = {r.id: to_dedupe_record(r) for r in records}

    def labelled(pairs: Iterable[tuple[str, str]]) -> list[tuple[dict, dict]]:
        return [(data[a], data[b]) for a, b in pairs if a in data and b in data]

    deduper = dedupe.Dedupe(dedupe_fields())
    deduper.prepare_training(data)
    deduper.mark_pairs({"match": labelled(matches), "distinct": labelled(distinct)})
    deduper.train()

    if settings_path:
        settings_path.parent.mkdir(parents=True, exist_ok=True)
        with open(settings_path, "wb") as f:
            deduper.write_settings(f)

    logger.info("confidence_model_trained", records=len(data))
    return deduper
