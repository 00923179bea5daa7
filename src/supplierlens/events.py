"""Observable events emitted by the resolution and scoring engines.

Callers pass an :class:`EventSink` to receive tagged events instead of
subscribing to callbacks on an engine object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Union

import structlog

from supplierlens.models import BusinessPriorityScore, DuplicateCandidate

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DuplicateFound:
    candidate: DuplicateCandidate
    kind: str = "duplicate_found"


@dataclass(frozen=True)
class MergeCompleted:
    primary_id: str
    secondary_id: str
    merged_id: str
    affected_fields: tuple[str, ...]
    kind: str = "merge_completed"


@dataclass(frozen=True)
class ScoreCalculated:
    score: BusinessPriorityScore
    kind: str = "score_calculated"


@dataclass(frozen=True)
class Progress:
    stage: str
    processed: int
    total: int
    duplicates_found: int = 0
    kind: str = "progress"


Event = Union[DuplicateFound, MergeCompleted, ScoreCalculated, Progress]


class EventSink(Protocol):
    def emit(self, event: Event) -> None: ...


@dataclass
class CollectingSink:
    """Keeps every event in arrival order."""

    events: list[Event] = field(default_factory=list)

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_kind(self, kind: str) -> list[Event]:
        return [e for e in self.events if e.kind == kind]


class LoggingSink:
    """Writes each event to the structured log at debug level."""

    def emit(self, event: Event) -> None:
        if isinstance(event, DuplicateFound):
            logger.debug(
                "duplicate_found",
                pair=event.candidate.pair_key,
                score=round(event.candidate.similarity_score, 4),
                action=event.candidate.suggested_action.value,
            )
        elif isinstance(event, MergeCompleted):
            logger.debug(
                "merge_completed",
                primary_id=event.primary_id,
                secondary_id=event.secondary_id,
            )
        elif isinstance(event, ScoreCalculated):
            logger.debug(
                "score_calculated",
                business_id=event.score.business_id,
                score=event.score.overall_score,
                tier=event.score.tier.value,
            )
        else:
            logger.debug(
                "progress",
                stage=event.stage,
                processed=event.processed,
                total=event.total,
                duplicates_found=event.duplicates_found,
            )


def safe_emit(sink: EventSink | None, event: Event) -> None:
    """Deliver *event*; a failing observer is logged, never propagated."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception:
        logger.warning("event_sink_failed", kind=event.kind, exc_info=True)
