"""Per-record outcome aggregation for batch entry points."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RecordOutcome:
    record_id: str | None
    status: str  # "ok" | "rejected" | "failed"
    error: str = ""


@dataclass
class BatchReport:
    """Outcomes of one batch; nothing inside a batch escapes as an exception."""

    outcomes: list[RecordOutcome] = field(default_factory=list)
    cancelled: bool = False

    def ok(self, record_id: str) -> None:
        self.outcomes.append(RecordOutcome(record_id, "ok"))

    def rejected(self, record_id: str | None, error: str) -> None:
        self.outcomes.append(RecordOutcome(record_id, "rejected", error))

    def failed(self, record_id: str | None, error: str) -> None:
        self.outcomes.append(RecordOutcome(record_id, "failed", error))

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def summary(self) -> dict[str, int]:
        return {
            "ok": self.count("ok"),
            "rejected": self.count("rejected"),
            "failed": self.count("failed"),
            "total": len(self.outcomes),
        }
