"""Run report returned by every settlement invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class RoundGroupReport:
    tournament_id: int
    round_number: int
    status: str = "pending"
    legs_total: int = 0
    legs_settled: int = 0
    legs_already_settled: int = 0
    legs_errored: int = 0
    legs_deferred: int = 0
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tournament_id": self.tournament_id,
            "round_number": self.round_number,
            "status": self.status,
            "legs_total": self.legs_total,
            "legs_settled": self.legs_settled,
            "legs_already_settled": self.legs_already_settled,
            "legs_errored": self.legs_errored,
            "legs_deferred": self.legs_deferred,
            "detail": self.detail,
        }


@dataclass
class SettlementErrorEntry:
    scope: str
    message: str
    tournament_id: int | None = None
    round_number: int | None = None
    leg_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "message": self.message,
            "tournament_id": self.tournament_id,
            "round_number": self.round_number,
            "leg_id": self.leg_id,
        }


@dataclass
class SettlementRunReport:
    """Aggregated counts for one settlement run."""

    scope: str
    method: str
    started_at: datetime
    finished_at: datetime | None = None
    groups: list[RoundGroupReport] = field(default_factory=list)
    errors: list[SettlementErrorEntry] = field(default_factory=list)
    parlays_updated: int = 0
    parlays_settled: int = 0
    legs_unscheduled: int = 0

    @property
    def tournaments_processed(self) -> int:
        return len({group.tournament_id for group in self.groups if group.status == "settled"})

    @property
    def rounds_processed(self) -> int:
        return sum(1 for group in self.groups if group.status == "settled")

    @property
    def rounds_incomplete(self) -> int:
        return sum(1 for group in self.groups if group.status == "incomplete")

    @property
    def legs_settled(self) -> int:
        return sum(group.legs_settled for group in self.groups)

    @property
    def legs_already_settled(self) -> int:
        return sum(group.legs_already_settled for group in self.groups)

    @property
    def legs_deferred(self) -> int:
        return sum(group.legs_deferred for group in self.groups)

    @property
    def legs_errored(self) -> int:
        return sum(group.legs_errored for group in self.groups) + self.legs_unscheduled

    @property
    def legs_pending(self) -> int:
        total = sum(group.legs_total for group in self.groups) + self.legs_unscheduled
        return total - self.legs_settled - self.legs_already_settled

    @property
    def success(self) -> bool:
        return not self.errors

    def add_error(
        self,
        scope: str,
        message: str,
        *,
        tournament_id: int | None = None,
        round_number: int | None = None,
        leg_id: int | None = None,
    ) -> None:
        self.errors.append(
            SettlementErrorEntry(
                scope=scope,
                message=message,
                tournament_id=tournament_id,
                round_number=round_number,
                leg_id=leg_id,
            )
        )

    def summary(self) -> str:
        return (
            f"{self.method} settlement of {self.scope}: "
            f"{self.rounds_processed} rounds settled, {self.rounds_incomplete} incomplete, "
            f"{self.legs_settled} legs settled, {self.legs_already_settled} already settled, "
            f"{self.legs_pending} pending, {len(self.errors)} errors, "
            f"{self.parlays_updated} parlays updated"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "scope": self.scope,
            "method": self.method,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "tournaments_processed": self.tournaments_processed,
            "rounds_processed": self.rounds_processed,
            "rounds_incomplete": self.rounds_incomplete,
            "legs_settled": self.legs_settled,
            "legs_already_settled": self.legs_already_settled,
            "legs_pending": self.legs_pending,
            "legs_errored": self.legs_errored,
            "legs_deferred": self.legs_deferred,
            "parlays_updated": self.parlays_updated,
            "parlays_settled": self.parlays_settled,
            "groups": [group.to_dict() for group in self.groups],
            "errors": [error.to_dict() for error in self.errors],
        }
