"""Dataclasses and enums shared by the settlement components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SettlementStatus(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"


class PickOutcome(str, Enum):
    WIN = "win"
    LOSS = "loss"
    PUSH = "push"
    VOID = "void"


class ParlayOutcome(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    PUSH = "push"
    VOID = "void"


class TerminalStatus(str, Enum):
    """Feed position markers that end a player's participation in a round."""

    WITHDRAWN = "withdrawn"
    CUT = "cut"
    DISQUALIFIED = "disqualified"
    FINISHED = "finished"


class SettlementMethod(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class ScoreBasis(str, Enum):
    STROKES = "strokes"
    TO_PAR = "to_par"


@dataclass(frozen=True)
class PlayerRoundState:
    """A player's status in the live feed for one tournament.

    ``today`` is relative to par and belongs to ``current_round``; finished
    rounds are reported as stroke totals in ``round_scores``.
    """

    player_id: int
    player_name: str
    current_round: int | None
    thru: int = 0
    today: int | None = None
    round_scores: dict[int, int] = field(default_factory=dict)
    position: str | None = None
    terminal_status: TerminalStatus | None = None

    @property
    def withdrawn(self) -> bool:
        return self.terminal_status in (TerminalStatus.WITHDRAWN, TerminalStatus.DISQUALIFIED)

    def strokes_for(self, round_number: int) -> int | None:
        return self.round_scores.get(round_number)

    def to_par_for(self, round_number: int) -> int | None:
        if self.current_round != round_number:
            return None
        return self.today

    def snapshot(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "current_round": self.current_round,
            "thru": self.thru,
            "today": self.today,
            "round_scores": {str(k): v for k, v in self.round_scores.items()},
            "position": self.position,
            "terminal_status": self.terminal_status.value if self.terminal_status else None,
        }


@dataclass(frozen=True)
class PendingLeg:
    leg_id: int
    parlay_id: int
    matchup_id: int
    tournament_id: int | None
    round_number: int | None
    picked_player_id: int | None
    pick_position: int = 1


@dataclass(frozen=True)
class MatchupPlayers:
    matchup_id: int
    tournament_id: int
    round_number: int
    player_ids: tuple[int, ...]
    player_names: tuple[str, ...] = ()

    def player_at(self, position: int) -> int | None:
        if 1 <= position <= len(self.player_ids):
            return self.player_ids[position - 1]
        return None


@dataclass(frozen=True)
class LegResolution:
    outcome: PickOutcome
    decisive: bool
    reason: str
    basis: ScoreBasis | None = None
    picked_score: int | None = None
    best_opponent_score: int | None = None
    decisive_player_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "decisive": self.decisive,
            "reason": self.reason,
            "basis": self.basis.value if self.basis else None,
            "picked_score": self.picked_score,
            "best_opponent_score": self.best_opponent_score,
            "decisive_player_id": self.decisive_player_id,
        }


@dataclass(frozen=True)
class RoundCompletion:
    tournament_id: int
    round_number: int
    complete: bool
    completed_players: int
    total_players: int
    required_players: int
    in_progress_players: int = 0
    not_started_players: int = 0

    @property
    def completion_percentage(self) -> float:
        if not self.total_players:
            return 0.0
        return 100.0 * self.completed_players / self.total_players

    def to_dict(self) -> dict[str, Any]:
        return {
            "tournament_id": self.tournament_id,
            "round_number": self.round_number,
            "complete": self.complete,
            "completed_players": self.completed_players,
            "total_players": self.total_players,
            "required_players": self.required_players,
            "in_progress_players": self.in_progress_players,
            "not_started_players": self.not_started_players,
            "completion_percentage": round(self.completion_percentage, 1),
        }


@dataclass(frozen=True)
class SettlementScope:
    """Which pending legs a settlement run considers."""

    tournament_id: int | None = None
    method: SettlementMethod = SettlementMethod.AUTOMATIC

    @classmethod
    def all_pending(cls, method: SettlementMethod = SettlementMethod.AUTOMATIC) -> SettlementScope:
        return cls(tournament_id=None, method=method)

    @classmethod
    def for_tournament(
        cls, tournament_id: int, method: SettlementMethod = SettlementMethod.AUTOMATIC
    ) -> SettlementScope:
        return cls(tournament_id=tournament_id, method=method)

    def describe(self) -> str:
        if self.tournament_id is None:
            return "all tournaments"
        return f"tournament {self.tournament_id}"


@dataclass(frozen=True)
class TournamentInfo:
    event_id: int
    event_name: str
    tour: str | None = None
