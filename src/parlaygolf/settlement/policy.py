"""Tunable settlement rules."""

from __future__ import annotations

from dataclasses import dataclass

from parlaygolf.config import Settings, get_settings
from parlaygolf.settlement.types import ParlayOutcome

COMPLETION_THRESHOLD = 0.8
MIN_COMPLETED_PLAYERS = 1
HOLES_PER_ROUND = 18


@dataclass(frozen=True)
class SettlementPolicy:
    completion_threshold: float = COMPLETION_THRESHOLD
    min_completed_players: int = MIN_COMPLETED_PLAYERS
    holes_per_round: int = HOLES_PER_ROUND
    award_default_win: bool = True
    # Outcome for a parlay whose non-void legs mix wins and pushes.
    push_mix_outcome: ParlayOutcome = ParlayOutcome.WON

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> SettlementPolicy:
        settings = settings or get_settings()
        return cls(
            completion_threshold=settings.completion_threshold,
            min_completed_players=settings.min_completed_players,
        )


DEFAULT_POLICY = SettlementPolicy()
