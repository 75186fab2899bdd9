"""Decide whether a tournament round is far enough along to grade."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from decimal import Decimal

from parlaygolf.settlement.errors import DataUnavailable
from parlaygolf.settlement.gateway import ResultsGateway
from parlaygolf.settlement.policy import DEFAULT_POLICY, SettlementPolicy
from parlaygolf.settlement.types import PlayerRoundState, RoundCompletion

logger = logging.getLogger(__name__)


def required_completions(total_players: int, policy: SettlementPolicy = DEFAULT_POLICY) -> int:
    """Number of finished players needed before a round counts as complete."""

    # Decimal keeps 10 * 0.7 at exactly 7 so the ceiling is not nudged up.
    scaled = Decimal(total_players) * Decimal(str(policy.completion_threshold))
    return max(policy.min_completed_players, math.ceil(scaled))


def player_completed_round(
    state: PlayerRoundState,
    round_number: int,
    policy: SettlementPolicy = DEFAULT_POLICY,
) -> bool:
    if state.terminal_status is not None:
        return True
    if state.current_round is None:
        return False
    if state.current_round > round_number:
        return True
    return state.current_round == round_number and state.thru >= policy.holes_per_round


class RoundCompletionDetector:
    """Counts finished players against the policy threshold."""

    def __init__(
        self,
        gateway: ResultsGateway | None = None,
        policy: SettlementPolicy = DEFAULT_POLICY,
    ) -> None:
        self.gateway = gateway
        self.policy = policy

    def is_round_complete(self, tournament_id: int, round_number: int) -> RoundCompletion:
        if self.gateway is None:
            raise RuntimeError("RoundCompletionDetector needs a results gateway to fetch states.")
        states = self.gateway.fetch_player_round_states(tournament_id)
        return self.evaluate(tournament_id, round_number, states)

    def evaluate(
        self,
        tournament_id: int,
        round_number: int,
        states: Iterable[PlayerRoundState],
    ) -> RoundCompletion:
        states = list(states)
        if not states:
            raise DataUnavailable(tournament_id)

        completed = in_progress = not_started = 0
        for state in states:
            if player_completed_round(state, round_number, self.policy):
                completed += 1
            elif state.current_round == round_number and state.thru > 0:
                in_progress += 1
            else:
                not_started += 1

        total = len(states)
        required = required_completions(total, self.policy)
        result = RoundCompletion(
            tournament_id=tournament_id,
            round_number=round_number,
            complete=completed >= required,
            completed_players=completed,
            total_players=total,
            required_players=required,
            in_progress_players=in_progress,
            not_started_players=not_started,
        )
        logger.info(
            "Round %s completion for tournament %s: %s/%s finished (need %s, complete=%s)",
            round_number,
            tournament_id,
            completed,
            total,
            required,
            result.complete,
        )
        return result
