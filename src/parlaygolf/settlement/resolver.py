"""Grade a single parlay leg against round scores.

Everything here is a pure function of its arguments so that a re-run over
the same feed data always produces the same outcome.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from parlaygolf.settlement.completion import player_completed_round
from parlaygolf.settlement.policy import DEFAULT_POLICY, SettlementPolicy
from parlaygolf.settlement.types import (
    LegResolution,
    MatchupPlayers,
    PendingLeg,
    PickOutcome,
    PlayerRoundState,
    ScoreBasis,
)


def _void(reason: str) -> LegResolution:
    return LegResolution(outcome=PickOutcome.VOID, decisive=False, reason=f"Void: {reason}")


def _index_states(
    round_states: Mapping[int, PlayerRoundState] | Iterable[PlayerRoundState],
) -> Mapping[int, PlayerRoundState]:
    if isinstance(round_states, Mapping):
        return round_states
    return {state.player_id: state for state in round_states}


def _score_on(state: PlayerRoundState, basis: ScoreBasis, round_number: int) -> int | None:
    if basis is ScoreBasis.STROKES:
        return state.strokes_for(round_number)
    return state.to_par_for(round_number)


def comparable_scores(
    picked: PlayerRoundState,
    opponents: list[PlayerRoundState],
    round_number: int,
) -> tuple[ScoreBasis, int, dict[int, int]] | None:
    """Picked score and opponent scores on one shared basis.

    The basis covering the most opponents wins, stroke totals on a tie.
    Opponents without a score on that basis drop out. Returns None when the
    picked player has no score on either basis.
    """

    best: tuple[ScoreBasis, int, dict[int, int]] | None = None
    for basis in (ScoreBasis.STROKES, ScoreBasis.TO_PAR):
        picked_score = _score_on(picked, basis, round_number)
        if picked_score is None:
            continue
        scores: dict[int, int] = {}
        for state in opponents:
            score = _score_on(state, basis, round_number)
            if score is not None:
                scores[state.player_id] = score
        if best is None or len(scores) > len(best[2]):
            best = (basis, picked_score, scores)
    return best


def round_finished(state: PlayerRoundState, round_number: int, policy: SettlementPolicy = DEFAULT_POLICY) -> bool:
    if state.strokes_for(round_number) is not None:
        return True
    return player_completed_round(state, round_number, policy)


def _any_score(state: PlayerRoundState, round_number: int) -> int | None:
    strokes = state.strokes_for(round_number)
    return strokes if strokes is not None else state.to_par_for(round_number)


def resolve_leg(
    leg: PendingLeg,
    matchup: MatchupPlayers,
    round_states: Mapping[int, PlayerRoundState] | Iterable[PlayerRoundState],
    policy: SettlementPolicy = DEFAULT_POLICY,
) -> LegResolution | None:
    """Return the leg's outcome: lowest round score wins, ties push.

    Returns None while the picked player or a remaining opponent is still on
    the course; the leg stays pending until their round is over.
    """

    round_number = leg.round_number or matchup.round_number
    if leg.picked_player_id is not None:
        picked_id = leg.picked_player_id
    else:
        picked_id = matchup.player_at(leg.pick_position)
    if picked_id is None or picked_id not in matchup.player_ids:
        return _void(f"picked player {picked_id} is not part of matchup {matchup.matchup_id}")

    states = _index_states(round_states)
    picked = states.get(picked_id)
    if picked is None:
        return _void(f"no feed data for picked player {picked_id}")
    if picked.withdrawn:
        return _void(f"{picked.player_name} withdrew")

    opponent_ids = [pid for pid in matchup.player_ids if pid != picked_id]
    if not opponent_ids:
        return _void(f"matchup {matchup.matchup_id} has no opponents")
    opponents = [states[pid] for pid in opponent_ids if pid in states]
    active = [state for state in opponents if not state.withdrawn]

    if len(opponents) == len(opponent_ids) and not active:
        picked_score = _any_score(picked, round_number)
        if picked_score is None:
            return _void(f"no round {round_number} score for {picked.player_name}")
        if not policy.award_default_win:
            return _void("all opponents withdrew")
        return LegResolution(
            outcome=PickOutcome.WIN,
            decisive=False,
            reason="Win: all opponents withdrew",
            picked_score=picked_score,
        )

    if any(not round_finished(state, round_number, policy) for state in (picked, *active)):
        return None

    scored = comparable_scores(picked, active, round_number)
    if scored is None:
        return _void(f"no round {round_number} score for {picked.player_name}")
    basis, picked_score, scores = scored
    if not scores:
        return _void(f"no round {round_number} score for any opponent of {picked.player_name}")

    best = min((state for state in active if state.player_id in scores), key=lambda s: scores[s.player_id])
    best_score = scores[best.player_id]
    detail = f"{picked.player_name} shot {picked_score}, best opponent {best.player_name} shot {best_score}"

    if picked_score < best_score:
        outcome, label = PickOutcome.WIN, "Win"
    elif picked_score > best_score:
        outcome, label = PickOutcome.LOSS, "Loss"
    else:
        outcome, label = PickOutcome.PUSH, "Push"
    return LegResolution(
        outcome=outcome,
        decisive=True,
        reason=f"{label}: {detail}",
        basis=basis,
        picked_score=picked_score,
        best_opponent_score=best_score,
        decisive_player_id=best.player_id,
    )
