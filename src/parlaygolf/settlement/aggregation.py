"""Derive a parlay's overall outcome from its legs."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from parlaygolf.settlement.policy import DEFAULT_POLICY, SettlementPolicy
from parlaygolf.settlement.types import ParlayOutcome, PickOutcome


@dataclass(frozen=True)
class ParlayGrade:
    outcome: ParlayOutcome
    is_settled: bool
    actual_payout: Decimal | None


def aggregate_parlay_outcome(
    leg_outcomes: Iterable[PickOutcome | None],
    policy: SettlementPolicy = DEFAULT_POLICY,
) -> ParlayOutcome:
    """Combine leg outcomes; ``None`` marks a leg that is still pending."""

    outcomes = list(leg_outcomes)
    if PickOutcome.LOSS in outcomes:
        return ParlayOutcome.LOST
    if not outcomes or None in outcomes:
        return ParlayOutcome.PENDING

    counted = [outcome for outcome in outcomes if outcome is not PickOutcome.VOID]
    if not counted:
        return ParlayOutcome.VOID
    if all(outcome is PickOutcome.PUSH for outcome in counted):
        return ParlayOutcome.PUSH
    if PickOutcome.PUSH in counted:
        return policy.push_mix_outcome
    return ParlayOutcome.WON


def settled_payout(
    outcome: ParlayOutcome,
    stake: Decimal,
    potential_payout: Decimal,
) -> Decimal | None:
    if outcome is ParlayOutcome.WON:
        return potential_payout
    if outcome in (ParlayOutcome.PUSH, ParlayOutcome.VOID):
        return stake
    if outcome is ParlayOutcome.LOST:
        return Decimal("0")
    return None


def grade_parlay(
    leg_outcomes: Iterable[PickOutcome | None],
    stake: Decimal,
    potential_payout: Decimal,
    policy: SettlementPolicy = DEFAULT_POLICY,
) -> ParlayGrade:
    outcomes = list(leg_outcomes)
    outcome = aggregate_parlay_outcome(outcomes, policy)
    return ParlayGrade(
        outcome=outcome,
        is_settled=bool(outcomes) and None not in outcomes,
        actual_payout=settled_payout(outcome, stake, potential_payout),
    )
