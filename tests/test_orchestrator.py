"""End-to-end settlement runs against a SQLite database."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from parlaygolf.db.models import Parlay, ParlayPick, SettlementHistory
from parlaygolf.settlement.errors import PersistenceFailure, TransientGatewayError
from parlaygolf.settlement.orchestrator import SettlementOrchestrator, group_pending_legs
from parlaygolf.settlement.repository import SettlementRepository
from parlaygolf.settlement.resolver import resolve_leg
from parlaygolf.settlement.types import (
    PendingLeg,
    PickOutcome,
    PlayerRoundState,
    SettlementMethod,
    SettlementScope,
    TerminalStatus,
)

A, B, C = 1, 2, 3
FIXED_NOW = datetime(2024, 7, 19, 20, 0, 0)


def _state(player_id: int, today: int | None, *, thru: int = 18, current_round: int = 2, status=None):
    return PlayerRoundState(
        player_id=player_id,
        player_name=f"Player {player_id}",
        current_round=current_round,
        thru=thru,
        today=today,
        terminal_status=status,
    )


def _round_two_field(a: int, b: int, filler_thru: int = 18) -> list[PlayerRoundState]:
    states = [_state(A, a), _state(B, b), _state(C, None, thru=4, status=TerminalStatus.WITHDRAWN)]
    states += [_state(10 + idx, 0, thru=filler_thru) for idx in range(7)]
    return states


class FakeGateway:
    def __init__(self, states: dict[int, list[PlayerRoundState]], failures: dict[int, Exception] | None = None):
        self.states = states
        self.failures = failures or {}
        self.calls: list[int] = []

    def fetch_player_round_states(self, tournament_id: int) -> list[PlayerRoundState]:
        self.calls.append(tournament_id)
        if tournament_id in self.failures:
            raise self.failures[tournament_id]
        return list(self.states.get(tournament_id, []))


def _orchestrator(session_factory, gateway, repository=None, **kwargs) -> SettlementOrchestrator:
    return SettlementOrchestrator(
        repository or SettlementRepository(session_factory),
        gateway,
        max_workers=kwargs.pop("max_workers", 2),
        clock=lambda: FIXED_NOW,
        **kwargs,
    )


@pytest.fixture
def three_ball(seed):
    seed.tournament(100, "The Open Championship")
    matchup_id = seed.matchup(100, 2, [(A, "Player A"), (B, "Player B"), (C, "Player C")])
    parlay_id, pick_ids = seed.parlay([(matchup_id, A)], event_id=100, round_number=2)
    return parlay_id, pick_ids[0]


def _pick(session_factory, pick_id: int) -> ParlayPick:
    with session_factory() as session:
        return session.get(ParlayPick, pick_id)


def _parlay(session_factory, parlay_id: int) -> Parlay:
    with session_factory() as session:
        return session.get(Parlay, parlay_id)


def _history_count(session_factory) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count(SettlementHistory.id)))


def test_finished_round_settles_win_and_grades_parlay(session_factory, three_ball) -> None:
    parlay_id, pick_id = three_ball
    gateway = FakeGateway({100: _round_two_field(a=1, b=3)})

    report = _orchestrator(session_factory, gateway).settle()

    assert report.success
    assert report.legs_settled == 1
    assert report.rounds_processed == 1
    assert report.parlays_settled == 1
    pick = _pick(session_factory, pick_id)
    assert pick.settlement_status == "settled"
    assert pick.pick_outcome == "win"
    assert pick.settled_at == FIXED_NOW
    parlay = _parlay(session_factory, parlay_id)
    assert parlay.outcome == "won"
    assert parlay.is_settled
    assert parlay.actual_payout == Decimal("30.00")
    with session_factory() as session:
        history = session.scalars(select(SettlementHistory)).one()
    assert history.settlement_method == "automatic"
    assert history.settlement_data["resolution"]["outcome"] == "win"
    assert history.settlement_data["round_completion"]["complete"] is True


def test_higher_score_settles_loss(session_factory, three_ball) -> None:
    parlay_id, pick_id = three_ball
    _orchestrator(session_factory, FakeGateway({100: _round_two_field(a=3, b=1)})).settle()

    assert _pick(session_factory, pick_id).pick_outcome == "loss"
    parlay = _parlay(session_factory, parlay_id)
    assert parlay.outcome == "lost"
    assert parlay.actual_payout == Decimal("0")


def test_second_run_changes_nothing(session_factory, three_ball) -> None:
    _, pick_id = three_ball
    gateway = FakeGateway({100: _round_two_field(a=1, b=3)})
    orchestrator = _orchestrator(session_factory, gateway)

    orchestrator.settle()
    first = _pick(session_factory, pick_id)
    second_report = orchestrator.settle(SettlementScope.for_tournament(100))

    assert second_report.legs_settled == 0
    assert second_report.parlays_updated == 0
    again = _pick(session_factory, pick_id)
    assert (again.pick_outcome, again.settled_at) == (first.pick_outcome, first.settled_at)
    assert _history_count(session_factory) == 1


def test_stale_write_affects_no_rows(session_factory, three_ball) -> None:
    _, pick_id = three_ball
    repository = SettlementRepository(session_factory)
    stale_legs = repository.list_pending_legs()
    _orchestrator(session_factory, FakeGateway({100: _round_two_field(a=1, b=3)})).settle()

    leg = stale_legs[0]
    matchup = repository.load_matchups([leg.matchup_id])[leg.matchup_id]
    loss = resolve_leg(leg, matchup, _round_two_field(a=5, b=1))
    assert loss.outcome is PickOutcome.LOSS
    affected = repository.settle_leg(
        leg, loss, tournament_id=100, round_number=2, method=SettlementMethod.MANUAL
    )

    assert affected == 0
    assert _pick(session_factory, pick_id).pick_outcome == "win"
    assert _history_count(session_factory) == 1


class StaleRepository(SettlementRepository):
    """Keeps returning legs captured before another run settled them."""

    def __init__(self, session_factory, legs: list[PendingLeg]) -> None:
        super().__init__(session_factory)
        self.legs = legs

    def list_pending_legs(self, tournament_id: int | None = None) -> list[PendingLeg]:
        return list(self.legs)


def test_overlapping_runs_record_one_outcome(session_factory, three_ball) -> None:
    _, pick_id = three_ball
    snapshot = SettlementRepository(session_factory).list_pending_legs(100)
    _orchestrator(session_factory, FakeGateway({100: _round_two_field(a=1, b=3)})).settle()

    late_gateway = FakeGateway({100: _round_two_field(a=4, b=1)})
    report = _orchestrator(session_factory, late_gateway, StaleRepository(session_factory, snapshot)).settle()

    assert report.legs_settled == 0
    assert report.legs_already_settled == 1
    assert report.success
    assert _pick(session_factory, pick_id).pick_outcome == "win"
    assert _history_count(session_factory) == 1


def test_incomplete_round_left_pending(session_factory, three_ball) -> None:
    parlay_id, pick_id = three_ball
    gateway = FakeGateway({100: _round_two_field(a=1, b=3, filler_thru=9)})

    report = _orchestrator(session_factory, gateway).settle()

    assert report.success
    assert report.rounds_incomplete == 1
    assert report.legs_pending == 1
    assert report.groups[0].status == "incomplete"
    assert _pick(session_factory, pick_id).settlement_status == "pending"
    assert _parlay(session_factory, parlay_id).outcome == "pending"


def test_gateway_failure_only_skips_its_tournament(session_factory, seed, three_ball) -> None:
    _, settled_pick = three_ball
    seed.tournament(200, "Genesis Scottish Open", tour="euro")
    other_matchup = seed.matchup(200, 2, [(A, "Player A"), (B, "Player B")])
    _, (skipped_pick,) = seed.parlay([(other_matchup, A)], event_id=200, round_number=2)
    gateway = FakeGateway(
        {100: _round_two_field(a=1, b=3)},
        failures={200: TransientGatewayError("DataGolf request timed out")},
    )

    report = _orchestrator(session_factory, gateway).settle()

    assert sorted(gateway.calls) == [100, 200]
    assert not report.success
    assert [(e.tournament_id, e.round_number) for e in report.errors] == [(200, 2)]
    assert report.legs_settled == 1
    assert report.legs_pending == 1
    assert _pick(session_factory, settled_pick).settlement_status == "settled"
    assert _pick(session_factory, skipped_pick).settlement_status == "pending"


def test_missing_feed_data_leaves_group_pending(session_factory, three_ball) -> None:
    _, pick_id = three_ball
    report = _orchestrator(session_factory, FakeGateway({})).settle()

    assert report.groups[0].status == "unavailable"
    assert _pick(session_factory, pick_id).settlement_status == "pending"


class FlakyRepository(SettlementRepository):
    def __init__(self, session_factory, failing_leg: int) -> None:
        super().__init__(session_factory)
        self.failing_leg = failing_leg

    def settle_leg(self, leg, resolution, **kwargs) -> int:
        if leg.leg_id == self.failing_leg:
            raise PersistenceFailure("database is locked")
        return super().settle_leg(leg, resolution, **kwargs)


def test_leg_write_failure_does_not_stop_siblings(session_factory, seed, three_ball) -> None:
    parlay_id, first_pick = three_ball
    matchup_id = seed.matchup(100, 2, [(B, "Player B"), (A, "Player A")])
    _, (second_pick,) = seed.parlay([(matchup_id, B)], event_id=100, round_number=2)
    repository = FlakyRepository(session_factory, failing_leg=first_pick)

    report = _orchestrator(session_factory, FakeGateway({100: _round_two_field(a=1, b=3)}), repository).settle()

    assert report.legs_errored == 1
    assert report.legs_settled == 1
    assert [e.leg_id for e in report.errors] == [first_pick]
    assert _pick(session_factory, first_pick).settlement_status == "pending"
    assert _pick(session_factory, second_pick).pick_outcome == "loss"
    assert _parlay(session_factory, parlay_id).outcome == "pending"


class BrokenRepository(SettlementRepository):
    def list_pending_legs(self, tournament_id: int | None = None) -> list[PendingLeg]:
        raise PersistenceFailure("connection refused")


def test_pending_query_failure_aborts_run(session_factory) -> None:
    orchestrator = _orchestrator(session_factory, FakeGateway({}), BrokenRepository(session_factory))
    with pytest.raises(PersistenceFailure):
        orchestrator.settle()


def test_loss_settles_parlay_before_other_legs(session_factory, seed, three_ball) -> None:
    round_two = seed.matchup(100, 2, [(A, "Player A"), (B, "Player B")])
    round_three = seed.matchup(100, 3, [(A, "Player A"), (B, "Player B")])
    parlay_id, picks = seed.parlay([(round_two, A), (round_three, B)], event_id=100)

    _orchestrator(session_factory, FakeGateway({100: _round_two_field(a=2, b=0)})).settle()

    assert _pick(session_factory, picks[0]).pick_outcome == "loss"
    assert _pick(session_factory, picks[1]).settlement_status == "pending"
    parlay = _parlay(session_factory, parlay_id)
    assert parlay.outcome == "lost"
    assert not parlay.is_settled


def test_manual_method_recorded_in_history(session_factory, three_ball) -> None:
    scope = SettlementScope.for_tournament(100, SettlementMethod.MANUAL)
    report = _orchestrator(session_factory, FakeGateway({100: _round_two_field(a=1, b=3)})).settle(scope)

    assert report.method == "manual"
    with session_factory() as session:
        history = session.scalars(select(SettlementHistory)).one()
    assert history.settlement_method == "manual"
    assert history.settled_by == "operator"


def test_status_summary_counts_pending_by_event(session_factory, three_ball) -> None:
    summary = SettlementRepository(session_factory).status_summary()

    assert summary["pending_picks"] == 1
    assert summary["events"] == [
        {"event_id": 100, "tournament_name": "The Open Championship", "tour": "pga", "pending_picks": 1}
    ]


def test_group_pending_legs_separates_unscheduled() -> None:
    legs = [
        PendingLeg(1, 1, 1, 100, 2, A),
        PendingLeg(2, 1, 2, 100, 3, A),
        PendingLeg(3, 2, 3, None, 2, B),
    ]
    groups, unscheduled = group_pending_legs(legs)
    assert sorted(groups[100]) == [2, 3]
    assert [leg.leg_id for leg in unscheduled] == [3]


class LookupGateway(FakeGateway):
    """Resolves the tournament through the database before reading the feed."""

    def __init__(self, states, lookup):
        super().__init__(states)
        self.lookup = lookup

    def fetch_player_round_states(self, tournament_id: int) -> list[PlayerRoundState]:
        self.lookup(tournament_id)
        return super().fetch_player_round_states(tournament_id)


def test_tournament_lookup_failure_only_skips_its_tournament(session_factory, seed, three_ball) -> None:
    _, settled_pick = three_ball
    seed.tournament(200, "Genesis Scottish Open", tour="euro")
    other_matchup = seed.matchup(200, 2, [(A, "Player A"), (B, "Player B")])
    _, (skipped_pick,) = seed.parlay([(other_matchup, A)], event_id=200, round_number=2)
    repository = SettlementRepository(session_factory)

    def lookup(tournament_id: int):
        if tournament_id == 200:
            raise PersistenceFailure("Database error while loading tournament 200")
        return repository.get_tournament(tournament_id)

    gateway = LookupGateway({100: _round_two_field(a=1, b=3), 200: _round_two_field(a=1, b=3)}, lookup)
    report = _orchestrator(session_factory, gateway, repository).settle()

    assert not report.success
    assert [(e.scope, e.tournament_id) for e in report.errors] == [("tournament", 200)]
    assert [g.status for g in report.groups] == ["settled", "failed"]
    assert report.legs_settled == 1
    assert _pick(session_factory, settled_pick).settlement_status == "settled"
    assert _pick(session_factory, skipped_pick).settlement_status == "pending"


def test_unexpected_worker_error_is_reported_per_tournament(session_factory, seed, three_ball) -> None:
    _, settled_pick = three_ball
    seed.tournament(200, "Genesis Scottish Open", tour="euro")
    other_matchup = seed.matchup(200, 3, [(A, "Player A"), (B, "Player B")])
    seed.parlay([(other_matchup, A)], event_id=200, round_number=3)
    gateway = FakeGateway(
        {100: _round_two_field(a=1, b=3)},
        failures={200: RuntimeError("feed returned malformed JSON")},
    )

    report = _orchestrator(session_factory, gateway).settle()

    assert not report.success
    assert [(e.tournament_id, e.round_number) for e in report.errors] == [(200, 3)]
    assert "malformed JSON" in report.errors[0].message
    assert report.groups[-1].status == "failed"
    assert _pick(session_factory, settled_pick).pick_outcome == "win"


class RegradeOnceFailingRepository(SettlementRepository):
    def __init__(self, session_factory) -> None:
        super().__init__(session_factory)
        self.failed = False

    def regrade_parlay(self, parlay_id, policy=None, settled_at=None):
        if not self.failed:
            self.failed = True
            raise PersistenceFailure("deadlock detected")
        return super().regrade_parlay(parlay_id, policy, settled_at)


def test_failed_regrade_is_retried_on_next_run(session_factory, three_ball) -> None:
    parlay_id, pick_id = three_ball
    gateway = FakeGateway({100: _round_two_field(a=1, b=3)})

    first = _orchestrator(session_factory, gateway, RegradeOnceFailingRepository(session_factory)).settle()

    assert [e.scope for e in first.errors] == ["parlay"]
    assert _pick(session_factory, pick_id).settlement_status == "settled"
    assert not _parlay(session_factory, parlay_id).is_settled
    assert SettlementRepository(session_factory).list_parlays_needing_regrade(100) == [parlay_id]

    second = _orchestrator(session_factory, gateway).settle()

    assert second.success
    assert second.legs_settled == 0
    assert second.parlays_updated == 1
    assert second.parlays_settled == 1
    parlay = _parlay(session_factory, parlay_id)
    assert parlay.outcome == "won"
    assert parlay.is_settled
    assert SettlementRepository(session_factory).list_parlays_needing_regrade() == []


def test_regrade_listing_skips_parlays_with_pending_legs(session_factory, seed, three_ball) -> None:
    round_three = seed.matchup(100, 3, [(A, "Player A"), (B, "Player B")])
    seed.parlay([(round_three, A)], event_id=100, round_number=3)

    assert SettlementRepository(session_factory).list_parlays_needing_regrade() == []


def test_players_on_course_defer_leg_in_complete_round(session_factory, three_ball) -> None:
    parlay_id, pick_id = three_ball
    field = [
        _state(A, -2, thru=5),
        _state(B, 1, thru=6),
        _state(C, None, thru=4, status=TerminalStatus.WITHDRAWN),
    ]
    field += [_state(10 + idx, 0) for idx in range(7)]

    report = _orchestrator(session_factory, FakeGateway({100: field})).settle()

    assert report.success
    assert report.groups[0].status == "settled"
    assert report.groups[0].legs_deferred == 1
    assert report.legs_deferred == 1
    assert report.legs_pending == 1
    assert _pick(session_factory, pick_id).settlement_status == "pending"
    assert _parlay(session_factory, parlay_id).outcome == "pending"
    assert _history_count(session_factory) == 0

    finished = _orchestrator(session_factory, FakeGateway({100: _round_two_field(a=3, b=1)})).settle()

    assert finished.legs_settled == 1
    assert _pick(session_factory, pick_id).pick_outcome == "loss"
