"""Settle every pending leg in a scope whose round has finished.

Legs whose matchup players are still on the course stay pending. Pending
legs are grouped by tournament and round. Each tournament is handled
on its own worker: the feed is read once, every round group is checked for
completion, and finished groups are graded and written leg by leg. Parlays
that gained a settled leg are regraded once all tournaments are done, along
with any parlay whose stored outcome still lags behind its settled legs.

A failure while reading the feed, writing a leg or regrading a parlay only
affects that tournament, leg or parlay. The rest of the run carries on and
the skipped work is picked up by the next invocation.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from parlaygolf.settlement.completion import RoundCompletionDetector
from parlaygolf.settlement.errors import DataUnavailable, PersistenceFailure, TransientGatewayError
from parlaygolf.settlement.gateway import ResultsGateway
from parlaygolf.settlement.policy import DEFAULT_POLICY, SettlementPolicy
from parlaygolf.settlement.report import RoundGroupReport, SettlementErrorEntry, SettlementRunReport
from parlaygolf.settlement.repository import SettlementRepository
from parlaygolf.settlement.resolver import resolve_leg
from parlaygolf.settlement.types import (
    LegResolution,
    PendingLeg,
    PickOutcome,
    PlayerRoundState,
    RoundCompletion,
    SettlementMethod,
    SettlementScope,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4

RoundGroups = dict[int, dict[int, list[PendingLeg]]]


def group_pending_legs(legs: Iterable[PendingLeg]) -> tuple[RoundGroups, list[PendingLeg]]:
    """Split legs into ``{tournament: {round: legs}}`` plus legs missing either key."""

    groups: RoundGroups = defaultdict(lambda: defaultdict(list))
    unscheduled: list[PendingLeg] = []
    for leg in legs:
        if leg.tournament_id is None or leg.round_number is None:
            unscheduled.append(leg)
            continue
        groups[leg.tournament_id][leg.round_number].append(leg)
    return {tid: dict(rounds) for tid, rounds in groups.items()}, unscheduled


@dataclass
class _TournamentResult:
    groups: list[RoundGroupReport] = field(default_factory=list)
    errors: list[SettlementErrorEntry] = field(default_factory=list)
    parlay_ids: set[int] = field(default_factory=set)


class SettlementOrchestrator:
    def __init__(
        self,
        repository: SettlementRepository,
        gateway: ResultsGateway,
        policy: SettlementPolicy = DEFAULT_POLICY,
        max_workers: int = DEFAULT_MAX_WORKERS,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.repository = repository
        self.gateway = gateway
        self.policy = policy
        self.max_workers = max(1, max_workers)
        self.clock = clock
        self.detector = RoundCompletionDetector(gateway, policy)

    def close(self) -> None:
        close = getattr(self.gateway, "close", None)
        if close is not None:
            close()

    def settle(self, scope: SettlementScope | None = None) -> SettlementRunReport:
        scope = scope or SettlementScope.all_pending()
        report = SettlementRunReport(
            scope=scope.describe(),
            method=scope.method.value,
            started_at=self.clock(),
        )
        logger.info("Starting %s settlement for %s", scope.method.value, scope.describe())

        # A failure here leaves nothing to settle, so it propagates.
        legs = self.repository.list_pending_legs(scope.tournament_id)
        groups, unscheduled = group_pending_legs(legs)
        for leg in unscheduled:
            report.legs_unscheduled += 1
            report.add_error(
                "leg",
                "leg has no tournament or round to settle against",
                tournament_id=leg.tournament_id,
                round_number=leg.round_number,
                leg_id=leg.leg_id,
            )
        logger.info(
            "Found %s pending legs across %s tournaments (%s unscheduled)",
            len(legs),
            len(groups),
            len(unscheduled),
        )

        touched: set[int] = set()
        if groups:
            workers = min(self.max_workers, len(groups))
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self._settle_tournament, tid, rounds, scope.method): tid
                    for tid, rounds in groups.items()
                }
                for future in concurrent.futures.as_completed(futures):
                    tid = futures[future]
                    try:
                        result = future.result()
                    except Exception as exc:
                        logger.exception("Settlement of tournament %s failed", tid)
                        result = _failed_tournament(tid, groups[tid], f"unexpected error: {exc}")
                    report.groups.extend(result.groups)
                    report.errors.extend(result.errors)
                    touched |= result.parlay_ids
        report.groups.sort(key=lambda group: (group.tournament_id, group.round_number))

        # Parlays left behind by an earlier failed regrade are picked up here.
        try:
            touched.update(self.repository.list_parlays_needing_regrade(scope.tournament_id))
        except PersistenceFailure as exc:
            logger.error("Could not list parlays awaiting regrade: %s", exc)
            report.add_error("parlay", str(exc))

        for parlay_id in sorted(touched):
            try:
                grade = self.repository.regrade_parlay(parlay_id, self.policy, self.clock())
            except PersistenceFailure as exc:
                logger.error("Failed to regrade parlay %s: %s", parlay_id, exc)
                report.add_error("parlay", str(exc))
                continue
            report.parlays_updated += 1
            if grade.is_settled:
                report.parlays_settled += 1

        report.finished_at = self.clock()
        logger.info("%s", report.summary())
        return report

    def _settle_tournament(
        self,
        tournament_id: int,
        rounds: dict[int, list[PendingLeg]],
        method: SettlementMethod,
    ) -> _TournamentResult:
        try:
            states = self.gateway.fetch_player_round_states(tournament_id)
            if not states:
                raise DataUnavailable(tournament_id)
        except (DataUnavailable, TransientGatewayError, PersistenceFailure) as exc:
            logger.warning("Skipping tournament %s: %s", tournament_id, exc)
            status = "unavailable" if isinstance(exc, DataUnavailable) else "failed"
            return _failed_tournament(tournament_id, rounds, str(exc), status)

        result = _TournamentResult(
            groups=[
                RoundGroupReport(tournament_id=tournament_id, round_number=rnd, legs_total=len(legs))
                for rnd, legs in sorted(rounds.items())
            ]
        )
        states_by_id = {state.player_id: state for state in states}
        for group in result.groups:
            self._settle_round(group, rounds[group.round_number], states_by_id, method, result)
        return result

    def _settle_round(
        self,
        group: RoundGroupReport,
        legs: list[PendingLeg],
        states_by_id: dict[int, PlayerRoundState],
        method: SettlementMethod,
        result: _TournamentResult,
    ) -> None:
        completion = self.detector.evaluate(group.tournament_id, group.round_number, states_by_id.values())
        if not completion.complete:
            group.status = "incomplete"
            group.detail = (
                f"{completion.completed_players}/{completion.total_players} players finished, "
                f"{completion.required_players} required"
            )
            return

        try:
            matchups = self.repository.load_matchups(leg.matchup_id for leg in legs)
        except PersistenceFailure as exc:
            logger.error(
                "Could not load matchups for tournament %s round %s: %s",
                group.tournament_id,
                group.round_number,
                exc,
            )
            group.status = "failed"
            group.legs_errored = len(legs)
            group.detail = str(exc)
            result.errors.append(
                SettlementErrorEntry(
                    scope="round",
                    message=str(exc),
                    tournament_id=group.tournament_id,
                    round_number=group.round_number,
                )
            )
            return

        for leg in legs:
            matchup = matchups.get(leg.matchup_id)
            if matchup is None:
                resolution = LegResolution(
                    outcome=PickOutcome.VOID,
                    decisive=False,
                    reason=f"Void: matchup {leg.matchup_id} not found",
                )
                players: list[dict] = []
            else:
                resolution = resolve_leg(leg, matchup, states_by_id, self.policy)
                if resolution is None:
                    group.legs_deferred += 1
                    logger.debug("Leg %s waits on players still on the course", leg.leg_id)
                    continue
                players = [
                    states_by_id[pid].snapshot() for pid in matchup.player_ids if pid in states_by_id
                ]

            try:
                affected = self.repository.settle_leg(
                    leg,
                    resolution,
                    tournament_id=group.tournament_id,
                    round_number=group.round_number,
                    method=method,
                    settlement_data=_settlement_data(resolution, completion, players),
                    settled_at=self.clock(),
                )
            except PersistenceFailure as exc:
                logger.error("Failed to settle leg %s: %s", leg.leg_id, exc)
                group.legs_errored += 1
                result.errors.append(
                    SettlementErrorEntry(
                        scope="leg",
                        message=str(exc),
                        tournament_id=group.tournament_id,
                        round_number=group.round_number,
                        leg_id=leg.leg_id,
                    )
                )
                continue

            if affected:
                group.legs_settled += 1
                result.parlay_ids.add(leg.parlay_id)
                logger.debug("Leg %s settled: %s", leg.leg_id, resolution.reason)
            else:
                group.legs_already_settled += 1
                logger.info("Leg %s was already settled by another run", leg.leg_id)

        group.status = "settled"
        if group.legs_deferred:
            group.detail = f"{group.legs_deferred} legs waiting on players still on the course"
        logger.info(
            "Tournament %s round %s: %s settled, %s already settled, %s deferred, %s errors",
            group.tournament_id,
            group.round_number,
            group.legs_settled,
            group.legs_already_settled,
            group.legs_deferred,
            group.legs_errored,
        )


def _failed_tournament(
    tournament_id: int,
    rounds: dict[int, list[PendingLeg]],
    message: str,
    status: str = "failed",
) -> _TournamentResult:
    result = _TournamentResult()
    for rnd, legs in sorted(rounds.items()):
        result.groups.append(
            RoundGroupReport(
                tournament_id=tournament_id,
                round_number=rnd,
                status=status,
                legs_total=len(legs),
                detail=message,
            )
        )
        result.errors.append(
            SettlementErrorEntry(scope="tournament", message=message, tournament_id=tournament_id, round_number=rnd)
        )
    return result


def _settlement_data(
    resolution: LegResolution,
    completion: RoundCompletion,
    players: list[dict],
) -> dict:
    return {
        "resolution": resolution.to_dict(),
        "round_completion": completion.to_dict(),
        "players": players,
    }
