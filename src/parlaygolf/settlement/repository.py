"""Persistence gateway for settlement reads and conditional writes."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from parlaygolf.db.database import get_session
from parlaygolf.db.models import Matchup, Parlay, ParlayPick, SettlementHistory, Tournament
from parlaygolf.settlement.aggregation import ParlayGrade, grade_parlay
from parlaygolf.settlement.errors import PersistenceFailure
from parlaygolf.settlement.policy import DEFAULT_POLICY, SettlementPolicy
from parlaygolf.settlement.types import (
    LegResolution,
    MatchupPlayers,
    ParlayOutcome,
    PendingLeg,
    PickOutcome,
    SettlementMethod,
    SettlementStatus,
    TournamentInfo,
)

logger = logging.getLogger(__name__)


class SettlementRepository:
    """Narrow database operations used by the settlement orchestrator.

    Every method runs in its own short transaction so a failure only affects
    the leg or parlay being written.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        try:
            with get_session(self.session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Database error while {action}: {exc}") from exc

    def list_pending_legs(self, tournament_id: int | None = None) -> list[PendingLeg]:
        tournament_ref = func.coalesce(ParlayPick.event_id, Matchup.event_id)
        stmt = (
            select(
                ParlayPick,
                tournament_ref.label("tournament_id"),
                func.coalesce(Parlay.round_number, Matchup.round_number).label("round_number"),
            )
            .join(Parlay, ParlayPick.parlay_id == Parlay.id)
            .join(Matchup, ParlayPick.matchup_id == Matchup.id, isouter=True)
            .where(ParlayPick.settlement_status == SettlementStatus.PENDING.value)
            .order_by(ParlayPick.id)
        )
        if tournament_id is not None:
            stmt = stmt.where(tournament_ref == tournament_id)

        with self._session("listing pending legs") as session:
            rows = session.execute(stmt).all()
            return [
                PendingLeg(
                    leg_id=pick.id,
                    parlay_id=pick.parlay_id,
                    matchup_id=pick.matchup_id,
                    tournament_id=row_tournament,
                    round_number=row_round,
                    picked_player_id=pick.picked_player_id,
                    pick_position=pick.pick_position or 1,
                )
                for pick, row_tournament, row_round in rows
            ]

    def get_tournament(self, tournament_id: int) -> TournamentInfo | None:
        with self._session(f"loading tournament {tournament_id}") as session:
            tournament = session.get(Tournament, tournament_id)
            if tournament is None:
                return None
            return TournamentInfo(
                event_id=tournament.event_id,
                event_name=tournament.event_name,
                tour=tournament.tour,
            )

    def load_matchups(self, matchup_ids: Iterable[int]) -> dict[int, MatchupPlayers]:
        ids = sorted(set(matchup_ids))
        if not ids:
            return {}
        with self._session("loading matchups") as session:
            matchups = session.scalars(select(Matchup).where(Matchup.id.in_(ids)))
            result: dict[int, MatchupPlayers] = {}
            for matchup in matchups:
                players = [(matchup.player1_id, matchup.player1_name), (matchup.player2_id, matchup.player2_name)]
                if matchup.player3_id is not None:
                    players.append((matchup.player3_id, matchup.player3_name or ""))
                result[matchup.id] = MatchupPlayers(
                    matchup_id=matchup.id,
                    tournament_id=matchup.event_id,
                    round_number=matchup.round_number,
                    player_ids=tuple(pid for pid, _ in players),
                    player_names=tuple(name for _, name in players),
                )
            return result

    def settle_leg(
        self,
        leg: PendingLeg,
        resolution: LegResolution,
        *,
        tournament_id: int,
        round_number: int,
        method: SettlementMethod,
        settlement_data: dict[str, Any] | None = None,
        settled_at: datetime | None = None,
    ) -> int:
        """Settle a leg only if it is still pending; return the affected row count."""

        settled_at = settled_at or datetime.utcnow()
        stmt = (
            update(ParlayPick)
            .where(
                ParlayPick.id == leg.leg_id,
                ParlayPick.settlement_status == SettlementStatus.PENDING.value,
            )
            .values(
                settlement_status=SettlementStatus.SETTLED.value,
                pick_outcome=resolution.outcome.value,
                settled_at=settled_at,
                settlement_notes=resolution.reason,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session(f"settling leg {leg.leg_id}") as session:
            affected = session.execute(stmt).rowcount
            if affected:
                session.add(
                    SettlementHistory(
                        parlay_pick_id=leg.leg_id,
                        event_id=tournament_id,
                        round_number=round_number,
                        settlement_method=method.value,
                        outcome=resolution.outcome.value,
                        reason=resolution.reason,
                        settlement_data=settlement_data or {},
                        settled_by="system" if method is SettlementMethod.AUTOMATIC else "operator",
                        created_at=settled_at,
                    )
                )
        return affected

    def list_parlays_needing_regrade(self, tournament_id: int | None = None) -> list[int]:
        """Unsettled parlays whose stored outcome lags behind their settled legs.

        Covers parlays with no pending legs left and parlays holding a lost leg
        that are not yet marked lost.
        """

        picks = select(ParlayPick.id).where(ParlayPick.parlay_id == Parlay.id)
        has_pending = picks.where(ParlayPick.settlement_status == SettlementStatus.PENDING.value).exists()
        has_loss = picks.where(
            ParlayPick.settlement_status == SettlementStatus.SETTLED.value,
            ParlayPick.pick_outcome == PickOutcome.LOSS.value,
        ).exists()
        stmt = (
            select(Parlay.id)
            .where(
                Parlay.is_settled.is_(False),
                picks.exists(),
                or_(~has_pending, and_(has_loss, Parlay.outcome != ParlayOutcome.LOST.value)),
            )
            .order_by(Parlay.id)
        )
        if tournament_id is not None:
            in_tournament = picks.where(
                or_(
                    ParlayPick.event_id == tournament_id,
                    and_(
                        ParlayPick.event_id.is_(None),
                        ParlayPick.matchup_id.in_(select(Matchup.id).where(Matchup.event_id == tournament_id)),
                    ),
                )
            ).exists()
            stmt = stmt.where(in_tournament)

        with self._session("listing parlays to regrade") as session:
            return list(session.scalars(stmt))

    def regrade_parlay(
        self,
        parlay_id: int,
        policy: SettlementPolicy = DEFAULT_POLICY,
        settled_at: datetime | None = None,
    ) -> ParlayGrade:
        """Recompute a parlay's derived outcome from the current state of its legs."""

        with self._session(f"regrading parlay {parlay_id}") as session:
            parlay = session.get(Parlay, parlay_id)
            if parlay is None:
                raise PersistenceFailure(f"Parlay {parlay_id} not found")
            statuses = session.execute(
                select(ParlayPick.settlement_status, ParlayPick.pick_outcome).where(
                    ParlayPick.parlay_id == parlay_id
                )
            ).all()
            outcomes = [
                PickOutcome(outcome) if status == SettlementStatus.SETTLED.value and outcome else None
                for status, outcome in statuses
            ]
            grade = grade_parlay(
                outcomes,
                stake=Decimal(str(parlay.stake)),
                potential_payout=Decimal(str(parlay.potential_payout)),
                policy=policy,
            )
            parlay.outcome = grade.outcome.value
            parlay.is_settled = grade.is_settled
            parlay.actual_payout = grade.actual_payout
            if grade.is_settled and parlay.settled_at is None:
                parlay.settled_at = settled_at or datetime.utcnow()
            logger.info("Parlay %s graded %s (settled=%s)", parlay_id, grade.outcome.value, grade.is_settled)
            return grade

    def status_summary(self) -> dict[str, Any]:
        tournament_ref = func.coalesce(ParlayPick.event_id, Matchup.event_id)
        with self._session("summarising settlement status") as session:
            by_status = dict(
                session.execute(
                    select(ParlayPick.settlement_status, func.count(ParlayPick.id)).group_by(
                        ParlayPick.settlement_status
                    )
                ).all()
            )
            pending_rows = session.execute(
                select(tournament_ref, Tournament.event_name, Tournament.tour, func.count(ParlayPick.id))
                .join(Matchup, ParlayPick.matchup_id == Matchup.id, isouter=True)
                .join(Tournament, Tournament.event_id == tournament_ref, isouter=True)
                .where(ParlayPick.settlement_status == SettlementStatus.PENDING.value)
                .group_by(tournament_ref, Tournament.event_name, Tournament.tour)
                .order_by(tournament_ref)
            ).all()
        return {
            "total_picks": sum(by_status.values()),
            "status_breakdown": by_status,
            "pending_picks": by_status.get(SettlementStatus.PENDING.value, 0),
            "events": [
                {
                    "event_id": event_id,
                    "tournament_name": name or "Unknown",
                    "tour": tour or "Unknown",
                    "pending_picks": count,
                }
                for event_id, name, tour, count in pending_rows
            ],
        }
