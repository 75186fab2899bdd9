"""Shared fixtures: a throwaway SQLite database and seeding helpers."""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session, sessionmaker

from parlaygolf.db.database import build_engine, init_db
from parlaygolf.db.models import Matchup, Parlay, ParlayPick, Tournament


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker[Session]:
    engine = build_engine(f"sqlite:///{tmp_path / 'settlement.db'}")
    init_db(engine)
    yield sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)
    engine.dispose()


class Seeder:
    def __init__(self, factory: sessionmaker[Session]) -> None:
        self.factory = factory

    def tournament(self, event_id: int, event_name: str, tour: str = "pga") -> None:
        with self.factory() as session:
            session.add(Tournament(event_id=event_id, event_name=event_name, tour=tour))
            session.commit()

    def matchup(self, event_id: int, round_number: int, players: list[tuple[int, str]]) -> int:
        fields = {
            "event_id": event_id,
            "round_number": round_number,
            "matchup_type": "3ball" if len(players) == 3 else "2ball",
        }
        for index, (player_id, name) in enumerate(players, start=1):
            fields[f"player{index}_id"] = player_id
            fields[f"player{index}_name"] = name
        with self.factory() as session:
            matchup = Matchup(**fields)
            session.add(matchup)
            session.commit()
            return matchup.id

    def parlay(
        self,
        picks: list[tuple[int, int]],
        *,
        event_id: int | None = None,
        round_number: int | None = None,
        stake: str = "10.00",
        potential_payout: str = "30.00",
    ) -> tuple[int, list[int]]:
        """Create a parlay from ``(matchup_id, picked_player_id)`` pairs."""

        with self.factory() as session:
            parlay = Parlay(
                stake=Decimal(stake),
                total_odds=3.0,
                potential_payout=Decimal(potential_payout),
                round_number=round_number,
            )
            session.add(parlay)
            session.flush()
            pick_ids = []
            for matchup_id, player_id in picks:
                pick = ParlayPick(
                    parlay_id=parlay.id,
                    matchup_id=matchup_id,
                    event_id=event_id,
                    picked_player_id=player_id,
                )
                session.add(pick)
                session.flush()
                pick_ids.append(pick.id)
            session.commit()
            return parlay.id, pick_ids


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)
