"""ORM models for ParlayLab Golf."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

LOWEST_ROUND_SCORE_TIES_PUSH = "lowest_round_score_ties_push"


class Base(DeclarativeBase):
    """Base declarative class."""


class Tournament(Base):
    """Tournament metadata, kept in sync by the schedule ingestion job."""

    __tablename__ = "tournaments"

    event_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_name: Mapped[str] = mapped_column(String(255), nullable=False)
    tour: Mapped[str] = mapped_column(String(32), default="pga")
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)

    matchups: Mapped[list[Matchup]] = relationship(back_populates="tournament")


class Matchup(Base):
    """A 2-ball or 3-ball head-to-head grouping for one round."""

    __tablename__ = "matchups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("tournaments.event_id"), nullable=False)
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    matchup_type: Mapped[str] = mapped_column(String(16), default="2ball")
    player1_id: Mapped[int] = mapped_column(Integer, nullable=False)
    player1_name: Mapped[str] = mapped_column(String(255), nullable=False)
    player2_id: Mapped[int] = mapped_column(Integer, nullable=False)
    player2_name: Mapped[str] = mapped_column(String(255), nullable=False)
    player3_id: Mapped[int | None] = mapped_column(Integer)
    player3_name: Mapped[str | None] = mapped_column(String(255))
    settlement_criteria: Mapped[str] = mapped_column(
        String(64), default=LOWEST_ROUND_SCORE_TIES_PUSH
    )

    tournament: Mapped[Tournament] = relationship(back_populates="matchups")
    picks: Mapped[list[ParlayPick]] = relationship(back_populates="matchup")


class Parlay(Base):
    """A user's wager; outcome fields are derived from its picks."""

    __tablename__ = "parlays"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    stake: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    total_odds: Mapped[float] = mapped_column(Float, nullable=False)
    potential_payout: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    round_number: Mapped[int | None] = mapped_column(Integer)
    outcome: Mapped[str] = mapped_column(String(16), default="pending")
    is_settled: Mapped[bool] = mapped_column(Boolean, default=False)
    actual_payout: Mapped[float | None] = mapped_column(Numeric(12, 2))
    settled_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    picks: Mapped[list[ParlayPick]] = relationship(
        back_populates="parlay",
        cascade="all, delete-orphan",
    )


class ParlayPick(Base):
    """One matchup selection inside a parlay; the unit of settlement."""

    __tablename__ = "parlay_picks"
    __table_args__ = (
        Index("ix_parlay_picks_event_settlement", "event_id", "settlement_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    parlay_id: Mapped[int] = mapped_column(ForeignKey("parlays.id"), nullable=False)
    matchup_id: Mapped[int] = mapped_column(ForeignKey("matchups.id"), nullable=False)
    event_id: Mapped[int | None] = mapped_column(Integer)
    pick_position: Mapped[int] = mapped_column(Integer, default=1)
    picked_player_id: Mapped[int | None] = mapped_column(Integer)
    picked_player_name: Mapped[str | None] = mapped_column(String(255))
    settlement_status: Mapped[str] = mapped_column(String(16), default="pending")
    pick_outcome: Mapped[str | None] = mapped_column(String(16))
    settled_at: Mapped[datetime | None] = mapped_column(DateTime)
    settlement_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    parlay: Mapped[Parlay] = relationship(back_populates="picks")
    matchup: Mapped[Matchup] = relationship(back_populates="picks")


class SettlementHistory(Base):
    """Audit row written once per settled pick."""

    __tablename__ = "settlement_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    parlay_pick_id: Mapped[int] = mapped_column(
        ForeignKey("parlay_picks.id"), nullable=False, unique=True
    )
    event_id: Mapped[int] = mapped_column(Integer, nullable=False)
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    settlement_method: Mapped[str] = mapped_column(String(16), nullable=False)
    outcome: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[str] = mapped_column(Text, default="")
    settlement_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    settled_by: Mapped[str] = mapped_column(String(64), default="system")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
