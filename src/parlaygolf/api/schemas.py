"""Pydantic schemas for the ParlayLab Golf settlement API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from parlaygolf.settlement.types import SettlementMethod


class SettleRoundsRequest(BaseModel):
    method: SettlementMethod = SettlementMethod.AUTOMATIC


class SettleTournamentRequest(BaseModel):
    event_id: int = Field(gt=0)
    method: SettlementMethod = SettlementMethod.AUTOMATIC


class RoundGroupResponse(BaseModel):
    tournament_id: int
    round_number: int
    status: str
    legs_total: int
    legs_settled: int
    legs_already_settled: int
    legs_errored: int
    legs_deferred: int = 0
    detail: str | None = None


class SettlementErrorResponse(BaseModel):
    scope: str
    message: str
    tournament_id: int | None = None
    round_number: int | None = None
    leg_id: int | None = None


class SettlementRunResponse(BaseModel):
    success: bool
    scope: str
    method: str
    started_at: datetime
    finished_at: datetime | None = None
    tournaments_processed: int
    rounds_processed: int
    rounds_incomplete: int
    legs_settled: int
    legs_already_settled: int
    legs_pending: int
    legs_errored: int
    legs_deferred: int = 0
    parlays_updated: int
    parlays_settled: int
    groups: list[RoundGroupResponse] = Field(default_factory=list)
    errors: list[SettlementErrorResponse] = Field(default_factory=list)


class PendingEventResponse(BaseModel):
    event_id: int | None
    tournament_name: str
    tour: str
    pending_picks: int


class SettlementStatusResponse(BaseModel):
    total_picks: int
    pending_picks: int
    status_breakdown: dict[str, int]
    events: list[PendingEventResponse]


class RoundCompletionResponse(BaseModel):
    tournament_id: int
    round_number: int
    complete: bool
    completed_players: int
    total_players: int
    required_players: int
    in_progress_players: int
    not_started_players: int
    completion_percentage: float
