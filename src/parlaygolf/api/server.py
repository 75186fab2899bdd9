"""FastAPI trigger surface for ParlayLab Golf settlement."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends, FastAPI, Header, HTTPException, Query, status

from parlaygolf import __version__
from parlaygolf.api.schemas import (
    RoundCompletionResponse,
    SettlementRunResponse,
    SettlementStatusResponse,
    SettleRoundsRequest,
    SettleTournamentRequest,
)
from parlaygolf.config import get_api_access_key
from parlaygolf.settlement.completion import RoundCompletionDetector
from parlaygolf.settlement.errors import DataUnavailable, PersistenceFailure, TransientGatewayError
from parlaygolf.settlement.orchestrator import SettlementOrchestrator
from parlaygolf.settlement.report import SettlementRunReport
from parlaygolf.settlement.repository import SettlementRepository
from parlaygolf.settlement.triggers import (
    build_orchestrator,
    check_round_completion,
    settle_rounds,
    settle_tournament,
    settlement_status,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="ParlayLab Golf Settlement API",
    version=__version__,
    description="Settles golf matchup parlays once tournament rounds are complete.",
)


def get_orchestrator() -> Iterator[SettlementOrchestrator]:
    try:
        orchestrator = build_orchestrator()
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    try:
        yield orchestrator
    finally:
        orchestrator.close()


def get_repository() -> SettlementRepository:
    return SettlementRepository()


def get_detector(orchestrator: Annotated[SettlementOrchestrator, Depends(get_orchestrator)]) -> RoundCompletionDetector:
    return orchestrator.detector


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    expected = get_api_access_key()
    if not x_api_key or x_api_key != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


APIKeyDep = Annotated[None, Depends(require_api_key)]
OrchestratorDep = Annotated[SettlementOrchestrator, Depends(get_orchestrator)]
RepositoryDep = Annotated[SettlementRepository, Depends(get_repository)]
DetectorDep = Annotated[RoundCompletionDetector, Depends(get_detector)]
EventQuery = Annotated[int, Query(gt=0)]
RoundQuery = Annotated[int, Query(ge=1, le=4)]


def _run_response(report: SettlementRunReport) -> SettlementRunResponse:
    return SettlementRunResponse.model_validate(report.to_dict())


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/settle-rounds", response_model=SettlementRunResponse)
def api_settle_rounds(
    _: APIKeyDep,
    orchestrator: OrchestratorDep,
    payload: SettleRoundsRequest | None = None,
) -> SettlementRunResponse:
    payload = payload or SettleRoundsRequest()
    try:
        report = settle_rounds(orchestrator, payload.method)
    except PersistenceFailure as exc:
        logger.error("Round settlement aborted: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return _run_response(report)


@app.post("/settle", response_model=SettlementRunResponse)
def api_settle_tournament(
    payload: SettleTournamentRequest,
    _: APIKeyDep,
    orchestrator: OrchestratorDep,
) -> SettlementRunResponse:
    try:
        report = settle_tournament(orchestrator, payload.event_id, payload.method)
    except PersistenceFailure as exc:
        logger.error("Settlement of tournament %s aborted: %s", payload.event_id, exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return _run_response(report)


@app.get("/settle-status", response_model=SettlementStatusResponse)
def api_settlement_status(_: APIKeyDep, repository: RepositoryDep) -> SettlementStatusResponse:
    try:
        summary = settlement_status(repository)
    except PersistenceFailure as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return SettlementStatusResponse.model_validate(summary)


@app.get("/round-completion", response_model=RoundCompletionResponse)
def api_round_completion(
    event_id: EventQuery,
    round_num: RoundQuery,
    _: APIKeyDep,
    detector: DetectorDep,
) -> RoundCompletionResponse:
    try:
        completion = check_round_completion(detector, event_id, round_num)
    except DataUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except TransientGatewayError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return RoundCompletionResponse.model_validate(completion.to_dict())
