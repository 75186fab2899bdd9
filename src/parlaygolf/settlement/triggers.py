"""Entry points shared by the API and the scheduled job."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from parlaygolf.config import Settings, get_settings
from parlaygolf.data.datagolf_client import DataGolfClient
from parlaygolf.settlement.completion import RoundCompletionDetector
from parlaygolf.settlement.gateway import DataGolfResultsGateway, ResultsGateway
from parlaygolf.settlement.orchestrator import SettlementOrchestrator
from parlaygolf.settlement.policy import SettlementPolicy
from parlaygolf.settlement.report import SettlementRunReport
from parlaygolf.settlement.repository import SettlementRepository
from parlaygolf.settlement.types import RoundCompletion, SettlementMethod, SettlementScope

logger = logging.getLogger(__name__)


def build_orchestrator(
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
    gateway: ResultsGateway | None = None,
) -> SettlementOrchestrator:
    """Wire the repository, DataGolf gateway and policy from settings."""

    settings = settings or get_settings()
    repository = SettlementRepository(session_factory)
    if gateway is None:
        gateway = DataGolfResultsGateway(DataGolfClient(), repository.get_tournament)
    return SettlementOrchestrator(
        repository,
        gateway,
        policy=SettlementPolicy.from_settings(settings),
        max_workers=settings.settlement_max_workers,
    )


def settle_rounds(
    orchestrator: SettlementOrchestrator,
    method: SettlementMethod = SettlementMethod.AUTOMATIC,
) -> SettlementRunReport:
    """Settle every finished round across all tournaments with pending legs."""

    return orchestrator.settle(SettlementScope.all_pending(method))


def settle_tournament(
    orchestrator: SettlementOrchestrator,
    tournament_id: int,
    method: SettlementMethod = SettlementMethod.AUTOMATIC,
) -> SettlementRunReport:
    """Settle the finished rounds of one tournament."""

    return orchestrator.settle(SettlementScope.for_tournament(tournament_id, method))


def settlement_status(repository: SettlementRepository) -> dict[str, Any]:
    summary = repository.status_summary()
    logger.debug("Settlement status: %s pending picks", summary["pending_picks"])
    return summary


def check_round_completion(
    detector: RoundCompletionDetector,
    tournament_id: int,
    round_number: int,
) -> RoundCompletion:
    return detector.is_round_complete(tournament_id, round_number)
