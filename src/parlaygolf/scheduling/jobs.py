"""Scheduling entry points."""

from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, List, Optional

from parlaygolf.config import configure_logging
from parlaygolf.db.database import init_db
from parlaygolf.settlement.triggers import build_orchestrator, settle_rounds, settle_tournament
from parlaygolf.settlement.types import SettlementMethod

logger = logging.getLogger(__name__)


def run_settlement_job(
    tournament_id: int | None = None,
    method: SettlementMethod = SettlementMethod.AUTOMATIC,
) -> Dict[str, Any]:
    """Run one settlement pass: every finished round, or one tournament."""

    orchestrator = build_orchestrator()
    try:
        if tournament_id is None:
            report = settle_rounds(orchestrator, method)
        else:
            report = settle_tournament(orchestrator, tournament_id, method)
    finally:
        orchestrator.close()
    for error in report.errors:
        logger.warning(
            "Settlement error (%s) tournament=%s round=%s: %s",
            error.scope,
            error.tournament_id,
            error.round_number,
            error.message,
        )
    return report.to_dict()


def main(argv: Optional[List[str]] = None) -> int:  # pragma: no cover - CLI convenience
    parser = argparse.ArgumentParser(description="Settle pending golf parlay legs.")
    parser.add_argument("--tournament", type=int, default=None, help="Only settle this DataGolf event id.")
    parser.add_argument(
        "--manual",
        action="store_true",
        help="Record the run as a manual settlement instead of an automatic one.",
    )
    args = parser.parse_args(argv)

    configure_logging()
    init_db()
    method = SettlementMethod.MANUAL if args.manual else SettlementMethod.AUTOMATIC
    result = run_settlement_job(args.tournament, method)
    return 0 if result["success"] else 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
