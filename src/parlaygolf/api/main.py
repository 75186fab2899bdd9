"""Serve the golf settlement API (settle triggers, status and round completion).

Creates the settlement tables on startup so a fresh database can accept
settlement runs straight away.
"""

from __future__ import annotations

import argparse
import logging
import os

import uvicorn

from parlaygolf.config import configure_logging, get_settings
from parlaygolf.db.database import init_db

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the golf parlay settlement API")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    parser.add_argument("--log-level", default=None, help="Overrides the configured log level")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    level = args.log_level or get_settings().log_level
    configure_logging(level)
    init_db()
    logger.info("Settlement API listening on %s:%s", args.host, args.port)
    uvicorn.run(
        "parlaygolf.api.server:app",
        host=args.host,
        port=args.port,
        log_level=level.lower(),
        reload=False,
    )


if __name__ == "__main__":  # pragma: no cover
    main()
