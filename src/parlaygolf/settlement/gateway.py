"""Results gateway: player round states for a tournament."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from pydantic import ValidationError

from parlaygolf.data.datagolf_client import DataGolfClient
from parlaygolf.data.schemas import InPlayResponseSchema
from parlaygolf.settlement.errors import DataUnavailable, TransientGatewayError
from parlaygolf.settlement.types import PlayerRoundState, TournamentInfo

logger = logging.getLogger(__name__)

EURO_TOURS = {"euro", "dp_world", "dp world"}


class ResultsGateway(Protocol):
    def fetch_player_round_states(self, tournament_id: int) -> list[PlayerRoundState]:
        """Return every player's state, raising TransientGatewayError when unreachable."""
        ...


def feed_tour_for(tour: str | None, event_name: str | None = None) -> str:
    """Map a tournament's tour onto the feed that carries it."""

    if tour:
        normalized = tour.strip().lower()
        if normalized in EURO_TOURS:
            return "euro"
        if normalized in {"pga", "korn_ferry", "korn ferry", "liv"}:
            return "pga"
    if event_name:
        name = event_name.lower()
        if "euro" in name or "dp world" in name or "european" in name:
            return "euro"
    return "pga"


def _normalise_event_name(name: str) -> str:
    return "".join(ch for ch in name.lower() if ch.isalnum())


def same_event(expected: str, reported: str | None) -> bool:
    if not reported:
        return True
    left, right = _normalise_event_name(expected), _normalise_event_name(reported)
    return left in right or right in left


class DataGolfResultsGateway:
    """Adapts the DataGolf in-play feed to player round states."""

    def __init__(
        self,
        client: DataGolfClient,
        tournament_lookup: Callable[[int], TournamentInfo | None],
    ) -> None:
        self.client = client
        self.tournament_lookup = tournament_lookup

    def close(self) -> None:
        self.client.close()

    def fetch_player_round_states(self, tournament_id: int) -> list[PlayerRoundState]:
        tournament = self.tournament_lookup(tournament_id)
        if tournament is None:
            raise DataUnavailable(tournament_id, "tournament is not in the schedule")

        tour = feed_tour_for(tournament.tour, tournament.event_name)
        payload = self.client.get_in_play(tour)
        try:
            response = InPlayResponseSchema.model_validate(payload)
        except ValidationError as exc:
            raise TransientGatewayError(
                f"Malformed {tour} in-play payload for tournament {tournament_id}: "
                f"{exc.error_count()} validation errors"
            ) from exc

        if not same_event(tournament.event_name, response.info.event_name):
            raise DataUnavailable(
                tournament_id,
                f"feed is serving '{response.info.event_name}', not '{tournament.event_name}'",
            )

        states = [player.to_round_state() for player in response.data]
        logger.debug("Parsed %s player states for tournament %s", len(states), tournament_id)
        return states
