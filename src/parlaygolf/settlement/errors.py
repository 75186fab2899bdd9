"""Settlement error taxonomy.

Zero-row conditional writes and legs without enough data to compare are not
errors: the first is counted as already settled, the second resolves to void.
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base class for failures that keep a group pending."""


class DataUnavailable(SettlementError):
    """The results feed has nothing usable for a tournament."""

    def __init__(self, tournament_id: int, detail: str = "no player data returned") -> None:
        super().__init__(f"No results data for tournament {tournament_id}: {detail}")
        self.tournament_id = tournament_id


class TransientGatewayError(SettlementError):
    """Timeout, 5xx or malformed payload from the results feed."""


class PersistenceFailure(SettlementError):
    """The database rejected a settlement read or write."""
