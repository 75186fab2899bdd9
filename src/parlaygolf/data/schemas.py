"""Pydantic schemas for DataGolf in-play responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from parlaygolf.settlement.types import PlayerRoundState, TerminalStatus

TERMINAL_MARKERS: dict[str, TerminalStatus] = {
    "WD": TerminalStatus.WITHDRAWN,
    "DNS": TerminalStatus.WITHDRAWN,
    "CUT": TerminalStatus.CUT,
    "MC": TerminalStatus.CUT,
    "DQ": TerminalStatus.DISQUALIFIED,
    "F": TerminalStatus.FINISHED,
    "FIN": TerminalStatus.FINISHED,
    "FINISHED": TerminalStatus.FINISHED,
}

RawScore = int | float | str | None


def parse_score(value: RawScore) -> int | None:
    """Normalise a feed score ("E", "+2", -3, 68.0) to an int, or None."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = value.strip().upper()
    if text == "E":
        return 0
    try:
        return int(text)
    except ValueError:
        return None


def parse_thru(value: RawScore) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    text = value.strip().upper().rstrip("*")
    if text == "F":
        return 18
    return int(text) if text.isdigit() else 0


def terminal_status_from_position(position: str | None) -> TerminalStatus | None:
    if not position:
        return None
    return TERMINAL_MARKERS.get(position.strip().upper())


class InPlayPlayerSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    dg_id: int
    player_name: str
    current_pos: str | None = None
    position: str | None = None
    round: int | None = None
    thru: RawScore = None
    today: RawScore = None
    current_score: RawScore = None
    R1: RawScore = None
    R2: RawScore = None
    R3: RawScore = None
    R4: RawScore = None

    def round_scores(self) -> dict[int, int]:
        scores: dict[int, int] = {}
        for number, raw in enumerate((self.R1, self.R2, self.R3, self.R4), start=1):
            score = parse_score(raw)
            if score is not None:
                scores[number] = score
        return scores

    def to_round_state(self) -> PlayerRoundState:
        position = self.current_pos or self.position
        return PlayerRoundState(
            player_id=self.dg_id,
            player_name=self.player_name,
            current_round=self.round,
            thru=parse_thru(self.thru),
            today=parse_score(self.today),
            round_scores=self.round_scores(),
            position=position,
            terminal_status=terminal_status_from_position(position),
        )


class InPlayInfoSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_name: str | None = None
    current_round: int | None = None
    last_update: str | None = None


class InPlayResponseSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    info: InPlayInfoSchema = Field(default_factory=InPlayInfoSchema)
    data: list[InPlayPlayerSchema] = Field(default_factory=list)
