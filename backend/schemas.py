"""Inbound WebSocket action payloads.

Clients are phones running whatever the browser sends, so validators coerce
loosely (missing names, numeric strings, truthy flags) instead of rejecting.
A payload that still fails validation is dropped by the dispatcher.
"""
import math
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

import config


def _as_int(value) -> Optional[int]:
    """Integer value of numeric input, or None when there isn't one.

    Ints pass through untouched so arbitrarily large values keep every digit.
    """
    if isinstance(value, int):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    try:
        n = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return int(n) if math.isfinite(n) else None


def clamp_team(value) -> int:
    """Coerce anything into a valid team index; non-numeric input maps to team 0."""
    n = _as_int(value)
    if n is None:
        return 0
    return max(0, min(config.TEAM_COUNT - 1, n))


def _as_text(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class RoomAction(BaseModel):
    code: Optional[str] = None

    @field_validator('code', mode='before')
    @classmethod
    def normalize_code(cls, v):
        if v is None:
            return None
        return _as_text(v).strip().upper()


class CreateRoomMessage(BaseModel):
    hostName: str = ""
    mode: Literal["BUZZER", "TURNS"] = "BUZZER"

    @field_validator('hostName', mode='before')
    @classmethod
    def coerce_host_name(cls, v):
        return _as_text(v)

    @field_validator('mode', mode='before')
    @classmethod
    def coerce_mode(cls, v):
        return "TURNS" if v == "TURNS" else "BUZZER"


class JoinMessage(BaseModel):
    code: str
    playerName: str = ""
    teamIndex: int = 0

    @field_validator('code', mode='before')
    @classmethod
    def normalize_code(cls, v):
        return _as_text(v).strip().upper()

    @field_validator('playerName', mode='before')
    @classmethod
    def coerce_player_name(cls, v):
        return _as_text(v)

    @field_validator('teamIndex', mode='before')
    @classmethod
    def clamp_team_index(cls, v):
        return clamp_team(v)


class PickClueMessage(RoomAction):
    catIdx: int
    rowIdx: int

    @field_validator('catIdx', 'rowIdx', mode='before')
    @classmethod
    def reject_bool(cls, v):
        if isinstance(v, bool):
            raise ValueError("board index must be a number")
        return v


class CloseClueMessage(RoomAction):
    markUsed: bool = False

    @field_validator('markUsed', mode='before')
    @classmethod
    def truthy(cls, v):
        return bool(v)


class ScoreMessage(RoomAction):
    teamIndex: int = 0
    delta: int = 0

    @field_validator('teamIndex', mode='before')
    @classmethod
    def clamp_team_index(cls, v):
        return clamp_team(v)

    @field_validator('delta', mode='before')
    @classmethod
    def coerce_delta(cls, v):
        if isinstance(v, bool):
            return 0
        n = _as_int(v)
        return 0 if n is None else n


class RenameTeamMessage(RoomAction):
    teamIndex: int = 0
    name: str = ""

    @field_validator('teamIndex', mode='before')
    @classmethod
    def clamp_team_index(cls, v):
        return clamp_team(v)

    @field_validator('name', mode='before')
    @classmethod
    def coerce_name(cls, v):
        return _as_text(v)


class SetTurnMessage(RoomAction):
    teamIndex: int = 0

    @field_validator('teamIndex', mode='before')
    @classmethod
    def clamp_team_index(cls, v):
        return clamp_team(v)


class NewRoundMessage(RoomAction):
    keepScores: bool = False

    @field_validator('keepScores', mode='before')
    @classmethod
    def truthy(cls, v):
        return bool(v)


ROOM_ACTIONS = {
    "PICK_CLUE": PickClueMessage,
    "SHOW_ANSWER": RoomAction,
    "CLOSE_CLUE": CloseClueMessage,
    "SCORE": ScoreMessage,
    "RENAME_TEAM": RenameTeamMessage,
    "SET_TURN": SetTurnMessage,
    "NEXT_TURN": RoomAction,
    "BUZZ": RoomAction,
    "UNLOCK_BUZZER": RoomAction,
    "NEW_ROUND": NewRoundMessage,
}
