import copy
import asyncio
import logging
from typing import Dict, List, Optional, Set

import config
from schemas import clamp_team

logger = logging.getLogger(__name__)

MODE_BUZZER = "BUZZER"
MODE_TURNS = "TURNS"
SHOWING_QUESTION = "QUESTION"
SHOWING_ANSWER = "ANSWER"


def clean_name(name, max_length: int, default: str) -> str:
    name = (name or "").strip()[:max_length].strip()
    return name or default


def default_team_name(index: int) -> str:
    return f"Team {index + 1}"


class Room:
    """State machine for one game session.

    Every operation takes the acting connection id and returns True when it
    changed the room, False when it was rejected as a no-op. Host-only
    operations silently ignore everyone but the host.
    """

    def __init__(self, code: str, host_id: str, host_name: str, mode: str, board: dict):
        self.code = code
        self.host_id = host_id
        self.host_name = clean_name(host_name, config.MAX_HOST_NAME_LENGTH, "Host")
        self.mode = MODE_TURNS if mode == MODE_TURNS else MODE_BUZZER
        self.teams: List[dict] = [
            {"name": default_team_name(i), "score": 0} for i in range(config.TEAM_COUNT)
        ]
        self.players: Dict[str, dict] = {}  # client_id -> {name, teamIndex}
        self.board = board
        self.active: Optional[dict] = None  # {catIdx, rowIdx, showing}
        self.turn = {"teamIndex": 0}
        self.buzzer = {"locked": False, "winner": None}
        self.used_question_ids: Set = set()
        self.lock = asyncio.Lock()
        self.closed = False

    def is_host(self, client_id: str) -> bool:
        return client_id == self.host_id

    def has_player(self, client_id: str) -> bool:
        return client_id in self.players

    def _clue(self, cat_idx: int, row_idx: int) -> Optional[dict]:
        categories = self.board.get("categories") or []
        if not (0 <= cat_idx < len(categories)):
            return None
        clues = categories[cat_idx].get("clues") or []
        if not (0 <= row_idx < len(clues)):
            return None
        return clues[row_idx]

    def _reset_buzzer(self):
        self.buzzer = {"locked": False, "winner": None}

    # --- Players ---

    def add_player(self, client_id: str, name: str, team_index) -> bool:
        if client_id in self.players:
            return False
        self.players[client_id] = {
            "name": clean_name(name, config.MAX_PLAYER_NAME_LENGTH, "Player"),
            "teamIndex": clamp_team(team_index),
        }
        logger.info("Player '%s' joined room %s on team %d",
                    self.players[client_id]["name"], self.code, self.players[client_id]["teamIndex"])
        return True

    def remove_player(self, client_id: str) -> bool:
        player = self.players.pop(client_id, None)
        if player is None:
            return False
        logger.info("Player '%s' left room %s", player["name"], self.code)
        return True

    # --- Clue flow ---

    def pick_clue(self, actor: str, cat_idx: int, row_idx: int) -> bool:
        if not self.is_host(actor) or self.active is not None:
            return False
        clue = self._clue(cat_idx, row_idx)
        if clue is None or clue.get("used"):
            return False
        self.active = {"catIdx": cat_idx, "rowIdx": row_idx, "showing": SHOWING_QUESTION}
        # Opens a fresh buzz window
        self._reset_buzzer()
        return True

    def show_answer(self, actor: str) -> bool:
        if not self.is_host(actor) or self.active is None:
            return False
        if self.active["showing"] == SHOWING_ANSWER:
            return False
        self.active["showing"] = SHOWING_ANSWER
        return True

    def close_clue(self, actor: str, mark_used: bool) -> bool:
        if not self.is_host(actor) or self.active is None:
            return False
        if mark_used:
            clue = self._clue(self.active["catIdx"], self.active["rowIdx"])
            if clue is not None:
                clue["used"] = True
        self.active = None
        return True

    # --- Buzzer ---

    def buzz(self, actor: str) -> bool:
        if self.mode != MODE_BUZZER or self.active is None or self.buzzer["locked"]:
            return False
        player = self.players.get(actor)
        if player is None:
            return False
        self.buzzer = {
            "locked": True,
            "winner": {"name": player["name"], "teamIndex": player["teamIndex"]},
        }
        logger.info("Room %s: '%s' buzzed in first", self.code, player["name"])
        return True

    def unlock_buzzer(self, actor: str) -> bool:
        if not self.is_host(actor):
            return False
        self._reset_buzzer()
        return True

    # --- Teams and turns ---

    def score(self, actor: str, team_index, delta: int) -> bool:
        if not self.is_host(actor):
            return False
        self.teams[clamp_team(team_index)]["score"] += int(delta)
        return True

    def rename_team(self, actor: str, team_index, name: str) -> bool:
        if not self.is_host(actor):
            return False
        idx = clamp_team(team_index)
        self.teams[idx]["name"] = clean_name(name, config.MAX_TEAM_NAME_LENGTH, default_team_name(idx))
        return True

    def set_turn(self, actor: str, team_index) -> bool:
        if not self.is_host(actor):
            return False
        self.turn["teamIndex"] = clamp_team(team_index)
        return True

    def next_turn(self, actor: str) -> bool:
        if not self.is_host(actor):
            return False
        self.turn["teamIndex"] = (self.turn["teamIndex"] + 1) % config.TEAM_COUNT
        return True

    # --- Rounds ---

    def new_round(self, actor: str, board: dict, keep_scores: bool) -> bool:
        if not self.is_host(actor):
            return False
        self.board = board
        self.active = None
        self._reset_buzzer()
        if not keep_scores:
            for team in self.teams:
                team["score"] = 0
        logger.info("Room %s started a new round (scores %s)", self.code,
                    "kept" if keep_scores else "reset")
        return True

    def snapshot(self) -> dict:
        """Serializable copy of the public room state."""
        return copy.deepcopy({
            "code": self.code,
            "hostName": self.host_name,
            "mode": self.mode,
            "teams": self.teams,
            "players": list(self.players.values()),
            "board": self.board,
            "active": self.active,
            "turn": self.turn,
            "buzzer": self.buzzer,
        })
