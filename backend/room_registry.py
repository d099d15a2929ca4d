import logging
from typing import Dict, List, Optional

import config
from board_engine import BoardEngine
from room import Room
from room_codes import generate_room_code

logger = logging.getLogger(__name__)


class RoomLimitReached(Exception):
    """Raised when MAX_ROOMS rooms are already live."""
    pass


def normalize_code(code) -> str:
    return (code or "").strip().upper() if isinstance(code, str) else ""


class RoomRegistry:
    """Owns every live room, keyed by room code."""

    def __init__(self, board_engine: BoardEngine, max_rooms: int = config.MAX_ROOMS):
        self.board_engine = board_engine
        self.max_rooms = max_rooms
        self.rooms: Dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self.rooms)

    def __contains__(self, code) -> bool:
        return normalize_code(code) in self.rooms

    def codes(self) -> List[str]:
        return list(self.rooms)

    async def create(self, host_id: str, host_name: str, mode: str) -> Room:
        if len(self.rooms) >= self.max_rooms:
            raise RoomLimitReached(f"{len(self.rooms)} rooms already live")

        used_ids: set = set()
        board = await self.board_engine.build_board(used_ids)

        # Code allocation and registration happen with no await in between
        if len(self.rooms) >= self.max_rooms:
            raise RoomLimitReached(f"{len(self.rooms)} rooms already live")
        code = generate_room_code(self.rooms)
        room = Room(code, host_id, host_name, mode, board)
        room.used_question_ids = used_ids
        self.rooms[code] = room
        logger.info("Room %s created by '%s' (%s mode)", code, room.host_name, room.mode)
        return room

    def get(self, code) -> Optional[Room]:
        return self.rooms.get(normalize_code(code))

    def destroy(self, code) -> Optional[Room]:
        room = self.rooms.pop(normalize_code(code), None)
        if room is not None:
            room.closed = True
            logger.info("Room %s destroyed", room.code)
        return room
