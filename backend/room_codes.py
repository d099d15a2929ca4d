import random
import logging
from typing import Container, Optional

import config

logger = logging.getLogger(__name__)

# No 0/O, 1/I/L: codes get read aloud and typed on phones
ROOM_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


class RoomCodeExhausted(RuntimeError):
    """Raised when no unused room code can be drawn."""
    pass


def code_space_size(length: int = config.ROOM_CODE_LENGTH) -> int:
    return len(ROOM_CODE_ALPHABET) ** length


def generate_room_code(existing: Container[str], length: int = config.ROOM_CODE_LENGTH,
                       rng: Optional[random.Random] = None) -> str:
    """Draw random codes until one is not in ``existing``.

    Gives up with RoomCodeExhausted after MAX_ROOM_CODE_ATTEMPTS collisions,
    or immediately if ``existing`` already fills the whole code space.
    """
    if length < 1:
        raise RoomCodeExhausted(f"Room code length must be positive, got {length}")
    try:
        taken = len(existing)  # type: ignore[arg-type]
    except TypeError:
        taken = 0
    if taken >= code_space_size(length):
        raise RoomCodeExhausted(f"All {code_space_size(length)} room codes are in use")

    rng = rng or random
    for _ in range(config.MAX_ROOM_CODE_ATTEMPTS):
        code = ''.join(rng.choices(ROOM_CODE_ALPHABET, k=length))
        if code not in existing:
            return code
    logger.error("No free room code after %d attempts (%d codes in use)",
                 config.MAX_ROOM_CODE_ATTEMPTS, taken)
    raise RoomCodeExhausted("Failed to generate unique room code")
