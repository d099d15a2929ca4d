"""Centralized configuration — all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- Question bank ---
QUESTION_BANK_PATH = os.getenv(
    "QUESTION_BANK_PATH",
    os.path.join(os.path.dirname(__file__), "data", "questions.json"),
)
QUESTION_BANK_URL = os.getenv("QUESTION_BANK_URL", "")  # takes precedence over the file when set
BANK_FETCH_TIMEOUT = int(os.getenv("BANK_FETCH_TIMEOUT", "10"))
BANK_FETCH_RETRIES = 3

# --- Board layout ---
BOARD_TITLE = "Jeopardy Live"
CATEGORIES = ("Math", "Science", "Sports", "Pop Culture", "Family Trivia", "Geography")
VALUE_ROWS = (100, 200, 300, 400, 500)
DIFFICULTY_BY_ROW = ("easy", "easy", "medium", "medium", "hard")
DAILY_DOUBLE_COUNT = 2
FINAL_CATEGORIES = ("Family Trivia", "Pop Culture", "Science")
VALID_DIFFICULTIES = ("easy", "medium", "hard")

# --- Rooms ---
ROOM_CODE_LENGTH = int(os.getenv("ROOM_CODE_LENGTH", "5"))
MAX_ROOM_CODE_ATTEMPTS = 1000
MAX_ROOMS = int(os.getenv("MAX_ROOMS", "500"))
MAX_PLAYERS_PER_ROOM = 100
TEAM_COUNT = 3

# --- Names ---
MAX_HOST_NAME_LENGTH = 30
MAX_PLAYER_NAME_LENGTH = 25
MAX_TEAM_NAME_LENGTH = 20

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = 20  # max messages per second per client
MAX_WS_MESSAGE_SIZE = 4096  # bytes

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
