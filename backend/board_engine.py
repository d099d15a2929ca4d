import re
import json
import time
import random
import asyncio
import logging
import requests
from typing import Dict, List, Optional, Set, Tuple

import config

logger = logging.getLogger(__name__)

MAX_QUESTION_TEXT_LENGTH = 2000
MAX_ANSWER_LENGTH = 500
PLACEHOLDER_ANSWER = "Unavailable"


def _sanitize_text(text: str) -> str:
    """Strip HTML tags and control characters from bank text."""
    text = re.sub(r'<[^>]+>', '', text)
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
    return text.strip()


def _validate_entry(entry) -> bool:
    if not isinstance(entry, dict):
        return False
    if not all(k in entry for k in ("id", "category", "difficulty", "question", "answer")):
        return False
    if isinstance(entry["id"], bool) or not isinstance(entry["id"], (str, int)):
        return False
    if not isinstance(entry["category"], str):
        return False
    if entry["difficulty"] not in config.VALID_DIFFICULTIES:
        return False
    return isinstance(entry["question"], str) and isinstance(entry["answer"], str)


def _sanitize_bank(raw) -> List[dict]:
    """Keep well-formed entries only, with cleaned text."""
    if not isinstance(raw, list):
        raise ValueError(f"Question bank must be a JSON list, got {type(raw).__name__}")
    questions = []
    skipped = 0
    for entry in raw:
        if not _validate_entry(entry):
            skipped += 1
            continue
        questions.append({
            "id": entry["id"],
            "category": entry["category"],
            "difficulty": entry["difficulty"],
            "question": _sanitize_text(entry["question"])[:MAX_QUESTION_TEXT_LENGTH],
            "answer": _sanitize_text(entry["answer"])[:MAX_ANSWER_LENGTH],
        })
    if skipped:
        logger.warning("Skipped %d malformed question bank entries", skipped)
    return questions


def placeholder_clue(category: str, value: int) -> dict:
    return {
        "value": value,
        "question": f"[{category}] Question unavailable",
        "answer": PLACEHOLDER_ANSWER,
        "used": False,
        "dd": False,
    }


class BoardEngine:
    """Question bank plus the board builder rooms call for every new round."""

    def __init__(self, questions: Optional[List[dict]] = None,
                 source_path: str = "", source_url: str = "",
                 rng: Optional[random.Random] = None):
        self.source_path = source_path
        self.source_url = source_url
        self.rng = rng or random.Random()
        self.questions: List[dict] = []
        self._pools: Dict[Tuple[str, str], List[dict]] = {}
        self._reload_lock = asyncio.Lock()
        if questions is not None:
            self.set_questions(_sanitize_bank(questions))

    def set_questions(self, questions: List[dict]):
        self.questions = questions
        self._pools = {}
        for q in questions:
            self._pools.setdefault((q["category"], q["difficulty"]), []).append(q)

    # --- Loading ---

    def _fetch_remote(self) -> Optional[list]:
        for attempt in range(1, config.BANK_FETCH_RETRIES + 1):
            try:
                logger.info("Question bank fetch attempt %d/%d from %s",
                            attempt, config.BANK_FETCH_RETRIES, self.source_url)
                response = requests.get(self.source_url, timeout=config.BANK_FETCH_TIMEOUT)
                response.raise_for_status()
                return response.json()
            except requests.Timeout:
                logger.warning("Attempt %d: question bank fetch timed out after %ds",
                               attempt, config.BANK_FETCH_TIMEOUT)
            except ValueError as e:
                logger.warning("Attempt %d: question bank response is not JSON: %s", attempt, e)
            except requests.RequestException as e:
                logger.error("Attempt %d: HTTP error fetching question bank: %s", attempt, e)
            if attempt < config.BANK_FETCH_RETRIES:
                time.sleep(2 ** attempt)
        return None

    def _read_file(self) -> Optional[list]:
        try:
            with open(self.source_path, encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            logger.error("Question bank not found at %s", self.source_path)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to read question bank %s: %s", self.source_path, e)
        return None

    def load(self) -> int:
        """(Re)load the bank from its URL or file. Returns the number of questions loaded.

        Failures are logged and leave the current bank untouched; boards built
        from an empty bank are all placeholders rather than errors.
        """
        if self.source_url:
            raw = self._fetch_remote()
            source = self.source_url
        elif self.source_path:
            raw = self._read_file()
            source = self.source_path
        else:
            logger.warning("No question bank source configured")
            return len(self.questions)

        if raw is None:
            return len(self.questions)
        try:
            self.set_questions(_sanitize_bank(raw))
        except ValueError as e:
            logger.error("Invalid question bank from %s: %s", source, e)
            return len(self.questions)
        logger.info("Loaded %d questions from %s", len(self.questions), source)
        return len(self.questions)

    def bank_counts(self) -> Dict[str, Dict[str, int]]:
        counts = {cat: {d: 0 for d in config.VALID_DIFFICULTIES} for cat in config.CATEGORIES}
        for q in self.questions:
            if q["category"] in counts:
                counts[q["category"]][q["difficulty"]] += 1
        return counts

    # --- Board building ---

    def pick_question(self, category: str, difficulty: str, used_ids: Set) -> Optional[dict]:
        """Pick a question not yet served in this room, reusing once the pool runs dry."""
        pool = self._pools.get((category, difficulty), [])
        if not pool:
            return None
        unused = [q for q in pool if q["id"] not in used_ids]
        q = self.rng.choice(unused or pool)
        used_ids.add(q["id"])
        return q

    def _build_clue(self, category: str, row: int, used_ids: Set) -> dict:
        value = config.VALUE_ROWS[row]
        try:
            q = self.pick_question(category, config.DIFFICULTY_BY_ROW[row], used_ids)
        except Exception:
            logger.exception("Question lookup failed for %s row %d", category, row)
            q = None
        if q is None:
            return placeholder_clue(category, value)
        return {"value": value, "question": q["question"], "answer": q["answer"], "used": False, "dd": False}

    def _place_daily_doubles(self, categories: List[dict]):
        # Row 0 never holds a daily double
        positions = [(c, r) for c in range(len(categories)) for r in range(1, len(config.VALUE_ROWS))]
        for c, r in self.rng.sample(positions, min(config.DAILY_DOUBLE_COUNT, len(positions))):
            categories[c]["clues"][r]["dd"] = True

    def _build_final(self, used_ids: Set) -> dict:
        for category in config.FINAL_CATEGORIES:
            try:
                q = self.pick_question(category, "hard", used_ids)
            except Exception:
                logger.exception("Final question lookup failed for %s", category)
                q = None
            if q:
                return {"category": "Final Jeopardy", "question": q["question"], "answer": q["answer"]}
        return {"category": "Final Jeopardy", "question": "Final question unavailable", "answer": PLACEHOLDER_ANSWER}

    async def build_board(self, used_ids: Set) -> dict:
        """Build a fresh 6x5 board. Never raises; missing content becomes placeholders."""
        if not self.questions and self.source_url:
            # One fetch at a time; waiters reuse its result
            async with self._reload_lock:
                if not self.questions:
                    await asyncio.to_thread(self.load)

        categories = []
        for name in config.CATEGORIES:
            clues = [self._build_clue(name, row, used_ids) for row in range(len(config.VALUE_ROWS))]
            categories.append({"name": name, "clues": clues})
        self._place_daily_doubles(categories)

        placeholders = sum(1 for cat in categories for clue in cat["clues"]
                           if clue["answer"] == PLACEHOLDER_ANSWER)
        if placeholders:
            logger.warning("Board built with %d placeholder clues", placeholders)

        return {
            "title": config.BOARD_TITLE,
            "categories": categories,
            "final": self._build_final(used_ids),
        }
