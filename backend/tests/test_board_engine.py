"""
Tests for board_engine.py — question bank loading and board building.
"""
import sys
import os
import json
import random
import asyncio

import pytest
import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import board_engine as board_engine_module
from board_engine import BoardEngine, PLACEHOLDER_ANSWER
import config


def make_bank(per_cell=3, categories=config.CATEGORIES):
    bank = []
    for category in categories:
        for difficulty in config.VALID_DIFFICULTIES:
            for i in range(per_cell):
                bank.append({
                    "id": f"{category}-{difficulty}-{i}",
                    "category": category,
                    "difficulty": difficulty,
                    "question": f"{category} {difficulty} question {i}?",
                    "answer": f"Answer {i}",
                })
    return bank


def make_engine(per_cell=3, seed=7, **kwargs):
    return BoardEngine(make_bank(per_cell, **kwargs), rng=random.Random(seed))


def all_clues(board):
    return [(c, r, clue) for c, cat in enumerate(board["categories"]) for r, clue in enumerate(cat["clues"])]


class FakeResponse:
    def __init__(self, payload=None, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"HTTP {self.status}")

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON")
        return self.payload


# ===========================================================================
# Board shape
# ===========================================================================

class TestBoardShape:
    @pytest.mark.asyncio
    async def test_six_categories_of_five_clues(self):
        board = await make_engine().build_board(set())
        assert [cat["name"] for cat in board["categories"]] == list(config.CATEGORIES)
        assert all(len(cat["clues"]) == 5 for cat in board["categories"])

    @pytest.mark.asyncio
    async def test_values_follow_rows(self):
        board = await make_engine().build_board(set())
        for cat in board["categories"]:
            assert [clue["value"] for clue in cat["clues"]] == list(config.VALUE_ROWS)

    @pytest.mark.asyncio
    async def test_clues_start_unused(self):
        board = await make_engine().build_board(set())
        assert not any(clue["used"] for _, _, clue in all_clues(board))

    @pytest.mark.asyncio
    async def test_clue_fields(self):
        board = await make_engine().build_board(set())
        for _, _, clue in all_clues(board):
            assert set(clue) == {"value", "question", "answer", "used", "dd"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(25))
    async def test_exactly_two_daily_doubles_outside_top_row(self, seed):
        board = await make_engine(seed=seed).build_board(set())
        dds = [(c, r) for c, r, clue in all_clues(board) if clue["dd"]]
        assert len(dds) == 2
        assert all(r != 0 for _, r in dds)

    @pytest.mark.asyncio
    async def test_difficulty_ramps_by_row(self):
        board = await make_engine().build_board(set())
        for cat in board["categories"]:
            for row, clue in enumerate(cat["clues"]):
                assert f" {config.DIFFICULTY_BY_ROW[row]} " in clue["question"]

    @pytest.mark.asyncio
    async def test_final_clue_prefers_hard_family_trivia(self):
        board = await make_engine().build_board(set())
        assert board["final"]["category"] == "Final Jeopardy"
        assert board["final"]["question"].startswith("Family Trivia hard")

    @pytest.mark.asyncio
    async def test_final_clue_falls_back_to_pop_culture(self):
        engine = make_engine(categories=("Pop Culture",))
        board = await engine.build_board(set())
        assert board["final"]["question"].startswith("Pop Culture hard")


# ===========================================================================
# Repeat avoidance
# ===========================================================================

class TestRepeatAvoidance:
    @pytest.mark.asyncio
    async def test_served_ids_recorded(self):
        used = set()
        await make_engine().build_board(used)
        # 30 board cells + final, all distinct with 3 questions per pool
        assert len(used) == 31

    @pytest.mark.asyncio
    async def test_second_board_avoids_first(self):
        engine = make_engine(per_cell=4)
        used = set()
        first = await engine.build_board(used)
        second = await engine.build_board(used)
        first_q = {clue["question"] for _, _, clue in all_clues(first)}
        second_q = {clue["question"] for _, _, clue in all_clues(second)}
        assert not first_q & second_q
        assert len(used) == 62

    @pytest.mark.asyncio
    async def test_exhausted_pool_reuses_questions(self):
        board = await make_engine(per_cell=1).build_board(set())
        for cat in board["categories"]:
            # Rows 0 and 1 share the single easy question
            assert cat["clues"][0]["question"] == cat["clues"][1]["question"]
            assert cat["clues"][0]["answer"] != PLACEHOLDER_ANSWER

    def test_pick_question_unknown_pool(self):
        assert make_engine().pick_question("Astrology", "easy", set()) is None


# ===========================================================================
# Degradation to placeholders
# ===========================================================================

class TestPlaceholders:
    @pytest.mark.asyncio
    async def test_empty_bank_gives_full_placeholder_board(self):
        board = await BoardEngine(rng=random.Random(1)).build_board(set())
        clues = all_clues(board)
        assert len(clues) == 30
        for c, _, clue in clues:
            assert clue["question"] == f"[{config.CATEGORIES[c]}] Question unavailable"
            assert clue["answer"] == PLACEHOLDER_ANSWER
        assert board["final"]["answer"] == PLACEHOLDER_ANSWER
        assert sum(1 for _, _, clue in clues if clue["dd"]) == 2

    @pytest.mark.asyncio
    async def test_missing_category_only_affects_that_column(self):
        categories = [c for c in config.CATEGORIES if c != "Sports"]
        board = await make_engine(categories=categories).build_board(set())
        for cat in board["categories"]:
            placeholders = [clue["answer"] == PLACEHOLDER_ANSWER for clue in cat["clues"]]
            assert all(placeholders) if cat["name"] == "Sports" else not any(placeholders)

    @pytest.mark.asyncio
    async def test_lookup_failure_becomes_placeholder(self, monkeypatch):
        engine = make_engine()

        def broken(category, difficulty, used_ids):
            raise RuntimeError("bank offline")

        monkeypatch.setattr(engine, "pick_question", broken)
        board = await engine.build_board(set())
        assert len(all_clues(board)) == 30
        assert all(clue["answer"] == PLACEHOLDER_ANSWER for _, _, clue in all_clues(board))


# ===========================================================================
# Loading
# ===========================================================================

class TestLoadFromFile:
    def test_load_valid_file(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text(json.dumps(make_bank(per_cell=2)))
        engine = BoardEngine(source_path=str(path))
        assert engine.load() == len(config.CATEGORIES) * 3 * 2

    def test_missing_file_leaves_bank_empty(self, tmp_path):
        engine = BoardEngine(source_path=str(tmp_path / "nope.json"))
        assert engine.load() == 0
        assert engine.questions == []

    def test_invalid_json_keeps_previous_bank(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text("{not json")
        engine = BoardEngine(make_bank(per_cell=1), source_path=str(path))
        assert engine.load() == len(config.CATEGORIES) * 3

    def test_non_list_bank_rejected(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text(json.dumps({"questions": []}))
        assert BoardEngine(source_path=str(path)).load() == 0

    def test_malformed_entries_skipped(self):
        bank = make_bank(per_cell=1) + [
            {"id": "x"},
            {"id": "y", "category": "Math", "difficulty": "impossible", "question": "?", "answer": "!"},
            {"id": "z", "category": ["Math"], "difficulty": "easy", "question": "?", "answer": "!"},
            {"id": ["w"], "category": "Math", "difficulty": "easy", "question": "?", "answer": "!"},
            "not a dict",
        ]
        engine = BoardEngine(bank)
        assert len(engine.questions) == len(config.CATEGORIES) * 3

    def test_text_sanitized(self):
        engine = BoardEngine([{
            "id": 1, "category": "Math", "difficulty": "easy",
            "question": "  <b>What is 2+2?</b>\x07 ", "answer": "<i>4</i>",
        }])
        assert engine.questions[0]["question"] == "What is 2+2?"
        assert engine.questions[0]["answer"] == "4"

    def test_unhashable_fields_do_not_break_load(self, tmp_path):
        path = tmp_path / "bank.json"
        bank = make_bank(per_cell=1) + [
            {"id": "bad", "category": ["Math"], "difficulty": "easy", "question": "?", "answer": "!"},
        ]
        path.write_text(json.dumps(bank))
        engine = BoardEngine(source_path=str(path))
        assert engine.load() == len(config.CATEGORIES) * 3

    def test_shipped_sample_bank_loads(self):
        engine = BoardEngine(source_path=config.QUESTION_BANK_PATH)
        assert engine.load() > 0
        counts = engine.bank_counts()
        assert all(counts[cat][d] > 0 for cat in config.CATEGORIES for d in config.VALID_DIFFICULTIES)


class TestLoadFromUrl:
    def test_remote_bank_loaded(self, monkeypatch):
        monkeypatch.setattr(board_engine_module.requests, "get",
                            lambda url, timeout: FakeResponse(make_bank(per_cell=1)))
        engine = BoardEngine(source_url="http://bank.local/questions.json")
        assert engine.load() == len(config.CATEGORIES) * 3

    def test_remote_failure_retries_then_gives_up(self, monkeypatch):
        calls = []

        def failing_get(url, timeout):
            calls.append(url)
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(board_engine_module.requests, "get", failing_get)
        monkeypatch.setattr(board_engine_module.time, "sleep", lambda s: None)
        engine = BoardEngine(source_url="http://bank.local/questions.json")
        assert engine.load() == 0
        assert len(calls) == config.BANK_FETCH_RETRIES

    def test_remote_http_error_retries(self, monkeypatch):
        responses = [FakeResponse(status=503), FakeResponse(make_bank(per_cell=1))]
        monkeypatch.setattr(board_engine_module.requests, "get", lambda url, timeout: responses.pop(0))
        monkeypatch.setattr(board_engine_module.time, "sleep", lambda s: None)
        engine = BoardEngine(source_url="http://bank.local/questions.json")
        assert engine.load() == len(config.CATEGORIES) * 3

    @pytest.mark.asyncio
    async def test_empty_bank_reloads_before_building(self, monkeypatch):
        monkeypatch.setattr(board_engine_module.requests, "get",
                            lambda url, timeout: FakeResponse(make_bank(per_cell=2)))
        engine = BoardEngine(source_url="http://bank.local/questions.json", rng=random.Random(3))
        board = await engine.build_board(set())
        assert not any(clue["answer"] == PLACEHOLDER_ANSWER for _, _, clue in all_clues(board))

    @pytest.mark.asyncio
    async def test_concurrent_builds_share_one_fetch(self, monkeypatch):
        calls = []

        def counting_get(url, timeout):
            calls.append(url)
            return FakeResponse(make_bank(per_cell=2))

        monkeypatch.setattr(board_engine_module.requests, "get", counting_get)
        engine = BoardEngine(source_url="http://bank.local/questions.json", rng=random.Random(3))
        boards = await asyncio.gather(*(engine.build_board(set()) for _ in range(5)))
        assert len(calls) == 1
        for board in boards:
            assert not any(clue["answer"] == PLACEHOLDER_ANSWER for _, _, clue in all_clues(board))


class TestBankCounts:
    def test_counts_per_category_and_difficulty(self):
        counts = make_engine(per_cell=2).bank_counts()
        assert set(counts) == set(config.CATEGORIES)
        assert counts["Math"] == {"easy": 2, "medium": 2, "hard": 2}

    def test_unknown_categories_not_counted(self):
        engine = BoardEngine([{"id": 1, "category": "Astrology", "difficulty": "easy",
                               "question": "?", "answer": "!"}])
        assert "Astrology" not in engine.bank_counts()
        assert len(engine.questions) == 1
