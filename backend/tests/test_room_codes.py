import sys
import os
import random

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from room_codes import ROOM_CODE_ALPHABET, RoomCodeExhausted, code_space_size, generate_room_code
import config


class FixedRng:
    """Returns the queued codes in order, repeating the last one forever."""
    def __init__(self, *codes):
        self.codes = list(codes)
        self.calls = 0

    def choices(self, population, k):
        code = self.codes[min(self.calls, len(self.codes) - 1)]
        self.calls += 1
        return list(code)


class TestAlphabet:
    @pytest.mark.parametrize("ch", ["0", "O", "1", "I", "L"])
    def test_ambiguous_characters_excluded(self, ch):
        assert ch not in ROOM_CODE_ALPHABET

    def test_alphabet_has_no_duplicates(self):
        assert len(set(ROOM_CODE_ALPHABET)) == len(ROOM_CODE_ALPHABET)

    def test_code_space_size(self):
        assert code_space_size(2) == len(ROOM_CODE_ALPHABET) ** 2


class TestGenerate:
    def test_default_length_and_characters(self):
        code = generate_room_code(set())
        assert len(code) == config.ROOM_CODE_LENGTH
        assert all(ch in ROOM_CODE_ALPHABET for ch in code)

    def test_custom_length(self):
        assert len(generate_room_code(set(), length=8)) == 8

    def test_retries_past_taken_codes(self):
        rng = FixedRng("AAAAA", "BBBBB", "CCCCC")
        code = generate_room_code({"AAAAA", "BBBBB"}, rng=rng)
        assert code == "CCCCC"
        assert rng.calls == 3

    def test_accepts_dict_of_live_rooms(self):
        rng = FixedRng("AAAAA", "BBBBB")
        assert generate_room_code({"AAAAA": object()}, rng=rng) == "BBBBB"

    def test_never_collides_with_large_registry(self):
        rng = random.Random(2024)
        existing = set()
        while len(existing) < 9999:
            existing.add(generate_room_code(existing, rng=rng))
        for _ in range(10000):
            assert generate_room_code(existing, rng=rng) not in existing


class TestExhaustion:
    def test_full_code_space_raises_immediately(self):
        rng = FixedRng("A")
        with pytest.raises(RoomCodeExhausted):
            generate_room_code(set(ROOM_CODE_ALPHABET), length=1, rng=rng)
        assert rng.calls == 0

    def test_attempt_limit_raises(self, monkeypatch):
        monkeypatch.setattr(config, "MAX_ROOM_CODE_ATTEMPTS", 5)
        rng = FixedRng("AAAAA")
        with pytest.raises(RoomCodeExhausted):
            generate_room_code({"AAAAA"}, rng=rng)
        assert rng.calls == 5

    def test_exhaustion_is_a_runtime_error(self):
        assert issubclass(RoomCodeExhausted, RuntimeError)

    def test_non_positive_length_rejected(self):
        with pytest.raises(RoomCodeExhausted):
            generate_room_code(set(), length=0)
