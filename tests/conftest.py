from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))


class FakeRandom:
    """Records jitter bounds and answers with a fixed position in the range."""

    def __init__(self, pick: str = "high") -> None:
        self.pick = pick
        self.calls: list[tuple[int, int]] = []

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        return b if self.pick == "high" else a


@pytest.fixture()
def fake_rng():
    def _make(pick: str = "high") -> FakeRandom:
        return FakeRandom(pick)

    return _make
