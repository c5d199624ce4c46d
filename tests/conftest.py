"""Shared test fixtures with dual-mode support (mocked vs real Stockfish).

Usage:
    pytest tests/                  # Fast, mocked engine (no Stockfish)
    pytest tests/ --e2e            # Real Stockfish for integration tests

Fixtures:
    mock_chess_engine  - Patches ChessEngine with a mock returning best lines.
                         Skipped when --e2e is passed.
    store              - Fresh in-memory PuzzleStore.
    enable_validation  - Sets PUZZLE_FORGE_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import os
from unittest.mock import MagicMock, patch

import chess
import pytest

from puzzle_forge.engine import PrincipalLine
from puzzle_forge.models import Puzzle
from puzzle_forge.store import PuzzleStore

# Italian-style position with the queen on b3 eyeing f7
FORK_FEN = "r1bqkbnr/pppp1ppp/2n5/4p3/4P3/1Q3N2/PPPP1PPP/RNB1KB1R w KQkq - 2 4"
FORK_SOLUTION = ("Qxf7+", "Kxf7", "Ng5+")

# 1.e4 e5 2.Nf3 Qg5?? 3.Nxg5 - black hangs the queen at ply 4
QUEEN_BLUNDER = ["e4", "e5", "Nf3", "Qg5", "Nxg5"]

QUEEN_BLUNDER_PGN = """[Event "Casual game"]
[Site "https://example.org/game/abc123"]
[White "alice"]
[Black "bob"]
[Result "1-0"]
[TimeControl "600+0"]

1. e4 e5 2. Nf3 Qg5 3. Nxg5 1-0
"""


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --e2e CLI flag for real Stockfish tests."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run with real Stockfish engine (no mocks).",
    )


def pytest_configure(config):
    """Register the e2e marker."""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end (requires real Stockfish)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip e2e tests unless --e2e is passed."""
    if config.getoption("--e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="needs --e2e (real Stockfish)")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


# ---------------------------------------------------------------------------
# Mock chess engine fixture
# ---------------------------------------------------------------------------


def _make_mock_engine():
    """Create a mock ChessEngine whose best line is the first capture."""
    mock = MagicMock()

    def _best_line(board: chess.Board, depth: int = 12, continuation: int = 2):
        """First capture in UCI order (else the first move): +1.5 or +0.2."""
        legal = sorted(board.legal_moves, key=lambda m: m.uci())
        if not legal:
            return None
        captures = [m for m in legal if board.is_capture(m)]
        move = captures[0] if captures else legal[0]
        return PrincipalLine(move=move, continuation=(), evaluation=1.5 if captures else 0.2)

    mock.best_line = MagicMock(side_effect=_best_line)
    mock.close = MagicMock()

    return mock


@pytest.fixture()
def mock_chess_engine(request):
    """Patch ChessEngine with a mock that returns legal PV lines.

    Skipped when --e2e flag is passed (uses real Stockfish instead).
    """
    if request.config.getoption("--e2e"):
        yield None
        return

    with patch("puzzle_forge.engine.ChessEngine", side_effect=lambda *a, **kw: _make_mock_engine()):
        yield


# ---------------------------------------------------------------------------
# Store and puzzle fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store():
    """Empty puzzle store, one per test."""
    return PuzzleStore()


@pytest.fixture()
def queen_blunder_pgn():
    """PGN of a short game where black hangs the queen."""
    return QUEEN_BLUNDER_PGN


@pytest.fixture()
def fork_puzzle():
    """Three-ply puzzle: Qxf7+ Kxf7 Ng5+."""
    return Puzzle(
        id="fork-1",
        position=FORK_FEN,
        solution=FORK_SOLUTION,
        theme="winning_combination",
        difficulty=4,
        evaluation=3.5,
        explanation={"description": "White to play.", "clue": "Use your queen.", "detailed_clue": ""},
    )


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set PUZZLE_FORGE_VALIDATE=1 for the test session.

    Restores the original env var value after the test.
    """
    original = os.environ.get("PUZZLE_FORGE_VALIDATE")
    os.environ["PUZZLE_FORGE_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("PUZZLE_FORGE_VALIDATE", None)
    else:
        os.environ["PUZZLE_FORGE_VALIDATE"] = original
