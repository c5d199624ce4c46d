"""Multi-tool functional flow tests for MCP server.

Exercises realistic multi-tool sequences: generate then solve, retry
after a mistake, bookmarking and stats, per-user generation, and
response size regression.

Run:
    pytest tests/test_mcp_flows.py -v
"""

from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path

import pytest

# Add project root so imports resolve
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_PROJECT_ROOT))

# Import server module from hyphenated directory via importlib
_server_path = _PROJECT_ROOT / "mcp-server" / "server.py"
_spec = importlib.util.spec_from_file_location("mcp_server_flows_test", _server_path)
_server = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(_server)

from puzzle_forge.store import PuzzleStore  # noqa: E402


@pytest.fixture(autouse=True)
def _clean_server(monkeypatch):
    monkeypatch.delenv("PUZZLE_FORGE_SCORER", raising=False)
    previous = _server.set_store(PuzzleStore())
    yield
    _server.set_store(previous)


def _generate(pgn: str, user_id: str = "u1") -> dict:
    response = _server.generate_puzzles_from_pgn(pgn, user_id=user_id, seed=3)
    assert "error" not in response
    return response["puzzles"][0]


# ---------------------------------------------------------------------------
# Generate and solve
# ---------------------------------------------------------------------------


class TestGenerateAndSolve:

    def test_full_lifecycle(self, queen_blunder_pgn):
        puzzle = _generate(queen_blunder_pgn)

        listed = _server.list_puzzles("u1", is_solved=False)
        assert [p["id"] for p in listed["puzzles"]] == [puzzle["id"]]

        state = _server.start_solving(puzzle["id"])
        assert state["fen"] == puzzle["position"]
        session_id = state["session_id"]

        state = _server.attempt_move(session_id, "g1", "f3")
        assert state["accepted"] is True
        assert state["move_history"] == ["Nf3", "Qg5"]

        state = _server.attempt_move(session_id, "f3", "g5")
        assert state["state"] == "completed"
        assert state["grade"] == 3

        assert _server.list_puzzles("u1", is_solved=True)["count"] == 1
        stats = _server.puzzle_stats("u1")
        assert stats["solved_puzzles"] == 1
        assert stats["accuracy"] == 100.0

        walk = _server.review(session_id, -3)
        assert walk["review_index"] == 0
        assert walk["fen"] == puzzle["position"]

    def test_mistake_restart_then_solve(self, queen_blunder_pgn):
        puzzle = _generate(queen_blunder_pgn)
        session_id = _server.start_solving(puzzle["id"])["session_id"]

        _server.attempt_move(session_id, "g1", "f3")
        wrong = _server.attempt_move(session_id, "f3", "e5")
        assert wrong["reason"] == "wrong_move"
        assert wrong["expected_move"] == "Nxg5"

        state = _server.recover(session_id, "restart")
        assert state["ply"] == 0
        assert state["failed_attempts"] == 1

        _server.attempt_move(session_id, "g1", "f3")
        state = _server.attempt_move(session_id, "f3", "g5")
        assert state["grade"] == 2

    def test_hint_costs_stars(self, queen_blunder_pgn):
        puzzle = _generate(queen_blunder_pgn)
        session_id = _server.start_solving(puzzle["id"])["session_id"]

        assert _server.request_hint(session_id) == {"from_square": "g1"}
        _server.attempt_move(session_id, "g1", "f3")
        state = _server.attempt_move(session_id, "f3", "g5")
        assert state["grade"] == 1

    def test_reset_after_completion_allows_second_attempt(self, queen_blunder_pgn):
        puzzle = _generate(queen_blunder_pgn)
        session_id = _server.start_solving(puzzle["id"])["session_id"]
        _server.attempt_move(session_id, "g1", "f3")
        _server.attempt_move(session_id, "f3", "g5")

        _server.reset_session(session_id)
        _server.attempt_move(session_id, "g1", "f3")
        _server.attempt_move(session_id, "f3", "g5")

        progress = _server.get_store().get_by_id(puzzle["id"])["progress"]
        assert progress["attempts"] == 2


# ---------------------------------------------------------------------------
# Library management
# ---------------------------------------------------------------------------


class TestLibraryFlow:

    def test_users_get_separate_copies(self, queen_blunder_pgn):
        first = _server.generate_more_puzzles(queen_blunder_pgn, "u1")
        second = _server.generate_more_puzzles(queen_blunder_pgn, "u2")
        assert first["puzzles_added"] == second["puzzles_added"] == 1
        assert first["puzzles"][0]["id"] != second["puzzles"][0]["id"]

        others = _server.other_puzzles(first["puzzles"][0]["id"])
        assert [p["id"] for p in others["puzzles"]] == [second["puzzles"][0]["id"]]

    def test_bookmark_then_delete(self, queen_blunder_pgn):
        puzzle = _generate(queen_blunder_pgn)
        _server.toggle_bookmark(puzzle["id"])
        assert _server.puzzle_stats("u1")["bookmarked_puzzles"] == 1

        _server.delete_puzzle(puzzle["id"])
        assert _server.list_puzzles("u1")["count"] == 0
        assert "error" in _server.start_solving(puzzle["id"])


# ---------------------------------------------------------------------------
# Response size regression
# ---------------------------------------------------------------------------


class TestResponseSizeRegression:

    def test_puzzle_response_smaller_than_record(self, queen_blunder_pgn):
        puzzle = _generate(queen_blunder_pgn)
        record = _server.get_store().get_by_id(puzzle["id"])
        minified = _server.get_puzzle(puzzle["id"])
        assert len(json.dumps(minified)) < len(json.dumps(record))

    def test_session_response_size(self, fork_puzzle):
        record = _server.get_store().create(fork_puzzle, user_id="u1")
        state = _server.start_solving(record["id"])
        assert len(json.dumps(state)) < 600
