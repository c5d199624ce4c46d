"""Tests for the puzzle-forge command line."""

from __future__ import annotations

import json

import pytest
from rich.panel import Panel

from puzzle_forge.cli import main, render_board


@pytest.fixture(autouse=True)
def _plain_env(monkeypatch):
    for name in ("PUZZLE_FORGE_SCORER", "PUZZLE_FORGE_MAX_PUZZLES", "PUZZLE_FORGE_SEED"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def puzzle_file(tmp_path, fork_puzzle):
    path = tmp_path / "puzzles.json"
    path.write_text(json.dumps([fork_puzzle.to_dict()]), encoding="utf-8")
    return path


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestRenderBoard:

    def test_returns_panel(self):
        panel = render_board("8/8/8/8/8/8/8/K6k w - - 0 1", highlight=["a1"])
        assert isinstance(panel, Panel)
        assert "White to move" in panel.title

    def test_black_to_move_title(self):
        panel = render_board("8/8/8/8/8/8/8/K6k b - - 0 1", title="Review")
        assert panel.title == "Review (Black to move)"


class TestGenerate:

    def test_writes_puzzles(self, tmp_path, queen_blunder_pgn):
        pgn = tmp_path / "game.pgn"
        pgn.write_text(queen_blunder_pgn, encoding="utf-8")
        out = tmp_path / "out" / "puzzles.json"

        assert _run(["generate", str(pgn), "--out", str(out), "--seed", "1"]) == 0

        puzzles = json.loads(out.read_text(encoding="utf-8"))
        assert [p["solution"] for p in puzzles] == [["Nf3", "Qg5", "Nxg5"]]
        assert puzzles[0]["game_context"]["game_id"] == "game"

    def test_no_lead_in_drops_opening_blunder(self, tmp_path, queen_blunder_pgn):
        pgn = tmp_path / "game.pgn"
        pgn.write_text(queen_blunder_pgn, encoding="utf-8")
        out = tmp_path / "puzzles.json"

        assert _run(["generate", str(pgn), "--out", str(out), "--no-lead-in"]) == 0
        assert json.loads(out.read_text(encoding="utf-8")) == []

    def test_missing_pgn(self, tmp_path):
        assert _run(["generate", str(tmp_path / "missing.pgn")]) == 1

    def test_bad_configuration(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PUZZLE_FORGE_WORKERS", "zero")
        assert _run(["generate", str(tmp_path / "game.pgn")]) == 2


class TestAnalyze:

    def test_hanging_queen(self, capsys):
        fen = "rnb1kbnr/pppp1ppp/8/4p1q1/4P3/5N2/PPPP1PPP/RNBQKB1R w KQkq - 2 3"
        assert _run(["analyze", fen]) == 0
        assert "Line: Nxg5" in capsys.readouterr().out

    def test_bad_fen(self):
        assert _run(["analyze", "not a fen"]) == 1


class TestShowAndValidate:

    def test_show(self, puzzle_file, capsys):
        assert _run(["show", str(puzzle_file)]) == 0
        assert "Use your queen." in capsys.readouterr().out

    def test_show_index_out_of_range(self, puzzle_file):
        assert _run(["show", str(puzzle_file), "--index", "3"]) == 1

    def test_validate_ok(self, puzzle_file, capsys):
        assert _run(["validate", str(puzzle_file)]) == 0
        assert "1 puzzle(s) checked, 0 invalid" in capsys.readouterr().out

    def test_validate_broken_solution(self, tmp_path, fork_puzzle):
        record = fork_puzzle.to_dict()
        record["solution"] = ["Qxf7+", "Kxf7", "Qd1"]
        path = tmp_path / "broken.json"
        path.write_text(json.dumps([record]), encoding="utf-8")
        assert _run(["validate", str(path)]) == 1

    def test_validate_missing_file(self, tmp_path):
        assert _run(["validate", str(tmp_path / "nope.json")]) == 1


class TestSolve:

    def test_solves_with_typed_moves(self, puzzle_file, monkeypatch, capsys):
        answers = iter(["b3 f7", "f3 g5"])
        monkeypatch.setattr("builtins.input", lambda: next(answers))
        assert _run(["solve", str(puzzle_file)]) == 0
        out = capsys.readouterr().out
        assert "Correct: Qxf7+" in out
        assert "Rating: ★★★" in out

    def test_wrong_move_then_quit(self, puzzle_file, monkeypatch, capsys):
        answers = iter(["b3 c4", "continue", "q"])
        monkeypatch.setattr("builtins.input", lambda: next(answers))
        assert _run(["solve", str(puzzle_file)]) == 0
        out = capsys.readouterr().out
        assert "Qc4 is not the solution." in out
        assert "Puzzle abandoned." in out
