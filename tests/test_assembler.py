"""Tests for puzzle assembly: rewind, solution gate, explanation text."""

from __future__ import annotations

import random

import pytest

from puzzle_forge.assembler import assemble
from puzzle_forge.board import is_legal_sequence, replay
from puzzle_forge.errors import AssemblyError
from puzzle_forge.explain import build_explanation, phase_for_ply, piece_name
from puzzle_forge.models import GameRecord, Puzzle, PuzzleCandidate, TacticalAssessment
from puzzle_forge.scoring import HeuristicScorer
from puzzle_forge.selector import select

_MOVES = ["e4", "e5", "Nf3", "Qg5", "Nxg5"]


def _game() -> GameRecord:
    return GameRecord(id="g1", moves=list(_MOVES), white="alice", black="bob", result="1-0")


def _candidate() -> PuzzleCandidate:
    snapshots = replay(None, _MOVES)
    scorer = HeuristicScorer(quiet_probability=0.0)
    assessments = [scorer.score(s) for s in snapshots]
    (candidate,) = select(snapshots, assessments)
    return candidate


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


class TestAssemble:

    def test_rewinds_two_plies(self):
        puzzle = assemble(_candidate(), _MOVES, game=_game(), seed=1)
        assert puzzle.position == replay(None, _MOVES[:2])[-1].fen
        assert puzzle.last_move == "e5"
        assert puzzle.move_history == ("e4", "e5")

    def test_solution_includes_lead_in(self):
        puzzle = assemble(_candidate(), _MOVES, game=_game(), seed=1)
        assert puzzle.solution == ("Nf3", "Qg5", "Nxg5")
        assert is_legal_sequence(puzzle.position, puzzle.solution)

    def test_classification_carried(self):
        puzzle = assemble(_candidate(), _MOVES, game=_game(), seed=1)
        assert puzzle.theme == "winning_combination"
        assert puzzle.difficulty == 4
        assert puzzle.evaluation == 4.5

    def test_game_context_and_metadata(self):
        candidate = _candidate()
        puzzle = assemble(candidate, _MOVES, game=_game(), seed=1)

        assert puzzle.game_context == {
            "move_number": 4,
            "original_move": "Qg5",
            "player": "b",
            "game_id": "g1",
        }
        assert puzzle.game_data["white"] == "alice"
        assert puzzle.game_data["result"] == "1-0"
        assert puzzle.metadata["original_position"] == candidate.snapshot.fen
        assert puzzle.metadata["fen_before_original_move"] == replay(None, _MOVES[:3])[-1].fen
        assert puzzle.metadata["strength"] == "strong"
        assert puzzle.metadata["chess960"] is False
        assert "created_at" in puzzle.metadata

    def test_without_lead_in_fails_gate(self):
        # Nxg5 is not playable two plies before the scored position
        with pytest.raises(AssemblyError) as exc_info:
            assemble(_candidate(), _MOVES, game=_game(), include_lead_in=False)
        assert exc_info.value.ply == 4

    def test_illegal_recommendation_fails_gate(self):
        candidate = _candidate()
        bad = PuzzleCandidate(
            snapshot=candidate.snapshot,
            assessment=TacticalAssessment(ply=4, evaluation=9.0, recommended_move="Qxh8"),
            theme="mate",
            difficulty=5,
        )
        with pytest.raises(AssemblyError, match="solution fails replay"):
            assemble(bad, _MOVES, game=_game())

    def test_source_moves_must_reach_position(self):
        with pytest.raises(AssemblyError, match="do not reach"):
            assemble(_candidate(), ["d4", "d5", "Nf3", "Nf6"], game=_game())

    def test_source_too_short(self):
        with pytest.raises(AssemblyError, match="only 2 moves"):
            assemble(_candidate(), _MOVES[:2], game=_game())

    def test_explicit_id(self):
        assert assemble(_candidate(), _MOVES, puzzle_id="p-1").id == "p-1"

    def test_without_game(self):
        puzzle = assemble(_candidate(), _MOVES)
        assert puzzle.game_data == {}
        assert puzzle.game_context["game_id"] is None

    def test_round_trip(self):
        puzzle = assemble(_candidate(), _MOVES, game=_game(), seed=3)
        restored = Puzzle.from_dict(puzzle.to_dict())
        assert restored == puzzle


# ---------------------------------------------------------------------------
# Explanation text
# ---------------------------------------------------------------------------


class TestExplanation:

    def test_same_seed_same_text(self):
        first = assemble(_candidate(), _MOVES, game=_game(), seed=42).explanation
        second = assemble(_candidate(), _MOVES, game=_game(), seed=42).explanation
        assert first == second

    def test_clue_names_first_solution_piece(self):
        explanation = assemble(_candidate(), _MOVES, game=_game(), seed=42).explanation
        assert "knight" in explanation["clue"]
        assert explanation["detailed_clue"] == (
            "Pay attention to the knight and its possible moves in the opening."
        )

    def test_description_mentions_mover(self):
        text = build_explanation("b", "Q", False, 4, "N", random.Random(0), "alice", "bob")["description"]
        assert "queen" in text
        assert "black" in text.lower() or "bob" in text

    @pytest.mark.parametrize("ply,phase", [(0, "opening"), (9, "opening"), (10, "middlegame"), (29, "middlegame"), (30, "endgame")])
    def test_phase_buckets(self, ply, phase):
        assert phase_for_ply(ply) == phase

    def test_piece_names(self):
        assert piece_name("q") == "queen"
        assert piece_name(None) == "piece"
