"""Tests for the board simulator (replay, legal moves, move application)."""

from __future__ import annotations

import chess
import pytest

from puzzle_forge.board import (
    apply_move,
    initial_snapshot,
    is_legal_sequence,
    legal_moves,
    replay,
)
from puzzle_forge.errors import IllegalMoveError, ReplayError

_ITALIAN = ["e4", "e5", "Nf3", "Nc6", "Bc4", "Nf6", "Ng5"]

# White pawn on e7 about to promote
_PROMOTION_FEN = "8/4P1k1/8/8/8/8/8/4K3 w - - 0 1"

# Chess960 middlegame with H- and F-file castling rights
_CHESS960_FEN = "bqnb1rkr/pp3ppp/3ppn2/2p5/5P2/P2P4/NPP1P1PP/BQ1BNRKR w HFhf - 2 9"


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


class TestReplay:

    def test_yields_one_snapshot_per_ply_plus_start(self):
        snapshots = replay(None, _ITALIAN)
        assert len(snapshots) == len(_ITALIAN) + 1
        assert [s.ply for s in snapshots] == list(range(len(_ITALIAN) + 1))

    def test_start_snapshot_is_standard_position(self):
        first = replay(None, [])[0]
        assert first.fen == chess.STARTING_FEN
        assert first.move_san is None
        assert first.side_to_move == "w"

    def test_deterministic(self):
        assert replay(None, _ITALIAN) == replay(None, _ITALIAN)

    def test_move_metadata(self):
        snapshots = replay(None, _ITALIAN)
        ng5 = snapshots[7]
        assert ng5.move_san == "Ng5"
        assert ng5.move_uci == "f3g5"
        assert ng5.piece == "N"
        assert ng5.color == "w"
        assert ng5.side_to_move == "b"
        assert not ng5.is_capture

    def test_accepts_uci_moves(self):
        san = replay(None, ["e4", "e5", "Nf3"])
        uci = replay(None, ["e2e4", "e7e5", "g1f3"])
        assert [s.fen for s in san] == [s.fen for s in uci]
        assert uci[3].move_san == "Nf3"

    def test_illegal_move_raises_with_partial(self):
        with pytest.raises(ReplayError) as exc_info:
            replay(None, ["e4", "e5", "Ke3", "Nc6"])
        err = exc_info.value
        assert err.ply == 3
        assert err.move == "Ke3"
        assert len(err.partial) == 3
        assert err.partial[-1].ply == 2

    def test_garbage_move_raises(self):
        with pytest.raises(ReplayError):
            replay(None, ["e4", "banana"])

    def test_null_move_rejected(self):
        with pytest.raises(ReplayError):
            replay(None, ["e4", "0000"])

    def test_invalid_start_fen(self):
        with pytest.raises(ReplayError) as exc_info:
            replay("not a fen", ["e4"])
        assert exc_info.value.ply == 0
        assert exc_info.value.partial == []

    def test_custom_start_fen(self):
        snapshots = replay(_PROMOTION_FEN, ["e8=Q"])
        assert snapshots[0].fen == _PROMOTION_FEN
        assert snapshots[1].fen.startswith("4Q3")


# ---------------------------------------------------------------------------
# Promotion
# ---------------------------------------------------------------------------


class TestPromotion:

    def test_bare_san_promotes_to_queen(self):
        snapshots = replay(_PROMOTION_FEN, ["e8"])
        assert snapshots[1].move_san == "e8=Q"

    def test_bare_uci_promotes_to_queen(self):
        result = apply_move(initial_snapshot(_PROMOTION_FEN), "e7e8")
        assert result.move_uci == "e7e8q"

    def test_explicit_underpromotion_kept(self):
        result = apply_move(initial_snapshot(_PROMOTION_FEN), "e7e8n")
        assert result.move_uci == "e7e8n"
        assert result.move_san.startswith("e8=N")


# ---------------------------------------------------------------------------
# Legal moves
# ---------------------------------------------------------------------------


class TestLegalMoves:

    def test_start_position_has_twenty(self):
        moves = legal_moves(initial_snapshot())
        assert len(moves) == 20
        assert [m.uci for m in moves] == sorted(m.uci for m in moves)

    def test_capture_fields(self):
        snapshot = replay(None, _ITALIAN)[-1]
        captures = [m for m in legal_moves(snapshot) if m.is_capture]
        assert [m.san for m in captures] == ["Nxe4"]
        assert captures[0].captured_piece == "P"
        assert captures[0].piece == "N"

    def test_check_flag(self):
        fen = "r1bqkbnr/pppp1ppp/2n5/4p3/4P3/1Q3N2/PPPP1PPP/RNB1KB1R w KQkq - 2 4"
        qxf7 = next(m for m in legal_moves(initial_snapshot(fen)) if m.uci == "b3f7")
        assert qxf7.gives_check
        assert qxf7.captured_piece == "P"

    def test_promotion_field(self):
        moves = legal_moves(initial_snapshot(_PROMOTION_FEN))
        promotions = {m.promotion for m in moves if m.from_square == "e7"}
        assert promotions == {"Q", "R", "B", "N"}


# ---------------------------------------------------------------------------
# Move application
# ---------------------------------------------------------------------------


class TestApplyMove:

    def test_does_not_mutate_input(self):
        start = initial_snapshot()
        apply_move(start, "e4")
        assert start.fen == chess.STARTING_FEN

    def test_illegal_raises(self):
        with pytest.raises(IllegalMoveError) as exc_info:
            apply_move(initial_snapshot(), "e5")
        assert exc_info.value.fen == chess.STARTING_FEN

    def test_empty_move_raises(self):
        with pytest.raises(IllegalMoveError, match="empty move"):
            apply_move(initial_snapshot(), "  ")

    def test_accepts_candidate_move(self):
        start = initial_snapshot()
        candidate = next(m for m in legal_moves(start) if m.san == "Nf3")
        assert apply_move(start, candidate).move_san == "Nf3"

    def test_ply_increments(self):
        assert apply_move(initial_snapshot(), "d4").ply == 1


class TestLegalSequence:

    def test_legal(self):
        assert is_legal_sequence(None, _ITALIAN)

    def test_illegal(self):
        assert not is_legal_sequence(None, ["e4", "e4"])

    def test_empty_is_legal(self):
        assert is_legal_sequence(None, [])


# ---------------------------------------------------------------------------
# Chess960
# ---------------------------------------------------------------------------


class TestChess960:

    def test_chess960_flag_carried(self):
        snapshots = replay(_CHESS960_FEN, ["Nc3"], chess960=True)
        assert all(s.chess960 for s in snapshots)

    def test_replay_from_960_position(self):
        snapshots = replay(_CHESS960_FEN, ["Nc3", "Ne7"], chess960=True)
        assert snapshots[-1].ply == 2
        assert snapshots[-1].side_to_move == "w"
