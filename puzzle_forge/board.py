"""Board simulator: replays move lists into immutable position snapshots.

Wraps python-chess. Every call builds a fresh chess.Board from a FEN, so
no board object is ever shared between snapshots or callers.
"""

from __future__ import annotations

import re
from typing import Iterable

import chess

from puzzle_forge.errors import IllegalMoveError, ReplayError
from puzzle_forge.models import CandidateMove, PositionSnapshot

# Pawn push or capture onto the last rank written without a promotion piece
_BARE_PROMOTION_RE = re.compile(r"^([a-h](?:x[a-h])?[18])([+#]?)$")


def _new_board(fen: str | None, chess960: bool = False) -> chess.Board:
    """Create a board from FEN (None = standard start)."""
    if fen is None:
        return chess.Board(chess960=chess960)
    return chess.Board(fen, chess960=chess960)


def board_for(snapshot: PositionSnapshot) -> chess.Board:
    """Return a fresh chess.Board for a snapshot."""
    return _new_board(snapshot.fen, snapshot.chess960)


def _with_default_promotion(board: chess.Board, move: chess.Move) -> chess.Move:
    """Promote to a queen when a pawn reaches the last rank unspecified."""
    if move.promotion is not None:
        return move
    if board.piece_type_at(move.from_square) != chess.PAWN:
        return move
    if chess.square_rank(move.to_square) not in (0, 7):
        return move
    return chess.Move(move.from_square, move.to_square, promotion=chess.QUEEN)


def _parse_move(board: chess.Board, move: str | CandidateMove) -> chess.Move:
    """Parse SAN or UCI text into a legal move on board.

    Raises:
        IllegalMoveError: If the text is not a legal move here.
    """
    text = move.uci if isinstance(move, CandidateMove) else str(move).strip()
    if not text:
        raise IllegalMoveError(text, board.fen(), "empty move")

    try:
        parsed = board.parse_san(text)
        if parsed:
            return parsed
    except chess.AmbiguousMoveError as exc:
        raise IllegalMoveError(text, board.fen(), "ambiguous move") from exc
    except (chess.InvalidMoveError, chess.IllegalMoveError):
        bare = _BARE_PROMOTION_RE.match(text)
        if bare is not None:
            try:
                return board.parse_san(f"{bare.group(1)}=Q{bare.group(2)}")
            except (chess.InvalidMoveError, chess.IllegalMoveError):
                pass

    try:
        uci_move = chess.Move.from_uci(text)
    except chess.InvalidMoveError as exc:
        raise IllegalMoveError(text, board.fen(), "unparseable move") from exc

    if not uci_move:
        raise IllegalMoveError(text, board.fen(), "null move")

    uci_move = _with_default_promotion(board, uci_move)
    try:
        return board.parse_uci(uci_move.uci())
    except (chess.InvalidMoveError, chess.IllegalMoveError) as exc:
        raise IllegalMoveError(text, board.fen()) from exc


def _captured_piece(board: chess.Board, move: chess.Move) -> str | None:
    """Symbol (upper-case) of the piece captured by move, if any."""
    if not board.is_capture(move):
        return None
    if board.is_en_passant(move):
        return "P"
    piece = board.piece_at(move.to_square)
    return piece.symbol().upper() if piece is not None else None


def _push(board: chess.Board, move: chess.Move, ply: int) -> PositionSnapshot:
    """Push move onto board and return the resulting snapshot."""
    piece = board.piece_at(move.from_square)
    color = "w" if board.turn == chess.WHITE else "b"
    san = board.san(move)
    is_capture = board.is_capture(move)
    board.push(move)
    return PositionSnapshot(
        fen=board.fen(),
        ply=ply,
        move_san=san,
        move_uci=move.uci(),
        piece=piece.symbol().upper() if piece is not None else None,
        color=color,
        is_capture=is_capture,
        is_check=board.is_check(),
        chess960=board.chess960,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def initial_snapshot(start_fen: str | None = None, chess960: bool = False) -> PositionSnapshot:
    """Snapshot of a starting position (ply 0).

    Raises:
        ReplayError: If the FEN cannot be loaded.
    """
    try:
        board = _new_board(start_fen, chess960)
    except ValueError as exc:
        raise ReplayError(0, None, reason=f"invalid start position: {exc}") from exc
    return PositionSnapshot(fen=board.fen(), ply=0, chess960=chess960)


def replay(
    start_fen: str | None,
    moves: Iterable[str],
    chess960: bool = False,
) -> list[PositionSnapshot]:
    """Replay a move list and return one snapshot per ply.

    The first snapshot is the starting position (ply 0), so a list of N
    moves yields N + 1 snapshots.

    Args:
        start_fen: Starting FEN, or None for the standard position.
        moves: Moves in SAN (preferred) or UCI notation.
        chess960: Replay with Chess960 castling rules.

    Returns:
        Ordered list of PositionSnapshot.

    Raises:
        ReplayError: If a move is illegal at its ply. The error's
            ``partial`` attribute holds the snapshots produced so far.
    """
    first = initial_snapshot(start_fen, chess960)
    board = board_for(first)
    snapshots = [first]

    for ply, text in enumerate(moves, start=1):
        try:
            move = _parse_move(board, text)
        except IllegalMoveError as exc:
            raise ReplayError(ply, text, snapshots, reason=exc.reason) from exc
        snapshots.append(_push(board, move, ply))

    return snapshots


def describe_move(board: chess.Board, move: chess.Move) -> CandidateMove:
    """Describe a legal move of board as a CandidateMove."""
    piece = board.piece_at(move.from_square)
    captured = _captured_piece(board, move)
    return CandidateMove(
        from_square=chess.square_name(move.from_square),
        to_square=chess.square_name(move.to_square),
        uci=move.uci(),
        san=board.san(move),
        piece=piece.symbol().upper() if piece is not None else "?",
        is_capture=captured is not None,
        captured_piece=captured,
        promotion=chess.piece_symbol(move.promotion).upper() if move.promotion else None,
        gives_check=board.gives_check(move),
    )


def legal_moves(snapshot: PositionSnapshot) -> list[CandidateMove]:
    """List the legal moves of a snapshot, sorted by UCI text."""
    board = board_for(snapshot)
    candidates = [describe_move(board, move) for move in board.legal_moves]
    candidates.sort(key=lambda c: c.uci)
    return candidates


def apply_move(snapshot: PositionSnapshot, move: str | CandidateMove) -> PositionSnapshot:
    """Apply one move to a snapshot and return the next snapshot.

    Promotion defaults to a queen when the move leaves it unspecified.

    Raises:
        IllegalMoveError: If move is not legal in snapshot.
    """
    board = board_for(snapshot)
    parsed = _parse_move(board, move)
    return _push(board, parsed, snapshot.ply + 1)


def is_legal_sequence(
    start_fen: str | None,
    moves: Iterable[str],
    chess960: bool = False,
) -> bool:
    """Return True if every move replays legally from start_fen."""
    try:
        replay(start_fen, moves, chess960)
    except ReplayError:
        return False
    return True
