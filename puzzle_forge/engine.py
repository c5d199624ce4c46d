"""Stockfish access for the full-search scoring backend.

ChessEngine answers one question: what is the best line in this position
and how good is it for the side to move. The UCI process starts lazily on
the first search and is restarted once if it dies mid-search.
"""

from __future__ import annotations

import logging
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path

import chess
import chess.engine

logger = logging.getLogger(__name__)

# Common install locations, checked after PATH
_KNOWN_LOCATIONS = (
    "/opt/homebrew/bin/stockfish",
    "/usr/local/bin/stockfish",
    "/usr/bin/stockfish",
    "/usr/games/stockfish",
)

# Evaluation for a forced mate, in pawns
MATE_EVALUATION = 10.0


@dataclass(frozen=True)
class PrincipalLine:
    """Best move found by the engine and what follows it.

    Attributes:
        move: First move of the principal variation.
        continuation: Following moves in SAN, played after move.
        evaluation: Pawns from the side to move's view; a forced mate is
            +/- MATE_EVALUATION.
        mate: Moves to mate (negative when being mated), or None.
    """

    move: chess.Move
    continuation: tuple[str, ...]
    evaluation: float
    mate: int | None = None


def locate_stockfish(explicit: str | None = None) -> str:
    """Resolve the Stockfish binary to run.

    Raises:
        FileNotFoundError: If no binary is given and none can be found.
    """
    if explicit:
        return explicit
    on_path = shutil.which("stockfish")
    if on_path is not None:
        return on_path
    for candidate in _KNOWN_LOCATIONS:
        if Path(candidate).is_file():
            return candidate
    raise FileNotFoundError(
        "Stockfish not found. Install it or set PUZZLE_FORGE_STOCKFISH_PATH."
    )


def _pawns(score: chess.engine.Score) -> tuple[float, int | None]:
    mate = score.mate()
    if mate is not None:
        # Mate(0) means the side to move is already mated
        return (MATE_EVALUATION if mate > 0 else -MATE_EVALUATION), mate
    return score.score() / 100.0, None


class ChessEngine:
    """One Stockfish process, searched by one caller at a time."""

    def __init__(self, stockfish_path: str | None = None) -> None:
        """Resolve the binary; the process itself starts on first use.

        Raises:
            FileNotFoundError: If Stockfish is not found.
        """
        self.path = locate_stockfish(stockfish_path)
        self._process: chess.engine.SimpleEngine | None = None
        self._lock = threading.Lock()

    def _search(self, board: chess.Board, depth: int) -> chess.engine.InfoDict:
        if self._process is None:
            self._process = chess.engine.SimpleEngine.popen_uci(self.path)
        return self._process.analyse(board, chess.engine.Limit(depth=depth))

    def best_line(
        self,
        board: chess.Board,
        depth: int = 12,
        continuation: int = 2,
    ) -> PrincipalLine | None:
        """Search board and return its principal line.

        Args:
            board: Position to search; it is not modified.
            depth: Search depth in plies.
            continuation: Maximum follow-up moves kept after the first.

        Returns:
            PrincipalLine, or None when the engine reports no move.
        """
        with self._lock:
            try:
                info = self._search(board, depth)
            except chess.engine.EngineTerminatedError:
                logger.warning("Stockfish exited during search, restarting")
                self._process = None
                info = self._search(board, depth)

        pv = info.get("pv") or []
        score = info.get("score")
        if not pv or score is None:
            return None

        evaluation, mate = _pawns(score.pov(board.turn))
        after = board.copy(stack=False)
        after.push(pv[0])
        follow_up: list[str] = []
        for move in pv[1:1 + continuation]:
            follow_up.append(after.san(move))
            after.push(move)
        return PrincipalLine(pv[0], tuple(follow_up), evaluation, mate)

    def close(self) -> None:
        """Stop the Stockfish process if one was started."""
        process, self._process = self._process, None
        if process is None:
            return
        try:
            process.quit()
        except chess.engine.EngineTerminatedError:
            logger.debug("Stockfish already gone at close")
