"""Tactical scorers: turn a position snapshot into a tactical assessment.

Two backends share the Scorer protocol:
- HeuristicScorer: capture-value and check detection, no search
- EngineScorer: Stockfish principal variation at a fixed depth

Callers pick one through make_scorer() and never branch on the backend.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import Protocol

from puzzle_forge.board import apply_move, board_for, describe_move, legal_moves
from puzzle_forge.models import CandidateMove, PositionSnapshot, TacticalAssessment

logger = logging.getLogger(__name__)

# Material values by piece symbol
_PIECE_VALUES: dict[str, int] = {
    "P": 1,
    "N": 3,
    "B": 3,
    "R": 5,
    "Q": 9,
    "K": 0,
}

QUIET_EVALUATION = 0.1
CHECK_EVALUATION = 0.5

_CONTINUATION_LENGTH = 2


def piece_value(symbol: str | None) -> int:
    """Return the material value of a piece symbol (0 for None)."""
    if symbol is None:
        return 0
    return _PIECE_VALUES.get(symbol.upper(), 0)


def strength_for(evaluation: float) -> str:
    """Map an evaluation magnitude to weak / medium / strong.

    Thresholds sit at half the rook and minor piece values, so a capture
    scored at 0.5 x value lands where its material value says it should.
    """
    magnitude = abs(evaluation)
    if magnitude >= 2.5:
        return "strong"
    if magnitude >= 1.5:
        return "medium"
    return "weak"


class Scorer(Protocol):
    """Scoring backend interface."""

    name: str

    def score(self, snapshot: PositionSnapshot) -> TacticalAssessment | None:
        ...

    def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Heuristic backend
# ---------------------------------------------------------------------------


def _best_capture(candidates: list[CandidateMove]) -> CandidateMove | None:
    """Highest-value capture; ties keep legal-move order."""
    best: CandidateMove | None = None
    for cand in candidates:
        if not cand.is_capture:
            continue
        if best is None or piece_value(cand.captured_piece) > piece_value(best.captured_piece):
            best = cand
    return best


class HeuristicScorer:
    """Capture/check heuristic with an optional random quiet-move pick.

    Quiet positions (no capture, no check) are scored with probability
    ``quiet_probability`` so quiet games still yield some candidates.
    With a seed, the draw for each position is derived from the seed and
    the position itself, which keeps results stable when positions are
    scored concurrently or out of order.
    """

    name = "heuristic"

    def __init__(self, quiet_probability: float = 0.1, seed: int | None = None) -> None:
        if not 0.0 <= quiet_probability <= 1.0:
            raise ValueError(f"quiet_probability must be in [0, 1], got {quiet_probability}")
        self.quiet_probability = quiet_probability
        self._seed = seed
        self._rng = random.Random(seed)
        self._rng_lock = threading.Lock()

    def _quiet_pick(self, snapshot: PositionSnapshot, candidates: list[CandidateMove]) -> CandidateMove | None:
        """Return a random quiet move, or None when the draw misses."""
        if self.quiet_probability <= 0.0:
            return None
        if self._seed is not None:
            rng = random.Random(f"{self._seed}:{snapshot.ply}:{snapshot.fen}")
            if rng.random() >= self.quiet_probability:
                return None
            return rng.choice(candidates)
        with self._rng_lock:
            if self._rng.random() >= self.quiet_probability:
                return None
            return self._rng.choice(candidates)

    def _continuation(self, snapshot: PositionSnapshot, move: CandidateMove) -> tuple[str, ...]:
        """Greedy capture/recapture line after move, up to two plies."""
        line: list[str] = []
        current = apply_move(snapshot, move)
        for _ in range(_CONTINUATION_LENGTH):
            reply = _best_capture(legal_moves(current))
            if reply is None:
                break
            line.append(reply.san)
            current = apply_move(current, reply)
        return tuple(line)

    def score(self, snapshot: PositionSnapshot) -> TacticalAssessment | None:
        """Score a snapshot for the side to move.

        Args:
            snapshot: Position to score.

        Returns:
            TacticalAssessment, or None for an unremarkable position.
        """
        candidates = legal_moves(snapshot)
        if not candidates:
            return None

        capture = _best_capture(candidates)
        if capture is not None:
            value = piece_value(capture.captured_piece)
            evaluation = 0.5 * value
            return TacticalAssessment(
                ply=snapshot.ply,
                evaluation=evaluation,
                recommended_move=capture.san,
                continuation=self._continuation(snapshot, capture),
                strength=strength_for(evaluation),
                piece=capture.piece,
                captured_piece=capture.captured_piece,
                gives_check=capture.gives_check,
            )

        check = next((c for c in candidates if c.gives_check), None)
        if check is not None:
            return TacticalAssessment(
                ply=snapshot.ply,
                evaluation=CHECK_EVALUATION,
                recommended_move=check.san,
                continuation=self._continuation(snapshot, check),
                strength="weak",
                piece=check.piece,
                gives_check=True,
            )

        quiet = self._quiet_pick(snapshot, candidates)
        if quiet is None:
            return None
        return TacticalAssessment(
            ply=snapshot.ply,
            evaluation=QUIET_EVALUATION,
            recommended_move=quiet.san,
            strength="weak",
            piece=quiet.piece,
        )

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Engine backend
# ---------------------------------------------------------------------------


class EngineScorer:
    """Stockfish-backed scorer behind the same contract as the heuristic."""

    name = "stockfish"

    def __init__(
        self,
        engine=None,
        depth: int = 12,
        stockfish_path: str | None = None,
    ) -> None:
        """Wrap an engine, starting Stockfish if none is given.

        Args:
            engine: Object with best_line(board, depth, continuation).
            depth: Search depth per position.
            stockfish_path: Stockfish binary, used only when engine is None.

        Raises:
            FileNotFoundError: If Stockfish must be started and is missing.
        """
        if engine is None:
            from puzzle_forge.engine import ChessEngine

            engine = ChessEngine(stockfish_path)
        self._engine = engine
        self.depth = depth

    def score(self, snapshot: PositionSnapshot) -> TacticalAssessment | None:
        """Score a snapshot from the engine's principal line."""
        board = board_for(snapshot)
        if board.is_game_over():
            return None

        line = self._engine.best_line(board, depth=self.depth, continuation=_CONTINUATION_LENGTH)
        if line is None:
            return None
        if not board.is_legal(line.move):
            logger.warning("Engine move %s not legal at ply %d", line.move.uci(), snapshot.ply)
            return None

        first = describe_move(board, line.move)
        return TacticalAssessment(
            ply=snapshot.ply,
            evaluation=line.evaluation,
            recommended_move=first.san,
            continuation=line.continuation,
            strength=strength_for(line.evaluation),
            piece=first.piece,
            captured_piece=first.captured_piece,
            gives_check=first.gives_check,
            depth=self.depth,
        )

    def close(self) -> None:
        self._engine.close()


def make_scorer(name: str = "heuristic", **options) -> Scorer:
    """Build a scoring backend by name.

    Args:
        name: "heuristic" or "stockfish".
        **options: Backend keyword arguments (quiet_probability and seed
            for heuristic; engine, depth and stockfish_path for stockfish).

    Raises:
        ValueError: If the backend name is unknown.
    """
    if name == "heuristic":
        return HeuristicScorer(
            quiet_probability=options.get("quiet_probability", 0.1),
            seed=options.get("seed"),
        )
    if name == "stockfish":
        return EngineScorer(
            engine=options.get("engine"),
            depth=options.get("depth", 12),
            stockfish_path=options.get("stockfish_path"),
        )
    raise ValueError(f"Unknown scorer: {name!r} (expected 'heuristic' or 'stockfish')")
