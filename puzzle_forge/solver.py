"""Puzzle solving engine: a deterministic state machine over one puzzle.

The user plays one side of the solution line; the other side's moves are
played automatically as scripted replies. The board is never cached: it
is rebuilt from the puzzle's starting position plus the confirmed
solution prefix every time it is needed.

States:
  awaiting_move         - waiting for the user's move
  correct_intermediate  - right move, the reply is queued
  opponent_replying     - the scripted reply is about to be played
  illegal_attempt       - last attempt was illegal (user may try again)
  wrong_move            - legal but wrong; user must restart or continue
  completed             - the whole solution has been played
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

import chess

from puzzle_forge.board import apply_move, is_legal_sequence, replay
from puzzle_forge.errors import IllegalMoveError
from puzzle_forge.models import PositionSnapshot, Puzzle, SolvingSession
from puzzle_forge.scheduler import TaskScheduler

# Failed attempts at which a completed solve drops to one star
_MANY_FAILURES = 3


class SolveState(str, Enum):
    AWAITING_MOVE = "awaiting_move"
    CORRECT_INTERMEDIATE = "correct_intermediate"
    OPPONENT_REPLYING = "opponent_replying"
    ILLEGAL_ATTEMPT = "illegal_attempt"
    WRONG_MOVE = "wrong_move"
    COMPLETED = "completed"


# States in which a new move attempt is accepted
_ACCEPTING = (SolveState.AWAITING_MOVE, SolveState.ILLEGAL_ATTEMPT)

RECOVERY_MODES = ("restart", "continue")


def grade_session(session: SolvingSession) -> int:
    """Star rating (0-3) for a finished session.

    A revealed solution always scores 0. Otherwise a hint or three or
    more failures scores 1, any failure scores 2, and a clean solve 3.
    """
    if session.solution_revealed:
        return 0
    if session.hint_shown or session.failed_attempts >= _MANY_FAILURES:
        return 1
    if session.failed_attempts >= 1:
        return 2
    return 3


class SolvingEngine:
    """Validates a user's moves against a puzzle's solution line."""

    def __init__(
        self,
        puzzle: Puzzle | dict,
        scheduler: TaskScheduler | None = None,
        on_change: Callable[[dict], None] | None = None,
    ) -> None:
        """Load a puzzle for solving.

        Args:
            puzzle: Puzzle or puzzle dict.
            scheduler: Task queue for scripted steps (a private one by default).
            on_change: Called with snapshot() after every state change.

        Raises:
            ValueError: If the puzzle's solution does not replay legally.
        """
        self.scheduler = scheduler or TaskScheduler()
        self._on_change = on_change
        self._epoch = 0
        self.load(puzzle)

    # ------------------------------------------------------------------
    # Loading / resetting
    # ------------------------------------------------------------------

    def load(self, puzzle: Puzzle | dict) -> None:
        """Discard any previous session and start solving puzzle.

        Raises:
            ValueError: If the puzzle has no solution or it does not replay.
        """
        if isinstance(puzzle, dict):
            puzzle = Puzzle.from_dict(puzzle)
        if not puzzle.solution:
            raise ValueError(f"Puzzle {puzzle.id} has an empty solution")
        if not is_legal_sequence(puzzle.position, puzzle.solution, puzzle.chess960):
            raise ValueError(f"Puzzle {puzzle.id} solution does not replay from its position")

        self.puzzle = puzzle
        self._start_session()

    def _start_session(self) -> None:
        self._epoch += 1
        self.session = SolvingSession(puzzle_id=self.puzzle.id)
        self._notify()

    def reset(self) -> dict:
        """Start the same puzzle over with all counters cleared."""
        self._start_session()
        return self.snapshot()

    def recover(self, mode: str) -> dict:
        """Recover from a wrong (or illegal) move.

        Args:
            mode: "restart" returns to the puzzle's starting position;
                "continue" drops the wrong move and resumes at the last
                confirmed ply.

        Failed attempts, hint and reveal flags carry over in both modes.

        Raises:
            ValueError: If mode is unknown.
        """
        if mode not in RECOVERY_MODES:
            raise ValueError(f"Unknown recovery mode {mode!r}, expected one of {RECOVERY_MODES}")

        s = self.session
        if mode == "restart":
            self._epoch += 1
            s.ply = 0
            s.move_history = []
            s.state = SolveState.AWAITING_MOVE.value
            s.last_rejection = None
            s.highlight = ()
            s.rating_visible = False
            s.grade = None
            s.review_index = None
        elif s.state in (SolveState.WRONG_MOVE.value, SolveState.ILLEGAL_ATTEMPT.value):
            s.state = SolveState.AWAITING_MOVE.value
            s.last_rejection = None
        self._notify()
        return self.snapshot()

    # ------------------------------------------------------------------
    # Board reconstruction
    # ------------------------------------------------------------------

    def _position_at(self, ply: int) -> PositionSnapshot:
        """Rebuild the position after the first ply solution moves."""
        return replay(self.puzzle.position, self.puzzle.solution[:ply], self.puzzle.chess960)[-1]

    def board_fen(self) -> str:
        """FEN of the current position, rebuilt from the confirmed prefix."""
        return self._position_at(self.session.ply).fen

    @property
    def expected_move(self) -> str | None:
        ply = self.session.ply
        return self.puzzle.solution[ply] if ply < len(self.puzzle.solution) else None

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def attempt_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> dict:
        """Try a user move given as origin and destination squares.

        Args:
            from_square: Origin square name, e.g. "e2".
            to_square: Destination square name, e.g. "e4".
            promotion: Promotion piece letter; a queen when omitted.

        Returns:
            Dict with accepted, state, ply, fen, and on rejection reason,
            attempted_move, expected_move, move_number.
        """
        s = self.session
        if s.state not in _ACCEPTING or self.expected_move is None:
            return self._result(False, reason="not_accepting")

        expected = self.expected_move
        current = self._position_at(s.ply)
        uci = f"{from_square}{to_square}{(promotion or '').lower()}"

        try:
            played = apply_move(current, uci)
        except IllegalMoveError:
            s.failed_attempts += 1
            s.state = SolveState.ILLEGAL_ATTEMPT.value
            s.last_rejection = {
                "attempted_move": f"{from_square}-{to_square}",
                "expected_move": expected,
                "move_number": s.ply + 1,
                "illegal": True,
            }
            self._notify()
            return self._result(False, reason="illegal", **s.last_rejection)

        target = apply_move(current, expected)
        if played.move_uci != target.move_uci:
            s.failed_attempts += 1
            s.state = SolveState.WRONG_MOVE.value
            s.last_rejection = {
                "attempted_move": played.move_san,
                "expected_move": expected,
                "move_number": s.ply + 1,
                "illegal": False,
            }
            self._notify()
            return self._result(
                False, reason="wrong_move", recoveries=list(RECOVERY_MODES), **s.last_rejection,
            )

        s.last_rejection = None
        self._confirm(played)

        if s.ply >= len(self.puzzle.solution):
            self._complete()
        else:
            s.state = SolveState.CORRECT_INTERMEDIATE.value
            self._schedule("show_move", self._begin_reply)
        self._notify()
        return self._result(True, move=played.move_san)

    def _confirm(self, played: PositionSnapshot) -> None:
        """Record a confirmed solution move and highlight it."""
        s = self.session
        s.ply += 1
        s.move_history.append(played.move_san)
        move = chess.Move.from_uci(played.move_uci)
        s.highlight = (chess.square_name(move.from_square), chess.square_name(move.to_square))
        self._schedule("clear_highlight", self._clear_highlight)

    def _begin_reply(self) -> None:
        self.session.state = SolveState.OPPONENT_REPLYING.value
        self._notify()
        self._schedule("opponent_thinking", self._play_reply)

    def _play_reply(self) -> None:
        s = self.session
        reply = self.expected_move
        if reply is None:
            self._complete()
            self._notify()
            return
        self._confirm(apply_move(self._position_at(s.ply), reply))
        if s.ply >= len(self.puzzle.solution):
            self._complete()
        else:
            s.state = SolveState.AWAITING_MOVE.value
        self._notify()

    def _complete(self) -> None:
        self.session.state = SolveState.COMPLETED.value
        self.session.grade = grade_session(self.session)
        self._schedule("show_rating", self._show_rating)

    def _show_rating(self) -> None:
        self.session.rating_visible = True
        self._notify()

    def _clear_highlight(self) -> None:
        self.session.highlight = ()
        self._notify()

    def _schedule(self, name: str, callback: Callable[[], None]) -> None:
        """Queue a step that is skipped if the session restarts meanwhile."""
        epoch = self._epoch

        def _guarded() -> None:
            if epoch == self._epoch:
                callback()

        self.scheduler.schedule(name, _guarded)

    # ------------------------------------------------------------------
    # Hints, reveal, grading
    # ------------------------------------------------------------------

    def request_hint(self) -> dict:
        """Reveal the origin square of the next expected move.

        Returns:
            {"from_square": name}, or {"error": ...} when no user move is due.
        """
        s = self.session
        if s.state not in (*_ACCEPTING, SolveState.WRONG_MOVE) or self.expected_move is None:
            return {"error": f"No move expected in state {s.state}"}

        played = apply_move(self._position_at(s.ply), self.expected_move)
        from_square = played.move_uci[:2]
        s.hint_shown = True
        s.highlight = (from_square,)
        self._notify()
        return {"from_square": from_square}

    def reveal_solution(self) -> dict:
        """Show the full solution. The session can then score at most 0."""
        self.session.solution_revealed = True
        self._notify()
        return {"solution": list(self.puzzle.solution), "revealed": True}

    def grade(self) -> int | None:
        """Star rating fixed at completion, or None before that."""
        return self.session.grade

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def navigate_review(self, delta: int) -> dict:
        """Step through the solution line without touching the session.

        Available once the puzzle is completed or its solution revealed.
        The index is clamped to 0..len(solution).

        Returns:
            Dict with review_index, fen and move (the move leading to
            that position), or {"error": ...}.
        """
        s = self.session
        if s.state != SolveState.COMPLETED.value and not s.solution_revealed:
            return {"error": "Review is available after completing or revealing the puzzle"}

        total = len(self.puzzle.solution)
        start = s.review_index if s.review_index is not None else total
        index = max(0, min(total, start + delta))
        s.review_index = index
        return {
            "review_index": index,
            "fen": self._position_at(index).fen,
            "move": self.puzzle.solution[index - 1] if index > 0 else None,
        }

    # ------------------------------------------------------------------
    # Rendering payload
    # ------------------------------------------------------------------

    def snapshot(self) -> dict:
        """Current board and session state for rendering."""
        s = self.session
        return {
            "puzzle_id": self.puzzle.id,
            "fen": self.board_fen(),
            "state": s.state,
            "ply": s.ply,
            "total_plies": len(self.puzzle.solution),
            "move_history": list(s.move_history),
            "failed_attempts": s.failed_attempts,
            "hint_shown": s.hint_shown,
            "solution_revealed": s.solution_revealed,
            "highlight": list(s.highlight),
            "last_rejection": s.last_rejection,
            "rating_visible": s.rating_visible,
            "grade": self.grade(),
            "review_index": s.review_index,
        }

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())

    def _result(self, accepted: bool, reason: str | None = None, **extra) -> dict:
        result = {
            "accepted": accepted,
            "state": self.session.state,
            "ply": self.session.ply,
            "fen": self.board_fen(),
            "failed_attempts": self.session.failed_attempts,
        }
        if reason is not None:
            result["reason"] = reason
        result.update(extra)
        return result
