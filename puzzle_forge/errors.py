"""Error types for puzzle generation and solving.

Generation-time errors only ever reduce the number of puzzles produced;
solving-time errors are reported back to the caller as rejected moves.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from puzzle_forge.models import PositionSnapshot


class PuzzleForgeError(Exception):
    """Base class for all puzzle forge errors."""


class IllegalMoveError(PuzzleForgeError):
    """A move is not legal (or not parseable) in the given position."""

    def __init__(self, move: str, fen: str, reason: str = "illegal move") -> None:
        self.move = move
        self.fen = fen
        self.reason = reason
        super().__init__(f"{reason}: {move!r} in {fen}")


class ReplayError(PuzzleForgeError):
    """A move list contains an illegal move at some ply.

    Attributes:
        ply: 1-based ply of the offending move (0 for a bad start position).
        move: The offending move text.
        partial: Snapshots successfully produced before the failure.
    """

    def __init__(
        self,
        ply: int,
        move: str | None,
        partial: list[PositionSnapshot] | None = None,
        reason: str = "illegal move",
    ) -> None:
        self.ply = ply
        self.move = move
        self.partial = list(partial or [])
        super().__init__(f"Replay failed at ply {ply} ({move!r}): {reason}")


class AssemblyError(PuzzleForgeError):
    """A candidate position could not be packaged into a valid puzzle."""

    def __init__(self, ply: int, reason: str) -> None:
        self.ply = ply
        self.reason = reason
        super().__init__(f"Cannot assemble puzzle at ply {ply}: {reason}")
