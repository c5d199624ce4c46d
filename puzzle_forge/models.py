"""Shared data models for the puzzle forge.

PositionSnapshot, TacticalAssessment and PuzzleCandidate flow through the
generation pipeline. Puzzle is the record handed to the store and the
solver; SolvingSession is the per-attempt state owned by the solver.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

THEMES = (
    "mate",
    "winning_combination",
    "tactical_advantage",
    "positional_advantage",
    "tactical_opportunity",
)

STRENGTHS = ("weak", "medium", "strong")

PROGRESS_KEYS = ("is_solved", "attempts", "time_spent", "last_attempted", "is_bookmarked")


def default_progress() -> dict:
    """Return fresh per-user progress for a newly stored puzzle."""
    return {
        "is_solved": False,
        "attempts": 0,
        "time_spent": 0,
        "last_attempted": None,
        "is_bookmarked": False,
    }


@dataclass(frozen=True)
class PositionSnapshot:
    """Immutable board state at one ply of a replayed move list.

    Ply 0 is the starting position and carries no move. For later plies
    the move fields describe the move that produced this position; color
    is the mover ("w" or "b"), not the side to move.
    """

    fen: str
    ply: int
    move_san: str | None = None
    move_uci: str | None = None
    piece: str | None = None
    color: str | None = None
    is_capture: bool = False
    is_check: bool = False
    chess960: bool = False

    @property
    def side_to_move(self) -> str:
        return self.fen.split()[1]


@dataclass(frozen=True)
class CandidateMove:
    """One legal move from a snapshot."""

    from_square: str
    to_square: str
    uci: str
    san: str
    piece: str
    is_capture: bool = False
    captured_piece: str | None = None
    promotion: str | None = None
    gives_check: bool = False


@dataclass(frozen=True)
class TacticalAssessment:
    """Score attached to one snapshot by a Tactical Scorer."""

    ply: int
    evaluation: float
    recommended_move: str
    continuation: tuple[str, ...] = ()
    strength: str = "weak"
    piece: str | None = None
    captured_piece: str | None = None
    gives_check: bool = False
    depth: int | None = None


@dataclass(frozen=True)
class PuzzleCandidate:
    """A selected position with its classification."""

    snapshot: PositionSnapshot
    assessment: TacticalAssessment
    theme: str
    difficulty: int
    learning_value: float = 0.0


@dataclass
class GameRecord:
    """A finished game as supplied by a game source."""

    id: str
    moves: list[str]
    white: str = "Unknown"
    black: str = "Unknown"
    result: str = "*"
    platform: str = "pgn"
    time_class: str = "unknown"
    start_fen: str | None = None
    chess960: bool = False


@dataclass(frozen=True)
class Puzzle:
    """A self-contained puzzle: starting position plus forced solution line."""

    id: str
    position: str
    solution: tuple[str, ...]
    theme: str
    difficulty: int
    evaluation: float = 0.0
    last_move: str | None = None
    move_history: tuple[str, ...] = ()
    game_context: dict = field(default_factory=dict)
    game_data: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    explanation: dict = field(default_factory=dict)
    user_id: str | None = None
    progress: dict = field(default_factory=default_progress)

    @property
    def chess960(self) -> bool:
        return bool(self.metadata.get("chess960", False))

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict."""
        data = asdict(self)
        data["solution"] = list(self.solution)
        data["move_history"] = list(self.move_history)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Puzzle:
        """Rebuild a Puzzle from to_dict() output (or a store record).

        Raises:
            ValueError: If a required field is missing.
        """
        missing = [k for k in ("id", "position", "solution", "theme", "difficulty") if k not in data]
        if missing:
            raise ValueError(f"Puzzle record missing fields: {missing}")

        progress = default_progress()
        progress.update(data.get("progress") or {})

        return cls(
            id=str(data["id"]),
            position=data["position"],
            solution=tuple(data["solution"]),
            theme=data["theme"],
            difficulty=int(data["difficulty"]),
            evaluation=float(data.get("evaluation", 0.0)),
            last_move=data.get("last_move"),
            move_history=tuple(data.get("move_history") or ()),
            game_context=dict(data.get("game_context") or {}),
            game_data=dict(data.get("game_data") or {}),
            metadata=dict(data.get("metadata") or {}),
            explanation=dict(data.get("explanation") or {}),
            user_id=data.get("user_id"),
            progress=progress,
        )


@dataclass
class SolvingSession:
    """Mutable state of one solving attempt."""

    puzzle_id: str
    ply: int = 0
    state: str = "awaiting_move"
    move_history: list[str] = field(default_factory=list)
    failed_attempts: int = 0
    hint_shown: bool = False
    solution_revealed: bool = False
    last_rejection: dict | None = None
    highlight: tuple[str, ...] = ()
    rating_visible: bool = False
    review_index: int | None = None
    grade: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state == "completed"
