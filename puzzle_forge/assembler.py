"""Puzzle assembly: package a selected position as a solvable puzzle.

The puzzle starts a couple of plies before the scored position so the
solver replays the lead-in before finding the tactic. Every solution line
is replayed through the board simulator before a Puzzle is returned.
"""

from __future__ import annotations

import random
import uuid
from datetime import datetime, timezone
from typing import Sequence

from puzzle_forge.board import replay
from puzzle_forge.errors import AssemblyError, ReplayError
from puzzle_forge.explain import build_explanation
from puzzle_forge.models import GameRecord, Puzzle, PuzzleCandidate

REWIND_PLIES = 2

# Follow-up moves kept after the recommended move
MAX_CONTINUATION = 2


def _explanation_rng(seed: int | None, ply: int) -> random.Random:
    """Per-puzzle random source; fixed when a seed is given."""
    if seed is None:
        return random.Random()
    return random.Random(f"{seed}:explain:{ply}")


def assemble(
    candidate: PuzzleCandidate,
    source_moves: Sequence[str],
    *,
    game: GameRecord | None = None,
    include_lead_in: bool = True,
    seed: int | None = None,
    puzzle_id: str | None = None,
) -> Puzzle:
    """Build a Puzzle from a selected candidate.

    Args:
        candidate: Selected position with its assessment and classification.
        source_moves: The full move list of the source game.
        game: Source game, for start position and player metadata.
        include_lead_in: Prefix the solution with the game moves played
            between the rewound start and the scored position.
        seed: Seed for explanation template choice.
        puzzle_id: Explicit id (a fresh UUID otherwise).

    Returns:
        A Puzzle whose solution replays legally from its position.

    Raises:
        AssemblyError: If the start position cannot be rebuilt or the
            solution line fails the legality replay.
    """
    snapshot = candidate.snapshot
    assessment = candidate.assessment
    ply = snapshot.ply
    start_fen = game.start_fen if game is not None else None
    chess960 = game.chess960 if game is not None else snapshot.chess960

    if ply > len(source_moves):
        raise AssemblyError(ply, f"source game has only {len(source_moves)} moves")

    try:
        line = replay(start_fen, source_moves[:ply], chess960)
    except ReplayError as exc:
        raise AssemblyError(ply, f"source moves do not replay: {exc}") from exc

    if line[ply].fen != snapshot.fen:
        raise AssemblyError(ply, "source moves do not reach the scored position")

    rewind = min(REWIND_PLIES, ply)
    start_ply = ply - rewind
    start = line[start_ply]

    lead_in = [s.move_san for s in line[start_ply + 1:]] if include_lead_in else []
    solution = lead_in + [assessment.recommended_move] + list(assessment.continuation[:MAX_CONTINUATION])

    try:
        gated = replay(start.fen, solution, chess960)
    except ReplayError as exc:
        raise AssemblyError(ply, f"solution fails replay at move {exc.ply}: {exc.move!r}") from exc
    solution_san = [s.move_san for s in gated[1:]]

    white = game.white if game is not None else "White"
    black = game.black if game is not None else "Black"
    explanation = build_explanation(
        mover_color=snapshot.color,
        moved_piece=snapshot.piece,
        was_capture=snapshot.is_capture,
        ply=ply,
        first_solution_piece=gated[1].piece,
        rng=_explanation_rng(seed, ply),
        white=white,
        black=black,
    )

    game_data = {}
    if game is not None:
        game_data = {
            "white": game.white,
            "black": game.black,
            "result": game.result,
            "time_class": game.time_class,
            "platform": game.platform,
        }

    return Puzzle(
        id=puzzle_id or str(uuid.uuid4()),
        position=start.fen,
        solution=tuple(solution_san),
        theme=candidate.theme,
        difficulty=candidate.difficulty,
        evaluation=assessment.evaluation,
        last_move=start.move_san,
        move_history=tuple(s.move_san for s in line[1:start_ply + 1]),
        game_context={
            "move_number": ply,
            "original_move": snapshot.move_san,
            "player": snapshot.color,
            "game_id": game.id if game is not None else None,
        },
        game_data=game_data,
        metadata={
            "created_at": datetime.now(timezone.utc).isoformat(),
            "engine_depth": assessment.depth,
            "original_position": snapshot.fen,
            "fen_before_original_move": line[ply - 1].fen if ply > 0 else None,
            "learning_value": candidate.learning_value,
            "strength": assessment.strength,
            "chess960": chess960,
        },
        explanation=explanation,
    )
