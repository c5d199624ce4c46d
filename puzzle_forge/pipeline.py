"""Puzzle generation pipeline: one finished game in, a few puzzles out.

Stages:
  replay   - source moves -> position snapshots (truncated at a bad move)
  score    - snapshot -> tactical assessment (optionally on worker threads)
  select   - assessments -> ordered, capped candidates
  assemble - candidate -> gated Puzzle record

Nothing here raises on bad game data; a broken game just produces fewer
(or zero) puzzles.
"""

from __future__ import annotations

import io
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

import chess
import chess.pgn

from puzzle_forge.assembler import assemble
from puzzle_forge.board import is_legal_sequence, replay
from puzzle_forge.errors import AssemblyError, ReplayError
from puzzle_forge.models import GameRecord, PositionSnapshot, Puzzle, TacticalAssessment
from puzzle_forge.scoring import Scorer, make_scorer
from puzzle_forge.selector import DEFAULT_MAX_COUNT, OPENING_PLIES, select

if TYPE_CHECKING:
    from puzzle_forge.store import PuzzleStore

logger = logging.getLogger(__name__)

# Returned by a worker that saw the cancel flag before scoring
_CANCELLED = object()


@dataclass
class GenerationResult:
    """Puzzles produced from one game plus run statistics."""

    puzzles: list[Puzzle] = field(default_factory=list)
    summary: dict = field(default_factory=dict)


def _normalize_fen(fen: str) -> str:
    """Normalize FEN for deduplication (strip move counters)."""
    parts = fen.split()
    return " ".join(parts[:4])


# ---------------------------------------------------------------------------
# Game source
# ---------------------------------------------------------------------------


def game_from_pgn(text: str, game_id: str | None = None, platform: str = "pgn") -> GameRecord | None:
    """Build a GameRecord from PGN text.

    A ``[Variant "Chess960"]`` tag or a ``[SetUp "1"]`` + ``[FEN ...]``
    pair selects an alternate starting position.

    Args:
        text: PGN of a single game.
        game_id: Id to assign (defaults to the Site header or "pgn").
        platform: Platform label for puzzle metadata.

    Returns:
        GameRecord, or None if the PGN holds no readable game.
    """
    try:
        game = chess.pgn.read_game(io.StringIO(text))
    except (ValueError, OSError):
        logger.warning("Could not parse PGN text")
        return None

    if game is None:
        return None
    if game.errors:
        # python-chess stops the mainline at the first bad move
        logger.warning("PGN has %d error(s), keeping moves before: %s", len(game.errors), game.errors[0])

    headers = game.headers
    chess960 = headers.get("Variant", "").lower() in ("chess960", "fischerandom")
    start_fen = None
    if headers.get("SetUp") == "1" or "FEN" in headers:
        start_fen = headers.get("FEN")

    board = game.board()
    moves: list[str] = []
    for move in game.mainline_moves():
        moves.append(board.san(move))
        board.push(move)

    return GameRecord(
        id=game_id or headers.get("Site", "pgn"),
        moves=moves,
        white=headers.get("White", "Unknown"),
        black=headers.get("Black", "Unknown"),
        result=headers.get("Result", "*"),
        platform=platform,
        time_class=headers.get("TimeControl", "unknown"),
        start_fen=start_fen,
        chess960=chess960 or board.chess960,
    )


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def extract_positions(game: GameRecord) -> list[PositionSnapshot]:
    """Replay a game into snapshots, truncating at the first illegal move.

    Returns an empty list for a game whose move list or start position
    cannot be used at all.
    """
    if not isinstance(game.moves, (list, tuple)) or not all(isinstance(m, str) for m in game.moves):
        logger.warning("Game %s: move list is malformed, skipping", game.id)
        return []

    try:
        return replay(game.start_fen, game.moves, game.chess960)
    except ReplayError as exc:
        logger.warning(
            "Game %s: illegal move %r at ply %d, truncating to %d positions",
            game.id, exc.move, exc.ply, len(exc.partial),
        )
        return exc.partial


def score_positions(
    snapshots: list[PositionSnapshot],
    scorer: Scorer,
    workers: int = 1,
    should_cancel: Callable[[], bool] | None = None,
) -> tuple[list[TacticalAssessment | None], bool]:
    """Score every post-opening snapshot.

    Results are aligned with snapshots by index regardless of which
    worker finished first.

    Args:
        snapshots: Snapshots of one game.
        scorer: Scoring backend.
        workers: Worker threads (1 = score inline).
        should_cancel: Checked before each position is scored.

    Returns:
        Tuple of (assessments aligned with snapshots, cancelled flag).
    """
    cancel = should_cancel or (lambda: False)

    def _score_one(snapshot: PositionSnapshot):
        if cancel():
            return _CANCELLED
        if snapshot.ply < OPENING_PLIES:
            return None
        return scorer.score(snapshot)

    if workers <= 1:
        results = []
        for snapshot in snapshots:
            outcome = _score_one(snapshot)
            if outcome is _CANCELLED:
                return [], True
            results.append(outcome)
        return results, False

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(_score_one, s) for s in snapshots]
        # Rejoin in submission (ply) order, not completion order
        outcomes = [f.result() for f in futures]

    if any(o is _CANCELLED for o in outcomes):
        return [], True
    return outcomes, False


def generate_puzzles(
    game: GameRecord | None,
    scorer: Scorer | None = None,
    *,
    max_count: int | None = DEFAULT_MAX_COUNT,
    workers: int = 1,
    seed: int | None = None,
    should_cancel: Callable[[], bool] | None = None,
    include_lead_in: bool = True,
) -> GenerationResult:
    """Run the full pipeline over one game.

    Args:
        game: Source game (None yields an empty result).
        scorer: Scoring backend (heuristic with this seed by default).
        max_count: Maximum puzzles to return (None for no cap).
        workers: Worker threads for scoring.
        seed: Seed for the default scorer and explanation text.
        should_cancel: Checked at each per-position boundary. When it
            returns True the run stops and returns only the puzzles that
            were fully assembled.
        include_lead_in: See assembler.assemble().

    Returns:
        GenerationResult with puzzles in selection order.
    """
    summary = {
        "total_positions": 0,
        "tactical_positions": 0,
        "selected": 0,
        "assembled": 0,
        "dropped": 0,
        "cancelled": False,
    }
    if game is None:
        return GenerationResult(summary=summary)

    cancel = should_cancel or (lambda: False)
    owns_scorer = scorer is None
    if scorer is None:
        scorer = make_scorer("heuristic", seed=seed)

    try:
        snapshots = extract_positions(game)
        summary["total_positions"] = len(snapshots)

        assessments, cancelled = score_positions(snapshots, scorer, workers, cancel)
        if cancelled:
            summary["cancelled"] = True
            return GenerationResult(summary=summary)
    finally:
        if owns_scorer:
            scorer.close()

    summary["tactical_positions"] = sum(1 for a in assessments if a is not None)
    candidates = select(snapshots, assessments, max_count)
    summary["selected"] = len(candidates)

    # Only moves that actually replayed can feed the assembler
    source_moves = [s.move_san for s in snapshots[1:]]

    puzzles: list[Puzzle] = []
    for candidate in candidates:
        if cancel():
            summary["cancelled"] = True
            break
        try:
            puzzle = assemble(
                candidate, source_moves,
                game=game, include_lead_in=include_lead_in, seed=seed,
            )
        except AssemblyError as exc:
            logger.debug("Dropping candidate: %s", exc)
            summary["dropped"] += 1
            continue

        if not is_legal_sequence(puzzle.position, puzzle.solution, puzzle.chess960):
            logger.error(
                "Puzzle %s passed assembly but its solution %s does not replay from %s; withholding",
                puzzle.id, list(puzzle.solution), puzzle.position,
            )
            summary["dropped"] += 1
            continue

        puzzles.append(puzzle)

    summary["assembled"] = len(puzzles)
    return GenerationResult(puzzles=puzzles, summary=summary)


def generate_more(
    game: GameRecord | None,
    store: PuzzleStore,
    user_id: str,
    limit: int = 3,
    **options,
) -> list[dict]:
    """Generate and store up to limit puzzles not already held by the user.

    Positions already used by one of the user's stored puzzles are skipped.

    Returns:
        List of newly created store records.
    """
    used = {_normalize_fen(p["position"]) for p in store.list_for_user(user_id)}
    options.setdefault("max_count", None)
    result = generate_puzzles(game, **options)

    created: list[dict] = []
    for puzzle in result.puzzles:
        if len(created) >= limit:
            break
        norm = _normalize_fen(puzzle.position)
        if norm in used:
            continue
        used.add(norm)
        created.append(store.create(puzzle, user_id=user_id))
    return created
