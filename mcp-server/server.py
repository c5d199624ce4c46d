"""MCP server for the puzzle forge.

Exposes puzzle generation, the puzzle store and interactive solving
sessions via FastMCP. Puzzles live in an in-memory PuzzleStore and
solving sessions are kept in memory keyed by UUID, at most one per
puzzle. set_store() swaps the store, which also drops all sessions.
"""

from __future__ import annotations

import sys
import time
import uuid
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP  # noqa: E402

from puzzle_forge.config import ForgeConfig  # noqa: E402
from puzzle_forge.pipeline import game_from_pgn, generate_more, generate_puzzles  # noqa: E402
from puzzle_forge.solver import RECOVERY_MODES, SolveState, SolvingEngine  # noqa: E402
from puzzle_forge.store import PuzzleStore  # noqa: E402

from response_schemas import (  # noqa: E402
    minify_generation,
    minify_puzzle,
    minify_session,
)

mcp = FastMCP("puzzle-forge")

_store = PuzzleStore()

# In-memory solving sessions: session_id -> {engine, puzzle_id, started, recorded}
_sessions: dict[str, dict] = {}


def get_store() -> PuzzleStore:
    """Return the store the tools read and write."""
    return _store


def set_store(store: PuzzleStore) -> PuzzleStore:
    """Replace the server's store and drop all solving sessions.

    Returns:
        The previous store.
    """
    global _store
    previous, _store = _store, store
    _sessions.clear()
    return previous


def _get_session(session_id: str) -> dict | None:
    """Look up a solving session by ID.

    Args:
        session_id: UUID string.

    Returns:
        Session record dict or None if not found.
    """
    return _sessions.get(session_id)


def _drop_sessions(puzzle_id: str) -> int:
    """Forget every session open on a puzzle; returns how many."""
    stale = [sid for sid, s in _sessions.items() if s["puzzle_id"] == puzzle_id]
    for sid in stale:
        del _sessions[sid]
    return len(stale)


def _session_state(session_id: str, session: dict) -> dict:
    """Session snapshot plus its id, minified."""
    engine: SolvingEngine = session["engine"]
    state = engine.snapshot()
    state["session_id"] = session_id
    return minify_session(state)


def _record_completion(session: dict) -> None:
    """Write a finished solve back to the store (once per session)."""
    engine: SolvingEngine = session["engine"]
    if session["recorded"] or engine.session.state != SolveState.COMPLETED.value:
        return
    session["recorded"] = True
    puzzle_id = session["puzzle_id"]
    store = get_store()
    store.record_attempt(puzzle_id)
    if engine.grade():
        store.mark_solved(puzzle_id, round(time.monotonic() - session["started"], 1))


# ---------------------------------------------------------------------------
# Generation tools
# ---------------------------------------------------------------------------


@mcp.tool()
def generate_puzzles_from_pgn(
    pgn: str,
    user_id: str | None = None,
    max_puzzles: int | None = None,
    seed: int | None = None,
) -> dict:
    """Generate tactical puzzles from one finished game and store them.

    Args:
        pgn: PGN text of a single game.
        user_id: Owner of the generated puzzles.
        max_puzzles: Cap on puzzles (default from PUZZLE_FORGE_MAX_PUZZLES).
        seed: Seed for reproducible selection and text.

    Returns:
        Dict with summary counts and the stored puzzles.
    """
    try:
        config = ForgeConfig.from_env()
    except ValueError as e:
        return {"error": f"Configuration error: {e}"}

    game = game_from_pgn(pgn)
    if game is None:
        return {"error": "Could not read a game from the PGN text"}

    if max_puzzles is not None:
        config.max_puzzles = max_puzzles
    if seed is not None:
        config.seed = seed

    try:
        scorer = config.make_scorer()
    except FileNotFoundError as e:
        return {"error": str(e)}

    try:
        result = generate_puzzles(
            game, scorer,
            max_count=config.max_puzzles,
            workers=config.workers,
            seed=config.seed,
        )
    finally:
        scorer.close()

    store = get_store()
    stored = [store.create(p, user_id=user_id) for p in result.puzzles]
    return minify_generation({"game_id": game.id, "summary": result.summary, "puzzles": stored})


@mcp.tool()
def generate_more_puzzles(pgn: str, user_id: str, limit: int = 3) -> dict:
    """Generate up to `limit` new puzzles the user does not already have.

    Scorer, seed and worker count come from PUZZLE_FORGE_* settings.

    Args:
        pgn: PGN text of a single game.
        user_id: Owner of the puzzles.
        limit: Maximum new puzzles (default 3).

    Returns:
        Dict with the newly stored puzzles.
    """
    try:
        config = ForgeConfig.from_env()
    except ValueError as e:
        return {"error": f"Configuration error: {e}"}

    game = game_from_pgn(pgn)
    if game is None:
        return {"error": "Could not read a game from the PGN text"}

    try:
        scorer = config.make_scorer()
    except FileNotFoundError as e:
        return {"error": str(e)}

    try:
        created = generate_more(
            game, get_store(), user_id,
            limit=limit,
            scorer=scorer,
            workers=config.workers,
            seed=config.seed,
        )
    finally:
        scorer.close()
    return {
        "user_id": user_id,
        "puzzles_added": len(created),
        "puzzles": [minify_puzzle(p) for p in created],
    }


# ---------------------------------------------------------------------------
# Store tools
# ---------------------------------------------------------------------------


@mcp.tool()
def get_puzzle(puzzle_id: str) -> dict:
    """Get one stored puzzle.

    Args:
        puzzle_id: UUID of the puzzle.
    """
    puzzle = get_store().get_by_id(puzzle_id)
    if puzzle is None:
        return {"error": f"Puzzle not found: {puzzle_id}"}
    return minify_puzzle(puzzle)


@mcp.tool()
def list_puzzles(
    user_id: str,
    theme: str | None = None,
    difficulty: int | None = None,
    is_solved: bool | None = None,
    is_bookmarked: bool | None = None,
) -> dict:
    """List a user's puzzles with optional filters.

    Args:
        user_id: Owner of the puzzles.
        theme: Filter by theme tag.
        difficulty: Filter by difficulty tier (1-5).
        is_solved: Filter by solved state.
        is_bookmarked: Filter by bookmark state.
    """
    puzzles = get_store().list_for_user(
        user_id,
        theme=theme,
        difficulty=difficulty,
        is_solved=is_solved,
        is_bookmarked=is_bookmarked,
    )
    return {"user_id": user_id, "count": len(puzzles), "puzzles": [minify_puzzle(p) for p in puzzles]}


@mcp.tool()
def other_puzzles(exclude_id: str, limit: int = 10) -> dict:
    """Sample other stored puzzles, excluding one.

    Args:
        exclude_id: Puzzle to leave out.
        limit: Maximum puzzles returned (default 10).
    """
    puzzles = get_store().others(exclude_id, limit=limit)
    return {"count": len(puzzles), "puzzles": [minify_puzzle(p) for p in puzzles]}


@mcp.tool()
def toggle_bookmark(puzzle_id: str) -> dict:
    """Flip a puzzle's bookmark flag.

    Args:
        puzzle_id: UUID of the puzzle.
    """
    puzzle = get_store().toggle_bookmark(puzzle_id)
    if puzzle is None:
        return {"error": f"Puzzle not found: {puzzle_id}"}
    return {"puzzle_id": puzzle_id, "is_bookmarked": puzzle["progress"]["is_bookmarked"]}


@mcp.tool()
def puzzle_stats(user_id: str) -> dict:
    """Progress statistics for a user's puzzles.

    Args:
        user_id: Owner of the puzzles.
    """
    stats = get_store().stats(user_id)
    stats["user_id"] = user_id
    return stats


@mcp.tool()
def delete_puzzle(puzzle_id: str) -> dict:
    """Delete a stored puzzle.

    Args:
        puzzle_id: UUID of the puzzle.
    """
    if not get_store().delete(puzzle_id):
        return {"error": f"Puzzle not found: {puzzle_id}"}
    _drop_sessions(puzzle_id)
    return {"puzzle_id": puzzle_id, "deleted": True}


# ---------------------------------------------------------------------------
# Solving tools
# ---------------------------------------------------------------------------


@mcp.tool()
def start_solving(puzzle_id: str) -> dict:
    """Start a solving session for a stored puzzle.

    Any earlier session on the same puzzle is closed.

    Args:
        puzzle_id: UUID of the puzzle.

    Returns:
        Session state with session_id, board FEN and progress.
    """
    puzzle = get_store().get_by_id(puzzle_id)
    if puzzle is None:
        return {"error": f"Puzzle not found: {puzzle_id}"}

    try:
        engine = SolvingEngine(puzzle)
    except ValueError as e:
        return {"error": str(e)}

    _drop_sessions(puzzle_id)
    session_id = str(uuid.uuid4())
    _sessions[session_id] = {
        "engine": engine,
        "puzzle_id": puzzle_id,
        "started": time.monotonic(),
        "recorded": False,
    }
    state = _session_state(session_id, _sessions[session_id])
    state["clue"] = puzzle.get("explanation", {}).get("clue")
    return state


@mcp.tool()
def attempt_move(
    session_id: str,
    from_square: str,
    to_square: str,
    promotion: str | None = None,
) -> dict:
    """Try a move in a solving session.

    Scripted opponent replies are played before this returns.

    Args:
        session_id: UUID of the session.
        from_square: Origin square (e.g., 'e2').
        to_square: Destination square (e.g., 'e4').
        promotion: Promotion piece letter (queen if omitted).

    Returns:
        Dict with accepted, reason (on rejection) and the session state.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    engine: SolvingEngine = session["engine"]
    result = engine.attempt_move(from_square, to_square, promotion)
    engine.scheduler.flush()
    _record_completion(session)

    response = _session_state(session_id, session)
    response["accepted"] = result["accepted"]
    for key in ("reason", "attempted_move", "expected_move", "recoveries"):
        if key in result:
            response[key] = result[key]
    return response


@mcp.tool()
def request_hint(session_id: str) -> dict:
    """Reveal the origin square of the next expected move.

    Args:
        session_id: UUID of the session.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}
    return session["engine"].request_hint()


@mcp.tool()
def reveal_solution(session_id: str) -> dict:
    """Reveal the full solution (the solve then scores 0 stars).

    Args:
        session_id: UUID of the session.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}
    return session["engine"].reveal_solution()


@mcp.tool()
def recover(session_id: str, mode: str) -> dict:
    """Recover after a wrong move.

    Args:
        session_id: UUID of the session.
        mode: 'restart' (back to the start) or 'continue' (resume at the
            last confirmed move).
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}
    if mode not in RECOVERY_MODES:
        return {"error": f"Invalid mode: {mode}. Use one of {list(RECOVERY_MODES)}"}

    session["engine"].recover(mode)
    return _session_state(session_id, session)


@mcp.tool()
def reset_session(session_id: str) -> dict:
    """Restart the session's puzzle with all counters cleared.

    Args:
        session_id: UUID of the session.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    session["engine"].reset()
    session["started"] = time.monotonic()
    session["recorded"] = False
    return _session_state(session_id, session)


@mcp.tool()
def review(session_id: str, delta: int) -> dict:
    """Step through the solution after completing or revealing it.

    Args:
        session_id: UUID of the session.
        delta: Plies to move (negative steps back).
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}
    return session["engine"].navigate_review(delta)


@mcp.tool()
def end_session(session_id: str) -> dict:
    """Close a solving session and free it.

    Args:
        session_id: UUID of the session.
    """
    session = _sessions.pop(session_id, None)
    if session is None:
        return {"error": f"Session not found: {session_id}"}
    return {"session_id": session_id, "puzzle_id": session["puzzle_id"], "ended": True}


if __name__ == "__main__":
    mcp.run()
