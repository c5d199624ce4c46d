"""Response schemas and minification for MCP tool responses.

Minifies MCP tool return values to reduce LLM context token waste.
Stored puzzle records are not affected, only MCP return values.

Move sequences are rendered as PGN move strings (1.e4 e5 2.Nf3 ...),
numbered from the position they are played from.
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_puzzle(puzzle: dict) -> dict:
    """Minify a stored puzzle record for MCP response.

    Flattens progress to the two flags the agent uses, keeps only the
    description and clue from the explanation, and compacts the game
    history to a PGN string. The solution stays a list so clients can
    step through it.

    Args:
        puzzle: Puzzle record as returned by PuzzleStore.

    Returns:
        Minified dict.
    """
    result = {}

    for key in ("id", "position", "theme", "difficulty", "evaluation", "last_move"):
        if key in puzzle:
            result[key] = puzzle[key]

    result["solution"] = list(puzzle.get("solution", []))
    result["solution_pgn"] = _moves_to_pgn_string(result["solution"], puzzle.get("position"))

    history = puzzle.get("move_history", [])
    if isinstance(history, (list, tuple)):
        result["move_history"] = _moves_to_pgn_string(list(history))
    else:
        result["move_history"] = history

    explanation = puzzle.get("explanation") or {}
    result["description"] = explanation.get("description")
    result["clue"] = explanation.get("clue")

    progress = puzzle.get("progress") or {}
    result["is_solved"] = bool(progress.get("is_solved", False))
    result["is_bookmarked"] = bool(progress.get("is_bookmarked", False))

    game_data = puzzle.get("game_data") or {}
    if game_data:
        result["game"] = f"{game_data.get('white', '?')} vs {game_data.get('black', '?')}"

    # Removed fields: metadata, game_context, detailed_clue, user_id

    return result


def minify_session(state: dict) -> dict:
    """Minify a solving-session snapshot for MCP response.

    Drops empty fields (no rejection, no review index, no grade yet) and
    UI-only timing flags.

    Args:
        state: SolvingEngine.snapshot() dict, plus session_id.

    Returns:
        Minified dict.
    """
    result = {}

    for key in (
        "session_id", "puzzle_id", "fen", "state", "ply", "total_plies",
        "failed_attempts", "hint_shown", "solution_revealed",
    ):
        if key in state:
            result[key] = state[key]

    history = state.get("move_history", [])
    result["move_history"] = list(history) if isinstance(history, (list, tuple)) else history

    for key in ("last_rejection", "grade", "review_index"):
        if state.get(key) is not None:
            result[key] = state[key]

    # Removed fields: highlight, rating_visible

    return result


def minify_generation(response: dict) -> dict:
    """Minify a generation response for MCP response.

    Args:
        response: Dict with game_id, summary and stored puzzle records.

    Returns:
        Minified dict with the summary counts and minified puzzles.
    """
    summary = response.get("summary", {})
    puzzles = response.get("puzzles", [])
    return {
        "game_id": response.get("game_id"),
        "summary": {
            key: summary.get(key)
            for key in ("total_positions", "tactical_positions", "selected", "assembled", "dropped", "cancelled")
        },
        "puzzles_created": len(puzzles),
        "puzzles": [minify_puzzle(p) for p in puzzles],
    }


# ---------------------------------------------------------------------------
# Helper: move list to PGN string
# ---------------------------------------------------------------------------


def _moves_to_pgn_string(moves: list[str], start_fen: str | None = None) -> str:
    """Convert a list of SAN moves to a PGN move string.

    E.g., ['e4', 'e5', 'Nf3', 'Nc6'] -> '1.e4 e5 2.Nf3 Nc6'. With a
    start_fen where black is to move, numbering starts at that FEN's
    move number with an ellipsis: ['Kxf7', 'Ng5+'] -> '4...Kxf7 5.Ng5+'.

    Args:
        moves: List of SAN move strings.
        start_fen: FEN the moves are played from (standard start if None).

    Returns:
        PGN-formatted move string.
    """
    if not moves:
        return ""

    white_to_move = True
    move_num = 1
    if start_fen:
        fields = start_fen.split()
        if len(fields) > 1:
            white_to_move = fields[1] != "b"
        if len(fields) > 5 and fields[5].isdigit():
            move_num = int(fields[5])

    parts = []
    for i, move in enumerate(moves):
        if white_to_move:
            parts.append(f"{move_num}.{move}")
        elif i == 0:
            parts.append(f"{move_num}...{move}")
        else:
            parts.append(move)
        if not white_to_move:
            move_num += 1
        white_to_move = not white_to_move

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

PUZZLE_SCHEMA = {
    "id": str,
    "position": str,
    "solution": list,
    "solution_pgn": str,
    "theme": str,
    "difficulty": int,
    "evaluation": (int, float),
    "last_move": (str, type(None)),
    "move_history": str,
    "description": (str, type(None)),
    "clue": (str, type(None)),
    "is_solved": bool,
    "is_bookmarked": bool,
}

SESSION_SCHEMA = {
    "session_id": str,
    "puzzle_id": str,
    "fen": str,
    "state": str,
    "ply": int,
    "total_plies": int,
    "failed_attempts": int,
    "hint_shown": bool,
    "solution_revealed": bool,
    "move_history": list,
}

GENERATION_SCHEMA = {
    "game_id": (str, type(None)),
    "summary": dict,
    "puzzles_created": int,
    "puzzles": list,
}

STATS_SCHEMA = {
    "total_puzzles": int,
    "solved_puzzles": int,
    "bookmarked_puzzles": int,
    "accuracy": (int, float),
    "average_time": (int, float),
    "favorite_theme": (str, type(None)),
    "theme_distribution": dict,
    "difficulty_distribution": dict,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when PUZZLE_FORGE_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("PUZZLE_FORGE_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if not isinstance(expected_types, tuple):
            expected_types = (expected_types,)
        # bool is an int subclass; reject it where only numbers are allowed
        if isinstance(value, bool) and bool not in expected_types:
            errors.append(f"Key '{key}': expected number, got bool")
            continue
        if not isinstance(value, expected_types):
            type_names = ", ".join(t.__name__ for t in expected_types)
            errors.append(
                f"Key '{key}': expected ({type_names}), "
                f"got {type(value).__name__}"
            )

    return errors
