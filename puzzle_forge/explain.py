"""Explanation and clue text for assembled puzzles.

Text is built from templates keyed by the mover's color, the moved piece,
whether the move captured, and the game phase. Template choice comes from
a caller-supplied random.Random, so a fixed seed gives fixed text.
"""

from __future__ import annotations

import random

_PIECE_NAMES: dict[str, str] = {
    "P": "pawn",
    "N": "knight",
    "B": "bishop",
    "R": "rook",
    "Q": "queen",
    "K": "king",
}

# Phase buckets by ply: (upper bound exclusive, phase name)
_PHASES: list[tuple[int, str]] = [
    (10, "opening"),
    (30, "middlegame"),
]
_LAST_PHASE = "endgame"

_CAPTURE_DESCRIPTIONS = [
    "{player}'s {piece} just made a capture in the {phase}. The material balance has shifted.",
    "In the {phase}, {player_lower} has just taken material with the {piece}. Both sides are looking for chances.",
    "A {piece} capture by {player_lower} has changed the landscape of this {phase}. The next moves are critical.",
    "The {phase} is heating up: {player}'s {piece} has just captured. Every piece now matters.",
    "{player}'s {piece} has just gone on a raid in the {phase}. Can the position be exploited?",
    "{current} and {opponent} are trading blows in the {phase}. {current}'s {piece} has just captured.",
]

_QUIET_DESCRIPTIONS = [
    "{player}'s {piece} has just moved in the {phase}. The position is full of tension.",
    "After {player_lower}'s {piece} move, the {phase} continues with chances for both sides.",
    "It's the {phase}, and {player_lower}'s {piece} has just repositioned. The balance is changing.",
    "A quiet {piece} move by {player_lower} has set the stage in this {phase}.",
    "The {phase} is at a crossroads after {player}'s {piece} move. The board is full of possibilities.",
    "{current} and {opponent} are locked in a {phase} battle. {current}'s {piece} has just moved.",
]

_CLUES = [
    "Win material by using your {piece} at the right moment.",
    "Create a decisive threat with your {piece}.",
    "Break through the defense by activating your {piece}.",
    "Find the tactic that leverages your {piece} for maximum effect.",
    "Punish your opponent's last move with a sharp response from your {piece}.",
    "Can you spot the idea with your {piece}?",
    "What is the most forcing move for your {piece} in this position?",
    "Find the forcing sequence that starts with your {piece}.",
]

_DETAILED_CLUE = "Pay attention to the {piece} and its possible moves in the {phase}."


def phase_for_ply(ply: int) -> str:
    """Bucket a ply into opening / middlegame / endgame."""
    for bound, phase in _PHASES:
        if ply < bound:
            return phase
    return _LAST_PHASE


def piece_name(symbol: str | None) -> str:
    """Lower-case piece name for a piece symbol ("piece" if unknown)."""
    if not symbol:
        return "piece"
    return _PIECE_NAMES.get(symbol.upper(), "piece")


def build_explanation(
    mover_color: str | None,
    moved_piece: str | None,
    was_capture: bool,
    ply: int,
    first_solution_piece: str | None,
    rng: random.Random,
    white: str = "White",
    black: str = "Black",
) -> dict:
    """Generate description, clue and detailed clue for a puzzle.

    Args:
        mover_color: "w" or "b", the side that played the source move.
        moved_piece: Piece symbol of the source move.
        was_capture: Whether the source move captured.
        ply: Ply of the scored position (selects the phase).
        first_solution_piece: Piece symbol of the first solution move.
        rng: Random source for template choice.
        white: White player's name.
        black: Black player's name.

    Returns:
        Dict with description, clue, detailed_clue.
    """
    player = "White" if mover_color == "w" else "Black"
    current, opponent = (white, black) if mover_color == "w" else (black, white)
    phase = phase_for_ply(ply)

    templates = _CAPTURE_DESCRIPTIONS if was_capture else _QUIET_DESCRIPTIONS
    description = rng.choice(templates).format(
        player=player,
        player_lower=player.lower(),
        piece=piece_name(moved_piece),
        phase=phase,
        current=current or player,
        opponent=opponent or ("Black" if player == "White" else "White"),
    )

    solution_piece = piece_name(first_solution_piece)
    return {
        "description": description,
        "clue": rng.choice(_CLUES).format(piece=solution_piece),
        "detailed_clue": _DETAILED_CLUE.format(piece=solution_piece, phase=phase),
    }
