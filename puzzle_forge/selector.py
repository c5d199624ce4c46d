"""Position selection and classification.

Turns scored snapshots into an ordered, capped list of puzzle candidates:
opening plies are skipped, each remaining position gets a theme and a
1-5 difficulty tier, and low tiers are thinned out.
"""

from __future__ import annotations

from typing import Sequence

from puzzle_forge.models import PositionSnapshot, PuzzleCandidate, TacticalAssessment
from puzzle_forge.scoring import piece_value

# Number of leading plies (counting the start position as ply 0) that are
# treated as opening and never turned into puzzles
OPENING_PLIES = 3

DEFAULT_MAX_COUNT = 5

# (minimum |evaluation|, theme, difficulty tier), checked in order
_THEME_THRESHOLDS: list[tuple[float, str, int]] = [
    (5.0, "mate", 5),
    (3.0, "winning_combination", 4),
    (2.0, "tactical_advantage", 3),
    (1.0, "positional_advantage", 2),
]

_FALLBACK_THEME = ("tactical_opportunity", 1)


def classify(evaluation: float) -> tuple[str, int]:
    """Classify an evaluation into (theme, difficulty tier).

    Args:
        evaluation: Signed evaluation in pawns.

    Returns:
        Tuple of (theme, difficulty 1-5). Mate is always tier 5.
    """
    magnitude = abs(evaluation)
    for threshold, theme, tier in _THEME_THRESHOLDS:
        if magnitude >= threshold:
            return theme, tier
    return _FALLBACK_THEME


def learning_value(assessment: TacticalAssessment) -> float:
    """Rank how instructive a position is.

    Starts from the evaluation magnitude; a capture of a piece worth more
    than the capturer and a checking move each add a bonus.
    """
    value = abs(assessment.evaluation)
    if assessment.captured_piece is not None:
        if piece_value(assessment.captured_piece) > piece_value(assessment.piece):
            value += 0.5
    if assessment.gives_check:
        value += 0.25
    return value


def _sort_key(candidate: PuzzleCandidate) -> tuple[float, int]:
    return -abs(candidate.assessment.evaluation), candidate.snapshot.ply


def select(
    snapshots: Sequence[PositionSnapshot],
    assessments: Sequence[TacticalAssessment | None],
    max_count: int | None = DEFAULT_MAX_COUNT,
) -> list[PuzzleCandidate]:
    """Pick and order puzzle candidates from a scored game.

    Ordering is by descending |evaluation|, ties broken by ply. Every
    candidate above tier 2 is kept, at most one tier-2 candidate is kept,
    and tier 1 is dropped. The result is truncated to max_count.

    Args:
        snapshots: Snapshots of one game, in ply order.
        assessments: One assessment (or None) per snapshot, aligned by index.
        max_count: Maximum candidates to return (None for no cap).

    Returns:
        Ordered list of PuzzleCandidate.

    Raises:
        ValueError: If the two sequences differ in length.
    """
    if len(snapshots) != len(assessments):
        raise ValueError(
            f"Got {len(snapshots)} snapshots but {len(assessments)} assessments"
        )

    scored: list[PuzzleCandidate] = []
    for snapshot, assessment in zip(snapshots, assessments):
        if snapshot.ply < OPENING_PLIES or assessment is None:
            continue
        theme, tier = classify(assessment.evaluation)
        scored.append(PuzzleCandidate(
            snapshot=snapshot,
            assessment=assessment,
            theme=theme,
            difficulty=tier,
            learning_value=learning_value(assessment),
        ))

    scored.sort(key=_sort_key)

    selected: list[PuzzleCandidate] = []
    tier_two_taken = False
    for candidate in scored:
        if candidate.difficulty <= 1:
            continue
        if candidate.difficulty == 2:
            if tier_two_taken:
                continue
            tier_two_taken = True
        selected.append(candidate)

    if max_count is not None:
        selected = selected[:max_count]
    return selected
