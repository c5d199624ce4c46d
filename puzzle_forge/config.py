"""Environment-driven configuration for puzzle generation.

Variables (all optional):
    PUZZLE_FORGE_SCORER             heuristic | stockfish (default heuristic)
    PUZZLE_FORGE_SEED               integer seed for reproducible output
    PUZZLE_FORGE_QUIET_PROBABILITY  chance of scoring a quiet position (default 0.1)
    PUZZLE_FORGE_MAX_PUZZLES        puzzles per game (default 5)
    PUZZLE_FORGE_WORKERS            scoring threads (default 1)
    PUZZLE_FORGE_ENGINE_DEPTH       Stockfish depth for the stockfish scorer (default 12)
    PUZZLE_FORGE_STOCKFISH_PATH     explicit Stockfish binary
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from puzzle_forge.scoring import Scorer, make_scorer

_PREFIX = "PUZZLE_FORGE_"

SCORERS = ("heuristic", "stockfish")


def _env_int(env: Mapping[str, str], name: str, default: int | None, minimum: int | None = None) -> int | None:
    raw = env.get(_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{name} must be an integer, got {raw!r}") from None
    if minimum is not None and value < minimum:
        raise ValueError(f"{_PREFIX}{name} must be >= {minimum}, got {value}")
    return value


@dataclass
class ForgeConfig:
    """Generation settings; CLI flags and tool arguments override these."""

    scorer: str = "heuristic"
    seed: int | None = None
    quiet_probability: float = 0.1
    max_puzzles: int = 5
    workers: int = 1
    engine_depth: int = 12
    stockfish_path: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ForgeConfig:
        """Read configuration from PUZZLE_FORGE_* variables.

        Args:
            env: Mapping to read instead of os.environ.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        env = os.environ if env is None else env

        scorer = env.get(_PREFIX + "SCORER", "heuristic") or "heuristic"
        if scorer not in SCORERS:
            raise ValueError(f"{_PREFIX}SCORER must be one of {SCORERS}, got {scorer!r}")

        raw_quiet = env.get(_PREFIX + "QUIET_PROBABILITY")
        quiet = 0.1
        if raw_quiet:
            try:
                quiet = float(raw_quiet)
            except ValueError:
                raise ValueError(
                    f"{_PREFIX}QUIET_PROBABILITY must be a number, got {raw_quiet!r}"
                ) from None
            if not 0.0 <= quiet <= 1.0:
                raise ValueError(f"{_PREFIX}QUIET_PROBABILITY must be in [0, 1], got {quiet}")

        return cls(
            scorer=scorer,
            seed=_env_int(env, "SEED", None),
            quiet_probability=quiet,
            max_puzzles=_env_int(env, "MAX_PUZZLES", 5, minimum=1),
            workers=_env_int(env, "WORKERS", 1, minimum=1),
            engine_depth=_env_int(env, "ENGINE_DEPTH", 12, minimum=1),
            stockfish_path=env.get(_PREFIX + "STOCKFISH_PATH") or None,
        )

    def make_scorer(self) -> Scorer:
        """Build the configured scoring backend."""
        return make_scorer(
            self.scorer,
            seed=self.seed,
            quiet_probability=self.quiet_probability,
            depth=self.engine_depth,
            stockfish_path=self.stockfish_path,
        )
