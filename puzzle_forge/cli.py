#!/usr/bin/env python3
"""Command-line interface for the puzzle forge.

Usage:
    python -m puzzle_forge.cli generate game.pgn --out puzzles.json
    python -m puzzle_forge.cli generate game.pgn --seed 42 --max 3
    python -m puzzle_forge.cli analyze "<FEN>" --scorer stockfish
    python -m puzzle_forge.cli show puzzles.json --index 0
    python -m puzzle_forge.cli solve puzzles.json --index 0
    python -m puzzle_forge.cli validate puzzles.json
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path

import chess
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from puzzle_forge.board import initial_snapshot, is_legal_sequence
from puzzle_forge.config import SCORERS, ForgeConfig
from puzzle_forge.errors import ReplayError
from puzzle_forge.models import Puzzle
from puzzle_forge.pipeline import game_from_pgn, generate_puzzles
from puzzle_forge.solver import SolveState, SolvingEngine

# Unicode chess pieces
_PIECE_SYMBOLS = {
    "K": "♔", "Q": "♕", "R": "♖",
    "B": "♗", "N": "♘", "P": "♙",
    "k": "♚", "q": "♛", "r": "♜",
    "b": "♝", "n": "♞", "p": "♟",
}

_LIGHT_SQ = "#f0d9b5"
_DARK_SQ = "#b58863"
_HIGHLIGHT = "#cdd26a"


def _log(msg: str) -> None:
    """Print with flush for progress visibility."""
    print(msg, flush=True)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_board(
    fen: str,
    highlight: list[str] | tuple[str, ...] = (),
    title: str = "Puzzle",
) -> Panel:
    """Render a position as a Rich Panel, from the side to move's view.

    Args:
        fen: Position to draw.
        highlight: Square names to highlight.
        title: Panel title.

    Returns:
        Panel containing the board.
    """
    board = chess.Board(fen)
    is_flipped = board.turn == chess.BLACK
    highlight_squares = {chess.parse_square(sq) for sq in highlight}

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 1))
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    ranks = range(8) if is_flipped else range(7, -1, -1)
    files = list(range(7, -1, -1)) if is_flipped else list(range(8))

    for rank in ranks:
        row: list[Text] = [Text(str(rank + 1), style="bold")]
        for file in files:
            sq = chess.square(file, rank)
            piece = board.piece_at(sq)

            is_light = (rank + file) % 2 == 1
            bg = _LIGHT_SQ if is_light else _DARK_SQ
            if sq in highlight_squares:
                bg = _HIGHLIGHT

            symbol = _PIECE_SYMBOLS.get(piece.symbol(), "?") if piece is not None else " "
            row.append(Text(f" {symbol} ", style=f"on {bg}"))
        table.add_row(*row)

    file_labels = [Text("  ")]
    for f in files:
        file_labels.append(Text(f" {chr(ord('a') + f)} ", style="bold"))
    table.add_row(*file_labels)

    side = "White" if board.turn == chess.WHITE else "Black"
    return Panel(table, title=f"{title} ({side} to move)", border_style="blue")


def _puzzle_table(puzzles: list[dict]) -> Table:
    """Summary table of generated puzzles."""
    table = Table(title="Puzzles")
    table.add_column("#", justify="right")
    table.add_column("Theme")
    table.add_column("Difficulty", justify="center")
    table.add_column("Eval", justify="right")
    table.add_column("Ply", justify="right")
    table.add_column("Solution")
    for i, p in enumerate(puzzles):
        table.add_row(
            str(i),
            p["theme"],
            "★" * int(p["difficulty"]),
            f"{p.get('evaluation', 0.0):+.1f}",
            str(p.get("game_context", {}).get("move_number", "?")),
            " ".join(p["solution"]),
        )
    return table


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def _write_puzzle_file(filepath: Path, puzzles: list[dict]) -> None:
    """Write puzzles to JSON file atomically."""
    filepath.parent.mkdir(parents=True, exist_ok=True)
    tmp = filepath.with_suffix(".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(puzzles, f, indent=2, ensure_ascii=False)
    os.replace(str(tmp), str(filepath))


def _load_puzzle_file(filepath: Path) -> list[dict]:
    """Load a puzzles JSON array.

    Raises:
        FileNotFoundError: If the file is missing.
        ValueError: If it is not a JSON array.
    """
    if not filepath.exists():
        raise FileNotFoundError(f"Puzzle file not found: {filepath}")
    with open(filepath, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{filepath} must contain a JSON array of puzzles")
    return data


def _pick(puzzles: list[dict], index: int) -> Puzzle:
    if not 0 <= index < len(puzzles):
        raise ValueError(f"Puzzle index {index} out of range (0-{len(puzzles) - 1})")
    return Puzzle.from_dict(puzzles[index])


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_generate(args: argparse.Namespace, config: ForgeConfig, console: Console) -> int:
    pgn_path = Path(args.pgn)
    if not pgn_path.exists():
        _log(f"PGN file not found: {pgn_path}")
        return 1

    game = game_from_pgn(pgn_path.read_text(encoding="utf-8"), game_id=pgn_path.stem)
    if game is None:
        _log(f"No readable game in {pgn_path.name}")
        return 1

    _log(f"Generating puzzles from {pgn_path.name} ({len(game.moves)} plies, scorer={config.scorer})...")
    scorer = config.make_scorer()
    start = time.time()
    try:
        result = generate_puzzles(
            game,
            scorer,
            max_count=config.max_puzzles,
            workers=config.workers,
            seed=config.seed,
            include_lead_in=not args.no_lead_in,
        )
    finally:
        scorer.close()
    elapsed = time.time() - start

    summary = result.summary
    _log(
        f"  {summary['total_positions']} positions, {summary['tactical_positions']} tactical, "
        f"{summary['selected']} selected, {summary['assembled']} assembled, "
        f"{summary['dropped']} dropped ({elapsed:.1f}s)"
    )

    puzzles = [p.to_dict() for p in result.puzzles]
    if puzzles:
        console.print(_puzzle_table(puzzles))

    if args.out:
        out_path = Path(args.out)
        _write_puzzle_file(out_path, puzzles)
        _log(f"  Wrote {len(puzzles)} puzzle(s) to {out_path}")
    return 0


def _cmd_analyze(args: argparse.Namespace, config: ForgeConfig, console: Console) -> int:
    try:
        snapshot = initial_snapshot(args.fen)
    except ReplayError as exc:
        _log(str(exc))
        return 1

    scorer = config.make_scorer()
    try:
        assessment = scorer.score(snapshot)
    finally:
        scorer.close()

    console.print(render_board(snapshot.fen, title="Position"))
    if assessment is None:
        _log("No tactical opportunity found")
        return 0
    line = " ".join([assessment.recommended_move, *assessment.continuation])
    _log(f"Evaluation: {assessment.evaluation:+.2f} ({assessment.strength})")
    _log(f"Line: {line}")
    return 0


def _cmd_show(args: argparse.Namespace, config: ForgeConfig, console: Console) -> int:
    puzzle = _pick(_load_puzzle_file(Path(args.file)), args.index)
    console.print(render_board(puzzle.position, title=f"{puzzle.theme} {'★' * puzzle.difficulty}"))
    explanation = puzzle.explanation
    if explanation:
        console.print(explanation.get("description", ""))
        console.print(f"[italic]{explanation.get('clue', '')}[/italic]")
    return 0


def _cmd_validate(args: argparse.Namespace, config: ForgeConfig, console: Console) -> int:
    puzzles = _load_puzzle_file(Path(args.file))
    errors = 0
    for i, raw in enumerate(puzzles):
        try:
            puzzle = Puzzle.from_dict(raw)
        except ValueError as exc:
            _log(f"  [{i}] {exc}")
            errors += 1
            continue
        if not is_legal_sequence(puzzle.position, puzzle.solution, puzzle.chess960):
            _log(f"  [{i}] solution {list(puzzle.solution)} does not replay from {puzzle.position}")
            errors += 1
    _log(f"{len(puzzles)} puzzle(s) checked, {errors} invalid")
    return 1 if errors else 0


def _cmd_solve(args: argparse.Namespace, config: ForgeConfig, console: Console) -> int:
    """Interactive terminal solve loop."""
    puzzle = _pick(_load_puzzle_file(Path(args.file)), args.index)
    solver = SolvingEngine(puzzle)

    if puzzle.explanation:
        console.print(puzzle.explanation.get("description", ""))

    while True:
        snap = solver.snapshot()
        console.print(render_board(snap["fen"], snap["highlight"], title=f"Move {snap['ply'] + 1}/{snap['total_plies']}"))

        if snap["state"] == SolveState.COMPLETED.value:
            solver.scheduler.flush()
            stars = solver.grade()
            _log(f"Solved! Rating: {'★' * stars}{'☆' * (3 - stars)}")
            return 0

        if snap["state"] == SolveState.WRONG_MOVE.value:
            print("Wrong move. 'retry' to restart, 'continue' to resume: ", end="")
        else:
            print("Your move as 'from to' (e.g. e2 e4), 'hint', 'reveal' or 'q': ", end="")
        user_input = input().strip().lower()

        if user_input == "q":
            _log("Puzzle abandoned.")
            return 0
        if user_input == "hint":
            hint = solver.request_hint()
            _log(hint.get("error") or f"Look at the piece on {hint['from_square']}")
            continue
        if user_input == "reveal":
            _log("Solution: " + " ".join(solver.reveal_solution()["solution"]))
            continue
        if user_input in ("retry", "continue"):
            solver.recover("restart" if user_input == "retry" else "continue")
            continue

        parts = user_input.replace("-", " ").split()
        if len(parts) not in (2, 3):
            _log("Enter a move as two squares, e.g. 'e2 e4' (optionally a promotion piece).")
            continue

        result = solver.attempt_move(*parts)
        if result["accepted"]:
            _log(f"Correct: {result['move']}")
            # Play the scripted reply right away in the terminal
            solver.scheduler.flush()
        elif result["reason"] == "illegal":
            _log(f"Illegal move {result['attempted_move']}, try again.")
        elif result["reason"] == "wrong_move":
            _log(f"{result['attempted_move']} is not the solution.")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Turn finished chess games into tactical puzzles")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    gen = subparsers.add_parser("generate", help="Generate puzzles from a PGN game")
    gen.add_argument("pgn", type=str, help="PGN file with one game")
    gen.add_argument("--out", type=str, default=None, help="Write puzzles JSON here")
    gen.add_argument("--max", type=int, default=None, help="Maximum puzzles (default: 5)")
    gen.add_argument("--seed", type=int, default=None, help="Random seed")
    gen.add_argument("--scorer", choices=SCORERS, default=None, help="Scoring backend")
    gen.add_argument("--workers", type=int, default=None, help="Scoring threads")
    gen.add_argument("--no-lead-in", action="store_true", help="Start the solution at the tactical move")

    analyze = subparsers.add_parser("analyze", help="Score a single FEN position")
    analyze.add_argument("fen", type=str, help="FEN string to analyze")
    analyze.add_argument("--scorer", choices=SCORERS, default=None, help="Scoring backend")
    analyze.add_argument("--seed", type=int, default=None, help="Random seed")

    for name, help_text in (("show", "Render a puzzle's starting position"),
                            ("solve", "Solve a puzzle interactively")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("file", type=str, help="Puzzles JSON file")
        sub.add_argument("--index", type=int, default=0, help="Puzzle index (default: 0)")

    val = subparsers.add_parser("validate", help="Check every solution in a puzzles file")
    val.add_argument("file", type=str, help="Puzzles JSON file")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = ForgeConfig.from_env()
    except ValueError as exc:
        _log(f"Configuration error: {exc}")
        sys.exit(2)

    for attr, key in (("max", "max_puzzles"), ("seed", "seed"), ("scorer", "scorer"), ("workers", "workers")):
        value = getattr(args, attr, None)
        if value is not None:
            setattr(config, key, value)

    commands = {
        "generate": _cmd_generate,
        "analyze": _cmd_analyze,
        "show": _cmd_show,
        "solve": _cmd_solve,
        "validate": _cmd_validate,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        code = handler(args, config, Console())
    except (FileNotFoundError, ValueError) as exc:
        _log(f"Error: {exc}")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
