"""In-memory puzzle store with per-record locking.

PuzzleStore is an ordinary object: create one per process (or per test)
and pass it to whoever needs it. Each record has its own lock, so
mutating one puzzle never blocks readers or writers of another.
"""

from __future__ import annotations

import copy
import json
import os
import threading
import uuid
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

from puzzle_forge.models import PROGRESS_KEYS, Puzzle, default_progress


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PuzzleStore:
    """Volatile keyed collection of puzzle records (plain dicts)."""

    def __init__(self) -> None:
        self._records: dict[str, dict] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._by_user: dict[str | None, list[str]] = {}
        # Guards the three maps above, never held while waiting on a record
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._records)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _lock_for(self, puzzle_id: str) -> threading.Lock | None:
        with self._registry_lock:
            return self._locks.get(puzzle_id)

    def _read(self, puzzle_id: str) -> dict | None:
        """Deep copy of one record, taken under its lock."""
        lock = self._lock_for(puzzle_id)
        if lock is None:
            return None
        with lock:
            record = self._records.get(puzzle_id)
            return copy.deepcopy(record) if record is not None else None

    def _mutate(self, puzzle_id: str, mutator) -> dict | None:
        """Apply mutator(record) atomically for one record.

        Returns:
            Deep copy of the updated record, or None if not found.
        """
        lock = self._lock_for(puzzle_id)
        if lock is None:
            return None
        with lock:
            record = self._records.get(puzzle_id)
            if record is None:
                # Deleted between lookup and lock
                return None
            mutator(record)
            return copy.deepcopy(record)

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create(self, fields: Puzzle | dict, user_id: str | None = None) -> dict:
        """Store a puzzle under a fresh id with default progress.

        Args:
            fields: Puzzle or puzzle dict (as from Puzzle.to_dict()).
            user_id: Owning user; overrides any user_id in fields.

        Returns:
            The stored record.

        Raises:
            ValueError: If required puzzle fields are missing.
        """
        data = fields.to_dict() if isinstance(fields, Puzzle) else copy.deepcopy(fields)
        for key in ("position", "solution", "theme", "difficulty"):
            if key not in data:
                raise ValueError(f"Puzzle record missing field: {key}")

        puzzle_id = str(uuid.uuid4())
        owner = user_id if user_id is not None else data.get("user_id")

        record = dict(data)
        record["id"] = puzzle_id
        record["user_id"] = owner
        record["solution"] = list(data["solution"])
        record["progress"] = default_progress()
        record.setdefault("metadata", {})
        record["metadata"].setdefault("created_at", _now_iso())

        with self._registry_lock:
            self._records[puzzle_id] = record
            self._locks[puzzle_id] = threading.Lock()
            self._by_user.setdefault(owner, []).append(puzzle_id)

        return copy.deepcopy(record)

    def get_by_id(self, puzzle_id: str) -> dict | None:
        """Return a puzzle record, or None if unknown."""
        return self._read(puzzle_id)

    def list_for_user(
        self,
        user_id: str | None,
        theme: str | None = None,
        difficulty: int | None = None,
        is_solved: bool | None = None,
        is_bookmarked: bool | None = None,
    ) -> list[dict]:
        """List a user's puzzles in creation order, optionally filtered.

        Args:
            user_id: Owning user.
            theme: Keep only this theme.
            difficulty: Keep only this difficulty tier.
            is_solved: Keep only solved (True) or unsolved (False) puzzles.
            is_bookmarked: Keep only bookmarked (True) or not (False).

        Returns:
            List of matching records.
        """
        with self._registry_lock:
            ids = list(self._by_user.get(user_id, []))

        results: list[dict] = []
        for puzzle_id in ids:
            record = self._read(puzzle_id)
            if record is None:
                continue
            progress = record["progress"]
            if theme is not None and record["theme"] != theme:
                continue
            if difficulty is not None and record["difficulty"] != difficulty:
                continue
            if is_solved is not None and progress["is_solved"] != is_solved:
                continue
            if is_bookmarked is not None and progress["is_bookmarked"] != is_bookmarked:
                continue
            results.append(record)
        return results

    def bookmarked(self, user_id: str | None) -> list[dict]:
        return self.list_for_user(user_id, is_bookmarked=True)

    def solved(self, user_id: str | None) -> list[dict]:
        return self.list_for_user(user_id, is_solved=True)

    def unsolved(self, user_id: str | None) -> list[dict]:
        return self.list_for_user(user_id, is_solved=False)

    def list_all(self) -> list[dict]:
        """Return every stored puzzle in creation order."""
        with self._registry_lock:
            ids = list(self._records)
        return [r for r in (self._read(i) for i in ids) if r is not None]

    def others(self, exclude_id: str, limit: int = 10) -> list[dict]:
        """Sample puzzles other than exclude_id (first limit in store order)."""
        return [p for p in self.list_all() if p["id"] != exclude_id][:limit]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_progress(self, puzzle_id: str, partial: dict) -> dict | None:
        """Merge partial progress into a record.

        Raises:
            ValueError: If partial holds keys that are not progress fields.
        """
        unknown = sorted(set(partial) - set(PROGRESS_KEYS))
        if unknown:
            raise ValueError(f"Unknown progress fields: {unknown}")
        return self._mutate(puzzle_id, lambda r: r["progress"].update(partial))

    def record_attempt(self, puzzle_id: str) -> dict | None:
        """Count one solving attempt."""
        def _apply(record: dict) -> None:
            record["progress"]["attempts"] += 1
            record["progress"]["last_attempted"] = _now_iso()

        return self._mutate(puzzle_id, _apply)

    def mark_solved(self, puzzle_id: str, time_spent: float) -> dict | None:
        """Mark a puzzle solved with the time it took (seconds)."""
        return self.update_progress(puzzle_id, {
            "is_solved": True,
            "time_spent": time_spent,
            "last_attempted": _now_iso(),
        })

    def toggle_bookmark(self, puzzle_id: str) -> dict | None:
        """Flip the bookmark flag."""
        def _apply(record: dict) -> None:
            record["progress"]["is_bookmarked"] = not record["progress"]["is_bookmarked"]

        return self._mutate(puzzle_id, _apply)

    def delete(self, puzzle_id: str) -> bool:
        """Remove a puzzle. Returns False if it was not stored."""
        lock = self._lock_for(puzzle_id)
        if lock is None:
            return False
        with lock:
            with self._registry_lock:
                record = self._records.pop(puzzle_id, None)
                if record is None:
                    return False
                self._locks.pop(puzzle_id, None)
                owned = self._by_user.get(record["user_id"], [])
                if puzzle_id in owned:
                    owned.remove(puzzle_id)
        return True

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self, user_id: str | None) -> dict:
        """Summarize a user's puzzle progress.

        Returns:
            Dict with total_puzzles, solved_puzzles, bookmarked_puzzles,
            accuracy (percent solved), average_time (over solved puzzles),
            favorite_theme, theme_distribution, difficulty_distribution.
        """
        puzzles = self.list_for_user(user_id)
        solved = [p for p in puzzles if p["progress"]["is_solved"]]
        bookmarked = [p for p in puzzles if p["progress"]["is_bookmarked"]]

        themes = Counter(p["theme"] for p in puzzles)
        difficulties = Counter(p["difficulty"] for p in puzzles)

        favorite = None
        if themes:
            # most_common keeps first-seen order on ties
            favorite = themes.most_common(1)[0][0]

        average_time = 0.0
        if solved:
            average_time = sum(p["progress"]["time_spent"] for p in solved) / len(solved)

        return {
            "total_puzzles": len(puzzles),
            "solved_puzzles": len(solved),
            "bookmarked_puzzles": len(bookmarked),
            "accuracy": round(len(solved) / len(puzzles) * 100, 1) if puzzles else 0.0,
            "average_time": average_time,
            "favorite_theme": favorite,
            "theme_distribution": dict(themes),
            "difficulty_distribution": dict(difficulties),
        }

    # ------------------------------------------------------------------
    # Snapshot export / import
    # ------------------------------------------------------------------

    def save_json(self, path: str | Path) -> None:
        """Write all records to a JSON file atomically."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(".tmp")
        tmp.write_text(
            json.dumps(self.list_all(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        os.replace(tmp, target)

    @classmethod
    def load_json(cls, path: str | Path) -> PuzzleStore:
        """Build a store from a save_json() file, keeping ids and progress.

        Raises:
            FileNotFoundError: If path does not exist.
            ValueError: If the file is not a JSON array of records.
        """
        source = Path(path)
        if not source.exists():
            raise FileNotFoundError(f"Puzzle file not found: {source}")

        data = json.loads(source.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError("Puzzle file must contain a JSON array")

        store = cls()
        for raw in data:
            record = Puzzle.from_dict(raw).to_dict()
            puzzle_id = record["id"]
            store._records[puzzle_id] = record
            store._locks[puzzle_id] = threading.Lock()
            store._by_user.setdefault(record["user_id"], []).append(puzzle_id)
        return store
