"""Virtual-clock task queue with named delays.

The solving engine sequences its scripted steps (show the move, let the
opponent "think", play the reply, show the rating) through this queue
instead of wall-clock timers. Time only moves when advance() or flush()
is called, so tests can step through the sequence deterministically and
a UI shell can drive it from its own timer.
"""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable

# Named delays in seconds
DEFAULT_DELAYS: dict[str, float] = {
    "show_move": 0.8,
    "opponent_thinking": 1.2,
    "show_rating": 0.5,
    "clear_highlight": 1.0,
}


@dataclass(order=True)
class _Task:
    due: float
    seq: int
    name: str = field(compare=False)
    callback: Callable[[], None] = field(compare=False)


class TaskScheduler:
    """Runs callbacks in (due time, scheduling order)."""

    def __init__(self, delays: dict[str, float] | None = None) -> None:
        self.delays = {**DEFAULT_DELAYS, **(delays or {})}
        self._now = 0.0
        self._queue: list[_Task] = []
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    def schedule(
        self,
        name: str,
        callback: Callable[[], None],
        delay: float | None = None,
    ) -> float:
        """Queue callback to run after a named or explicit delay.

        Args:
            name: Task name; also selects the delay when delay is None.
            callback: Zero-argument callable.
            delay: Explicit delay in seconds.

        Returns:
            The virtual time at which the task is due.

        Raises:
            ValueError: If no delay is given and the name has none configured.
        """
        if delay is None:
            if name not in self.delays:
                raise ValueError(f"No delay configured for task {name!r}")
            delay = self.delays[name]
        due = self._now + delay
        heapq.heappush(self._queue, _Task(due, next(self._seq), name, callback))
        return due

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every task that falls due.

        Tasks scheduled by callbacks run in the same call if they fall
        within the window.

        Returns:
            Number of tasks run.
        """
        target = self._now + seconds
        ran = 0
        while self._queue and self._queue[0].due <= target:
            task = heapq.heappop(self._queue)
            self._now = task.due
            task.callback()
            ran += 1
        self._now = target
        return ran

    def flush(self) -> int:
        """Run everything pending (including tasks queued meanwhile)."""
        ran = 0
        while self._queue:
            task = heapq.heappop(self._queue)
            self._now = max(self._now, task.due)
            task.callback()
            ran += 1
        return ran

    def cancel_all(self) -> None:
        self._queue.clear()

    def pending(self) -> list[str]:
        """Names of queued tasks in the order they will run."""
        return [t.name for t in sorted(self._queue)]
