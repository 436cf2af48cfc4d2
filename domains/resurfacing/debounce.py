"""Explicit fire-time scheduler for debounced work.

A heap of (fire_at, seq, key) entries. Rescheduling or cancelling a key
leaves its old entry in the heap; stale entries are skipped on pop.
"""

import heapq
import itertools
import time
from typing import Callable, Hashable, Optional


class DebounceQueue:
    """Priority queue of keys ordered by fire time."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._heap: list[tuple[float, int, Hashable]] = []
        self._live: dict[Hashable, tuple[float, int]] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._live)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._live

    def schedule(self, key: Hashable, fire_at: float) -> None:
        """Schedule `key`, replacing any earlier entry for it."""
        seq = next(self._seq)
        self._live[key] = (fire_at, seq)
        heapq.heappush(self._heap, (fire_at, seq, key))

    def schedule_in(self, key: Hashable, delay: float) -> float:
        fire_at = self.clock() + delay
        self.schedule(key, fire_at)
        return fire_at

    def cancel(self, key: Hashable) -> bool:
        return self._live.pop(key, None) is not None

    def pop_due(self, now: Optional[float] = None) -> list[Hashable]:
        """Remove and return every key whose fire time has passed, in fire order."""
        if now is None:
            now = self.clock()

        due = []
        while self._heap and self._heap[0][0] <= now:
            fire_at, seq, key = heapq.heappop(self._heap)
            if self._live.get(key) != (fire_at, seq):
                continue  # stale
            del self._live[key]
            due.append(key)
        return due

    def next_fire_time(self) -> Optional[float]:
        while self._heap:
            fire_at, seq, key = self._heap[0]
            if self._live.get(key) == (fire_at, seq):
                return fire_at
            heapq.heappop(self._heap)
        return None

    def clear(self) -> None:
        self._heap.clear()
        self._live.clear()
