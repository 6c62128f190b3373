from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Hashable, List, Optional, Set

BASE_RETRY_DELAY = 0.5
MAX_RETRY_DELAY = 300.0


class WorkQueue:
    """Keyed work queue with the delivery rules a control loop relies on.

    - a key waiting in the queue is held once, however often it is added;
    - a key is handed to at most one worker at a time; adding it while it is
      being processed re-delivers it after ``done``;
    - ``add_after`` schedules a delayed add, keeping the earliest due time;
    - ``add_rate_limited`` retries with capped exponential backoff until
      ``forget`` resets the key's failure count.
    """

    def __init__(
        self,
        *,
        base_delay: float = BASE_RETRY_DELAY,
        max_delay: float = MAX_RETRY_DELAY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._clock = clock
        self._cond = threading.Condition()
        self._queue: Deque[Hashable] = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._delayed: Dict[Hashable, float] = {}
        self._failures: Dict[Hashable, int] = {}
        self._shutdown = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def add(self, key: Hashable) -> None:
        with self._cond:
            self._add_locked(key)

    def add_after(self, key: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutdown:
                return
            due_at = self._clock() + delay
            existing = self._delayed.get(key)
            if existing is None or due_at < existing:
                self._delayed[key] = due_at
                self._cond.notify_all()

    def add_rate_limited(self, key: Hashable) -> float:
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        delay = min(self.max_delay, self.base_delay * (2 ** failures))
        self.add_after(key, delay)
        return delay

    def forget(self, key: Hashable) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: Hashable) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def pending_delayed(self) -> List[Hashable]:
        with self._cond:
            return list(self._delayed)

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """Block until a key is ready; ``None`` on shutdown or when ``timeout`` expires."""

        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                if self._shutdown:
                    return None
                self._promote_due_locked()
                if self._queue:
                    key = self._queue.popleft()
                    self._dirty.discard(key)
                    self._processing.add(key)
                    return key
                now = self._clock()
                waits: List[float] = []
                if self._delayed:
                    waits.append(max(0.0, min(self._delayed.values()) - now))
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    waits.append(remaining)
                self._cond.wait(min(waits) if waits else None)

    def done(self, key: Hashable) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()

    def _add_locked(self, key: Hashable) -> None:
        if self._shutdown or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def _promote_due_locked(self) -> None:
        if not self._delayed:
            return
        now = self._clock()
        for key, due_at in list(self._delayed.items()):
            if due_at <= now:
                del self._delayed[key]
                self._add_locked(key)


__all__ = ["BASE_RETRY_DELAY", "MAX_RETRY_DELAY", "WorkQueue"]
