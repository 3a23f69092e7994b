"""
Rate-limited, de-duplicating work queue.

Keys (``(namespace, name)`` tuples) are handed to workers one at a time:

    - a key already waiting is not queued twice
    - a key being processed is never handed to a second worker; if it is
      added again meanwhile it is queued once ``done()`` is called
    - ``add_rate_limited()`` re-adds a key after an exponential per-key
      backoff, ``forget()`` resets it
"""

import asyncio
from collections.abc import Hashable

from unifiipam.utils.logger import get_logger

logger = get_logger(__name__)


class RateLimitingQueue:
    """
    Async work queue with per-key exponential backoff.

    Args:
        base_delay: Delay of the first retry in seconds.
        max_delay: Upper bound of the retry delay in seconds.
    """

    def __init__(self, base_delay: float = 0.005, max_delay: float = 300.0):
        self.base_delay = base_delay
        self.max_delay = max_delay

        self._ready: asyncio.Queue = asyncio.Queue()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._failures: dict[Hashable, int] = {}
        self._timers: set[asyncio.TimerHandle] = set()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._dirty)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    # =========================================================================
    # Producer Side
    # =========================================================================

    def add(self, key: Hashable) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._ready.put_nowait(key)

    def add_after(self, key: Hashable, delay: float) -> None:
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def _fire():
            self._timers.discard(handle)
            self.add(key)

        handle = loop.call_later(delay, _fire)
        self._timers.add(handle)

    def backoff(self, key: Hashable) -> float:
        """Delay the next ``add_rate_limited`` for this key would use."""
        failures = self._failures.get(key, 0)
        return min(self.base_delay * (2**failures), self.max_delay)

    def add_rate_limited(self, key: Hashable) -> None:
        delay = self.backoff(key)
        self._failures[key] = self._failures.get(key, 0) + 1
        self.add_after(key, delay)

    def forget(self, key: Hashable) -> None:
        self._failures.pop(key, None)

    def num_requeues(self, key: Hashable) -> int:
        return self._failures.get(key, 0)

    # =========================================================================
    # Consumer Side
    # =========================================================================

    async def get(self) -> Hashable:
        """Wait for the next key and mark it as being processed."""
        key = await self._ready.get()
        self._dirty.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: Hashable) -> None:
        """Mark a key as processed, re-queueing it if it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty:
            self._ready.put_nowait(key)

    def shutdown(self) -> None:
        self._shutting_down = True
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
