"""
Controller runtime.

A controller owns a work queue and a fixed number of worker tasks. Each
worker takes one key at a time, calls the reconciler and schedules the
key again according to the returned ``Result`` or, on an exception,
with exponential backoff.
"""

import asyncio
from collections.abc import Hashable
from dataclasses import dataclass
from typing import Protocol

from unifiipam.controllers.workqueue import RateLimitingQueue
from unifiipam.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


@dataclass
class Result:
    """Outcome of one reconcile."""

    requeue: bool = False
    requeue_after: float | None = None


class Reconciler(Protocol):
    async def reconcile(self, key: tuple[str, str]) -> Result: ...


class Controller:
    """
    Runs a reconciler over a work queue.

    Args:
        name: Controller name used in logs and task names.
        reconciler: Object with an async ``reconcile(key)`` method.
        workers: Number of concurrent workers.
        queue: Work queue (a fresh one is created when omitted).
    """

    def __init__(
        self,
        name: str,
        reconciler: Reconciler,
        workers: int = 1,
        queue: RateLimitingQueue | None = None,
    ):
        self.name = name
        self.reconciler = reconciler
        self.workers = max(workers, 1)
        self.queue = queue or RateLimitingQueue()
        self._tasks: set[asyncio.Task] = set()

    def enqueue(self, key: Hashable) -> None:
        self.queue.add(key)

    def start(self) -> None:
        for i in range(self.workers):
            task = asyncio.create_task(self._worker(), name=f"{self.name}-worker-{i}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        logger.info(f"Started controller {self.name} with {self.workers} worker(s)")

    async def stop(self) -> None:
        self.queue.shutdown()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Stopped controller {self.name}")

    async def _worker(self) -> None:
        while True:
            key = await self.queue.get()
            try:
                await self.process(key)
            finally:
                self.queue.done(key)

    async def process(self, key: Hashable) -> None:
        """Reconcile one key and schedule its next visit."""
        try:
            result = await self.reconciler.reconcile(key)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            retries = self.queue.num_requeues(key)
            logger.error(
                f"[{self.name}] Reconcile of {key[0]}/{key[1]} failed "
                f"(retry {retries + 1}): {e}"
            )
            logger.debug(format_traceback(e))
            self.queue.add_rate_limited(key)
            return

        if result.requeue_after:
            self.queue.forget(key)
            self.queue.add_after(key, result.requeue_after)
        elif result.requeue:
            self.queue.add_rate_limited(key)
        else:
            self.queue.forget(key)
