"""Work queue running reconciliations.

Keys are handed to a fixed pool of worker tasks. A key is never processed by
two workers at once: adding a key that is being processed marks it dirty and
it is queued again once the current run finishes. Adding a key that is
already waiting is a no-op.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

__all__ = ["WorkQueue"]

_LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


class WorkQueue(Generic[K]):
    """Deduplicating queue with delayed requeue and per-key single flight."""

    def __init__(
        self,
        handler: Callable[[K], Awaitable[None]],
        workers: int = 1,
        name: str = "workqueue",
    ) -> None:
        """Initialize the work queue.

        Args:
            handler: Coroutine function called with each key
            workers: Number of keys processed concurrently
            name: Prefix for the names of the worker tasks
        """
        if workers < 1:
            raise ValueError("WorkQueue requires at least one worker")
        self._handler = handler
        self._num_workers = workers
        self._name = name
        self._queue: asyncio.Queue[K] = asyncio.Queue()
        self._waiting: set[K] = set()
        self._processing: set[K] = set()
        self._dirty: set[K] = set()
        self._timers: dict[K, asyncio.TimerHandle] = {}
        self._workers: set[asyncio.Task[None]] = set()

    def start(self) -> None:
        """Start the worker tasks."""
        if self._workers:
            return
        for i in range(self._num_workers):
            task = asyncio.create_task(self._worker(), name=f"{self._name}-{i}")
            self._workers.add(task)
            task.add_done_callback(self._workers.discard)

    async def close(self) -> None:
        """Cancel pending timers and stop the worker tasks."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        workers = list(self._workers)
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

    def add(self, key: K) -> None:
        """Queue the key unless it is already waiting."""
        if key in self._processing:
            self._dirty.add(key)
            return
        if key in self._waiting:
            return
        self._waiting.add(key)
        self._queue.put_nowait(key)

    def add_after(self, key: K, delay: float) -> None:
        """Queue the key once `delay` seconds have passed.

        If the key is already scheduled to be added sooner, the earlier time
        is kept.
        """
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        when = loop.time() + delay
        if (existing := self._timers.get(key)) is not None:
            if existing.when() <= when:
                return
            existing.cancel()
        self._timers[key] = loop.call_at(when, self._fire, key)

    def scheduled(self, key: K) -> float | None:
        """Return the loop time the key is scheduled for, if any."""
        if (timer := self._timers.get(key)) is None:
            return None
        return timer.when()

    def __len__(self) -> int:
        """Return the number of keys waiting to be processed."""
        return len(self._waiting)

    async def join(self) -> None:
        """Wait until every queued key has been processed.

        Keys scheduled with `add_after` that have not fired yet are not
        waited on.
        """
        await self._queue.join()

    def _fire(self, key: K) -> None:
        self._timers.pop(key, None)
        self.add(key)

    async def _worker(self) -> None:
        while True:
            key = await self._queue.get()
            self._waiting.discard(key)
            self._processing.add(key)
            try:
                await self._handler(key)
            except asyncio.CancelledError:
                raise
            except Exception:
                _LOGGER.exception("Processing %s failed", key)
            finally:
                self._processing.discard(key)
                if key in self._dirty:
                    self._dirty.discard(key)
                    self.add(key)
                self._queue.task_done()
