import asyncio
from asyncio import TaskGroup
from typing import Callable, Coroutine


class Throttler:
    """Credit-based concurrency gate that limits how much work is outstanding.

    Each scheduled coroutine takes one credit. Unlike a plain semaphore, the credit is
    not returned when the task finishes; the owner returns it with release() once the
    result has been fully accounted for. Work that finished out of order therefore
    keeps holding its credit, which bounds whatever the owner buffers.
    """

    def __init__(self, task_group: TaskGroup, concurrency: int):
        """Initialize the throttler.

        Args:
            task_group: The TaskGroup to which tasks will be added
            concurrency: Maximum number of credits that can be held at once
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        self._task_group = task_group
        self._concurrency = concurrency
        self._in_flight = 0
        self._available = asyncio.Event()
        self._available.set()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def saturated(self) -> bool:
        return self._in_flight >= self._concurrency

    async def acquire(self, should_stop: Callable[[], bool] = lambda: False) -> bool:
        """Wait for a free credit and take it.

        Args:
            should_stop: Checked whenever the throttler wakes up; waiting ends without
                         taking a credit once it returns True

        Returns:
            True if a credit was taken, False if waiting was abandoned
        """
        while self.saturated:
            if should_stop():
                return False
            self._available.clear()
            await self._available.wait()

        if should_stop():
            return False

        self._in_flight += 1
        return True

    async def schedule(self, coro: Coroutine, should_stop: Callable[[], bool] = lambda: False,
                       name=None) -> asyncio.Task | None:
        """Take a credit, then run the coroutine as a task of the task group.

        Returns:
            The created task, or None if should_stop() ended the wait, in which case
            the coroutine is closed without running
        """
        if not await self.acquire(should_stop):
            coro.close()
            return None

        try:
            return self._task_group.create_task(coro, name=name)
        except BaseException:
            self.release()
            raise

    def release(self, count: int = 1) -> None:
        """Return credits taken by schedule() or acquire()."""
        if count > self._in_flight:
            raise RuntimeError(f"releasing {count} credits but only {self._in_flight} are held")

        self._in_flight -= count
        self._available.set()

    def wake(self) -> None:
        """Wake a pending acquire() so that it re-evaluates should_stop()."""
        self._available.set()
