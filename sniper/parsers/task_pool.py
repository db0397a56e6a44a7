"""Bounded-concurrency background task pool with drain support."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger


class TaskPool:
    """Runs submitted coroutines with at most `concurrency` active at once.

    Submitted work queues on a semaphore in FIFO order. Exceptions are logged
    and counted, never propagated, so one bad task cannot kill the pool.
    """

    def __init__(self, concurrency: int, name: str = "pool") -> None:
        self.concurrency = max(1, concurrency)
        self.name = name
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._active = 0
        self.completed = 0
        self.failed = 0

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> int:
        """Submitted but not yet finished (queued + active)."""
        return len(self._tasks)

    def submit(self, factory: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        task = asyncio.create_task(self._run(factory))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, factory: Callable[[], Awaitable[Any]]) -> None:
        async with self._semaphore:
            self._active += 1
            try:
                await factory()
                self.completed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.opt(exception=True).error(f"[{self.name.upper()}] Task failed: {e}")
            finally:
                self._active -= 1

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for every submitted task (including ones submitted while draining)."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            _done, pending = await asyncio.wait(set(self._tasks), timeout=remaining)
            if pending and deadline is not None and loop.time() >= deadline:
                return False
        return True

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
