"""
Bounded Worker Pool
===================
Runs knowledge/memory operations as named asyncio tasks with bounded
concurrency and bounded backlog.

- At most ``max_concurrency`` submitted coroutines execute at once
  (asyncio.Semaphore); the rest wait their turn.
- At most ``max_pending`` tasks may be queued or running; ``submit`` raises
  BackpressureError beyond that instead of growing without limit.
- ``shutdown`` cancels everything still outstanding.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Awaitable, Dict, Optional, Set, TypeVar

from loguru import logger

from ._utils import safe_ensure_future
from .exceptions import BackpressureError

T = TypeVar("T")


class WorkerPool:

    def __init__(self, max_concurrency: int = 8, max_pending: int = 256):
        self.max_concurrency = max_concurrency
        self.max_pending = max_pending
        self._sem = asyncio.Semaphore(max_concurrency)
        self._tasks: Set[asyncio.Task] = set()
        self._ids = itertools.count(1)
        self._closed = False
        self._completed = 0
        self._rejected = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Awaitable[T], *, name: Optional[str] = None) -> "asyncio.Task[T]":
        if self._closed:
            if asyncio.iscoroutine(coro):
                coro.close()
            raise RuntimeError("WorkerPool is shut down")
        if len(self._tasks) >= self.max_pending:
            self._rejected += 1
            if asyncio.iscoroutine(coro):
                coro.close()
            raise BackpressureError(len(self._tasks), self.max_pending)

        task = safe_ensure_future(self._guarded(coro), name=name or f"mnemograph-{next(self._ids)}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def run(self, coro: Awaitable[T], *, name: Optional[str] = None) -> T:
        """Submit and await; cancelling the caller cancels the task."""
        return await self.submit(coro, name=name)

    async def _guarded(self, coro: Awaitable[T]) -> T:
        async with self._sem:
            return await coro

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._completed += 1

    async def shutdown(self) -> None:
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"WorkerPool shut down, cancelled {len(tasks)} outstanding task(s)")

    def stats(self) -> Dict[str, Any]:
        return {
            "max_concurrency": self.max_concurrency,
            "max_pending": self.max_pending,
            "pending": len(self._tasks),
            "completed": self._completed,
            "rejected": self._rejected,
        }
