"""
Shared utility functions for MnemoGraph modules.

Thread-pool offloading, task exception logging, stable hashing for
deterministic vectors and per-key async locks.
"""

import asyncio
import functools
import hashlib
from typing import Callable, Dict, Optional, TypeVar, ParamSpec

from loguru import logger

P = ParamSpec('P')
T = TypeVar('T')


# =============================================================================
# Thread Pool Executor Helper
# =============================================================================

async def run_in_thread(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """
    Run a blocking function in a thread pool executor.

    Used for synchronous predictors so a slow model call does not block the
    event loop and can be bounded with asyncio.wait_for.

    Example:
        result = await run_in_thread(some_blocking_func, arg1, arg2, kwarg=value)
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


# =============================================================================
# Stable Hashing
# =============================================================================

def stable_seed(text: str, nbytes: int = 8) -> int:
    """
    Derive a PRNG seed from text that is identical across processes.

    Python's built-in hash() is salted per process, so a SHAKE-256 digest
    is used instead.
    """
    seed_bytes = hashlib.shake_256(text.encode("utf-8")).digest(nbytes)
    return int.from_bytes(seed_bytes, 'little')


# =============================================================================
# Async Task Exception Handling
# =============================================================================

def log_task_exception(task: asyncio.Task) -> None:
    """
    Callback to log exceptions from fire-and-forget asyncio tasks.

        task = asyncio.ensure_future(some_coro())
        task.add_done_callback(log_task_exception)
    """
    try:
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Async task {task.get_name()} failed with exception: {exc}",
                exc_info=exc,
            )
    except asyncio.CancelledError:
        logger.debug(f"Async task {task.get_name()} was cancelled")


def safe_ensure_future(coro, *, name: Optional[str] = None) -> asyncio.Task:
    """
    Create an asyncio.Task with automatic exception logging.

    Example:
        safe_ensure_future(some_background_operation(), name="bg_op")
    """
    task = asyncio.ensure_future(coro)
    if name:
        task.set_name(name)
    task.add_done_callback(log_task_exception)
    return task


# =============================================================================
# Per-Key Locks
# =============================================================================

class KeyedLocks:
    """
    Lazily created asyncio.Lock per key.

    Serializes work on one key (a session, a node) while work on distinct
    keys proceeds concurrently.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def discard(self, key: str) -> None:
        """Forget a key's lock. Only call once the key can no longer be used."""
        self._locks.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._locks

    def __len__(self) -> int:
        return len(self._locks)
