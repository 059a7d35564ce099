"""
Periodic Memory Consolidation Worker
====================================
Background asyncio task that, every ``interval_seconds``:

  1. Consolidates qualifying short-term items of every live session into
     the knowledge graph.
  2. Prunes short-term items whose activation has decayed away.

A failure in one session is logged and counted; the pass continues with the
remaining sessions. Consolidation itself is idempotent, so overlapping a
manual ``consolidate_memory`` call with a pass is harmless.

Usage:
    worker = ConsolidationWorker(sessions, interval_seconds=300)
    await worker.start()       # launches background task
    await worker.run_once()    # one-shot (for testing / cron)
    await worker.stop()
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from loguru import logger

from .exceptions import SessionNotFoundError
from .working_memory import MemorySessionManager


class ConsolidationWorker:

    def __init__(
        self,
        sessions: MemorySessionManager,
        interval_seconds: float = 300,
        enabled: bool = True,
    ):
        self.sessions = sessions
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.last_run: Optional[datetime] = None
        self.stats: Dict[str, Any] = {}

    @property
    def running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    # ---- Lifecycle ----------------------------------------------- #

    async def start(self) -> None:
        """Launch the background consolidation loop."""
        if not self.enabled:
            logger.info("ConsolidationWorker disabled by config.")
            return
        if self.running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="memory_consolidation")
        logger.info(f"ConsolidationWorker started, running every {self.interval_seconds}s")

    async def stop(self) -> None:
        """Gracefully stop the worker."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("ConsolidationWorker stopped.")

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                if self._running:
                    await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.exception(f"ConsolidationWorker error: {exc}")

    # ---- Pass ---------------------------------------------------- #

    async def run_once(self) -> Dict[str, Any]:
        """Consolidate and prune every session once; returns pass statistics."""
        t0 = time.monotonic()
        consolidated = 0
        pruned = 0
        failed = 0
        sessions = self.sessions.sessions()

        for session in sessions:
            try:
                consolidated += await self.sessions.consolidate_memory(session.id)
                pruned += await self.sessions.prune_decayed(session.id)
            except SessionNotFoundError:
                # Ended while the pass was running.
                continue
            except Exception as exc:
                failed += 1
                logger.exception(f"Consolidation failed for session {session.id}: {exc}")

        elapsed = time.monotonic() - t0
        self.last_run = datetime.now(timezone.utc)
        self.stats = {
            "sessions": len(sessions),
            "consolidated": consolidated,
            "pruned": pruned,
            "failed_sessions": failed,
            "elapsed_seconds": round(elapsed, 4),
            "last_run": self.last_run.isoformat(),
        }
        logger.info(
            f"Consolidation pass: {consolidated} promoted, {pruned} pruned "
            f"across {len(sessions)} session(s) in {elapsed * 1000:.1f}ms"
        )
        return self.stats
