"""
Compaction Scheduler

Runs the compactor on a fixed interval in a background asyncio task.
A failed run is logged and the loop carries on; the next run picks up
whatever is still live.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from teamlog.core.config import CompactionScheduleConfig
from teamlog.core.errors import PartialCompaction, TeamLogError
from teamlog.core.types import Result
from teamlog.messages.compactor import CompactionReport, Compactor
from teamlog.observability.logging import StructuredLogger

logger = StructuredLogger("teamlog.messages.scheduler")


class CompactionScheduler:
    """
    Periodic compaction.

    Usage:
        scheduler = CompactionScheduler(compactor, CompactionScheduleConfig(interval_seconds=900))
        scheduler.start()
        ...
        await scheduler.stop()
    """

    __slots__ = ("_compactor", "_config", "_task", "_running", "_runs", "_failures")

    def __init__(
        self,
        compactor: Compactor,
        config: Optional[CompactionScheduleConfig] = None,
    ) -> None:
        self._compactor = compactor
        self._config = config or CompactionScheduleConfig()
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False
        self._runs = 0
        self._failures = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def runs(self) -> int:
        return self._runs

    @property
    def failures(self) -> int:
        return self._failures

    async def run_once(self) -> Result[CompactionReport, TeamLogError]:
        """One compaction run with the configured limits."""
        result = await self._compactor.compact()
        self._runs += 1
        if result.is_err():
            self._failures += 1
            error = result.error
            logger.error(
                "Scheduled compaction failed",
                kind=error.kind,
                relocated=error.relocated if isinstance(error, PartialCompaction) else 0,
                error=str(error),
            )
        return result

    def start(self) -> None:
        """Start the background loop. Must be called from a running event loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Compaction scheduler started", interval_s=self._config.interval_seconds)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Compaction scheduler stopped", runs=self._runs, failures=self._failures)

    async def _loop(self) -> None:
        while self._running:
            await self.run_once()
            await asyncio.sleep(self._config.interval_seconds)
