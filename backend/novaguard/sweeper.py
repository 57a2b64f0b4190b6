from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .defense import DefenseContext, SweepStats
from .metrics import TRACKED_RECORDS

logger = logging.getLogger("novaguard.sweeper")


class Sweeper:
    """Periodically prunes stale records from every defense store."""

    def __init__(self, defense: DefenseContext, interval_seconds: float) -> None:
        self.defense = defense
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    def run_once(self) -> SweepStats:
        stats = self.defense.sweep()
        for store, count in self.defense.record_counts().items():
            TRACKED_RECORDS.labels(store=store).set(count)
        if stats.total:
            logger.debug(
                "Defense stores swept",
                extra={"event": "sweep", "removed": stats.total},
            )
        return stats

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.run_once()
            except Exception:
                logger.exception("Defense sweep failed", extra={"event": "sweep_failed"})

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
