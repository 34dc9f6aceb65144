"""DetectorRunner — ticks the detection cycles on a fixed interval.

Runs as a single background task on the event loop.  Cycles are ticked
one after another, so the loop itself never overlaps ticks; manual ticks
from the API are covered by each cycle's own reentrancy guard.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from arrival_engine.store.protocols import Tickable

logger = logging.getLogger(__name__)


class DetectorRunner:
    def __init__(self, *cycles: Tickable, interval_seconds: float = 25.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if not cycles:
            raise ValueError("at least one cycle is required")
        self._cycles = cycles
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="arrival-detector")
        logger.info("Detector started (%d cycle(s), interval %.1fs)", len(self._cycles), self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Detector stopped")

    async def _loop(self) -> None:
        while True:
            # tick() never raises; failures are logged and counted inside.
            for cycle in self._cycles:
                await cycle.tick()
            await asyncio.sleep(self._interval)
