from __future__ import annotations
import asyncio
import contextlib
import logging
from typing import Optional

from railpulse.sim.engine import SimulationEngine

logger = logging.getLogger(__name__)


class SimulationRunner:
    """Wall-clock pacer: calls ``engine.tick()`` every ``interval_s`` while running.

    Ticks and commands share one event loop, so a pause is only observed
    between ticks, never in the middle of a drain.
    """

    def __init__(self, engine: SimulationEngine, interval_s: Optional[float] = None) -> None:
        self.engine = engine
        self.interval_s = interval_s if interval_s is not None else engine.config.tick_interval_s
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        changed = self.engine.start()
        if not self.active:
            self._task = asyncio.create_task(self._loop())
        return changed

    async def pause(self) -> bool:
        changed = self.engine.pause()
        await self.stop()
        return changed

    async def toggle(self) -> bool:
        if self.engine.state.is_running:
            await self.pause()
        else:
            self.start()
        return self.engine.state.is_running

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self) -> None:
        logger.info("Simulation runner started (interval %.3fs)", self.interval_s)
        while self.engine.state.is_running:
            try:
                self.engine.tick()
            except Exception:
                logger.exception("Tick failed at t=%.0fs, pausing simulation", self.engine.state.time)
                self.engine.pause()
                break
            await asyncio.sleep(self.interval_s)
        logger.info("Simulation runner stopped at t=%.0fs", self.engine.state.time)
