"""
Periodic cleanup of connections whose close event was missed
"""
import asyncio
import logging
from typing import Optional

from . import config
from .registry import Registry, SweepResult
from .router import Router

logger = logging.getLogger("camera_relay")


class Sweeper:
    def __init__(self, registry: Registry, router: Router,
                 interval: float = config.SWEEP_INTERVAL, notify: bool = True):
        self.registry = registry
        self.router = router
        self.interval = interval
        self.notify = notify
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> SweepResult:
        logger.info("Status: %s", self.registry.stats())
        result = self.registry.sweep_dead()
        if self.notify:
            await self.router.announce_sweep(result)
        return result

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Sweep failed")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
