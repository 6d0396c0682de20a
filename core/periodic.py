# core/periodic.py
"""Fixed-delay background loops on the asyncio event loop.

A tick that raises is logged and the loop carries on; only stop() ends it.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs `fn` every `interval` seconds, measured from the end of the previous tick."""

    def __init__(
        self,
        name: str,
        interval: float,
        fn: Callable[[], Awaitable[object]],
        *,
        run_immediately: bool = False,
    ) -> None:
        self.name = name
        self._interval = interval
        self._fn = fn
        self._run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info("periodic.start name=%s interval=%.1fs", self.name, self._interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("periodic.stop name=%s ticks=%d", self.name, self.ticks)

    async def run_once(self) -> None:
        try:
            await self._fn()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("periodic.tick.error name=%s", self.name)
        finally:
            self.ticks += 1

    async def _loop(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self._interval)
        while self._running:
            await self.run_once()
            await asyncio.sleep(self._interval)
