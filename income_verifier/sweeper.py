"""
Income Verifier - Background Sweeps
Periodic asyncio tasks that purge expired rate-limit entries and sessions.

Sweeps only bound memory; lazy expiry checks keep the stores correct
without them. Tasks are started and cancelled by the app lifespan.
"""
import asyncio
import contextlib
import logging
from typing import Callable, Optional

logger = logging.getLogger("income_verifier.sweeper")


class PeriodicTask:
    """Run a synchronous callable every `interval` seconds until stopped."""

    def __init__(self, name: str, interval: float, func: Callable[[], int]):
        self.name = name
        self.interval = interval
        self.func = func
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"sweep:{self.name}")
        logger.info("Started %s sweep every %ss", self.name, self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Stopped %s sweep", self.name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                removed = self.func()
            except Exception:
                # A failed sweep must not kill the loop; the next tick retries.
                logger.exception("%s sweep failed", self.name)
                continue
            if removed:
                logger.info("%s sweep removed %d expired entries", self.name, removed)
