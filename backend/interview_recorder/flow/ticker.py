"""
One-second ticker driving the countdown, recording and deadline timers.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Ticker:
    """Calls an async callback every `interval` seconds until stopped."""

    def __init__(self, callback: Callable[[], Awaitable[None]], interval: float = 1.0):
        self.callback = callback
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopping

    def start(self):
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.create_task(self._run())

    async def _run(self):
        while not self._stopping:
            await asyncio.sleep(self.interval)
            if self._stopping:
                break
            try:
                await self.callback()
            except Exception as e:
                logger.error(f"Tick handler failed: {e}", exc_info=True)

    async def stop(self):
        self._stopping = True
        task, self._task = self._task, None
        if task is None or task.done() or task is asyncio.current_task():
            # Called from inside the callback: the loop exits after it returns
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
