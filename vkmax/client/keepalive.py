from __future__ import annotations
import asyncio
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional

from vkmax.shared.errors import KeepaliveAlreadyStartedError
from vkmax.shared.log import get_logger

logger = get_logger(__name__)


class Keepalive:
    """
    Background task that calls ``send`` every ``interval`` seconds.

    A failing tick is logged and the loop keeps going; only ``stop`` ends it.
    """

    def __init__(self, send: Callable[[], Awaitable[Any]], interval: float = 30.0) -> None:
        self._send = send
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise KeepaliveAlreadyStartedError()
        self._task = asyncio.create_task(self._loop())
        logger.info("keepalive task started")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done() and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        logger.info("keepalive task stopped")

    def cancel(self) -> None:
        """Synchronous stop, for use from event listeners"""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("keepalive task stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.ticks += 1
            try:
                await self._send()
            except Exception as e:
                self.failures += 1
                logger.warning("Keepalive error: %s", e)
