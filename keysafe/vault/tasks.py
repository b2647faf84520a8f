"""
Cancellable periodic tasks for the vault event loop.

Used by the inactivity auto-lock poller and the TOTP display ticker.
A task is bound to the running asyncio loop and is cancelled by
``stop()``; stopping from inside the callback is allowed.
"""
import asyncio
import logging
from collections.abc import Callable
from typing import Optional

logger = logging.getLogger("keysafe.vault")


class PeriodicTask:
    """Run a synchronous callback every ``interval`` seconds."""

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        name: str = "periodic",
    ):
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")
        self._interval = interval
        self._callback = callback
        self._name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the task on the running loop (restarts if running).

        Raises:
            RuntimeError: If called without a running event loop.
        """
        self.stop()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=self._name)
        logger.debug("Started %s task (interval=%ss)", self._name, self._interval)

    def stop(self) -> None:
        """Cancel the task. No-op when it is not running."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Stopped %s task", self._name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._callback()
            except Exception as err:
                logger.error("Error in %s task: %s", self._name, err)
