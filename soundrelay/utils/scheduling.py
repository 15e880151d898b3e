"""
A cancellable, single-shot scheduled coroutine, used for debounced persistence.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

log = logging.getLogger(__name__)


class ScheduledTask:
    """
    Runs a coroutine function once after a delay.

    At most one run is pending at a time: `schedule()` returns False and does
    nothing while a previous schedule has not fired yet.
    """

    def __init__(self, name: str = "scheduled-task"):
        self.name = name
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_pending(self) -> bool:
        """True between `schedule()` and the moment the callback fires."""
        return self._handle is not None

    def schedule(
        self, delay: float, callback: Callable[[], Awaitable[None]]
    ) -> bool:
        if self._handle is not None:
            return False
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, callback)
        return True

    def _fire(self, callback: Callable[[], Awaitable[None]]) -> None:
        self._handle = None
        self._task = asyncio.ensure_future(callback())
        log.debug(f"{self.name}: fired")

    def cancel(self) -> bool:
        """Cancels the pending run, if any. A run that already fired is not interrupted."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    async def wait(self) -> None:
        """Waits for the last fired run to finish."""
        if self._task is not None and not self._task.done():
            await asyncio.shield(self._task)
