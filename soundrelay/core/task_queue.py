"""
Bounded-concurrency, bounded-backlog admission queue for asynchronous work.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from soundrelay.exceptions import QueueFullError

log = logging.getLogger(__name__)

UnitOfWork = Callable[[], Awaitable[Any]]


@dataclass
class Job:
    """A deferred unit of work, its outcome future, and when it was enqueued."""

    work: UnitOfWork
    future: asyncio.Future
    enqueued_at: float = field(default_factory=time.monotonic)


class TaskQueue:
    """
    Runs submitted units of work with at most `concurrency_limit` in flight and
    at most `backlog_limit` waiting.

    - Admission is synchronous: a full backlog makes `submit()` raise
      `QueueFullError` immediately.
    - Queued units start in FIFO order as running slots free up.
    - A failing unit only fails its own future.
    """

    def __init__(self, concurrency_limit: int | None, backlog_limit: int | None = None):
        """
        Args:
            concurrency_limit: Maximum units running at once. `None` or a
                non-positive value means unbounded.
            backlog_limit: Maximum units waiting for a slot. `None` or a
                negative value means unbounded; zero means "never wait".
        """
        self.concurrency_limit = (
            concurrency_limit if concurrency_limit and concurrency_limit > 0 else None
        )
        self.backlog_limit = (
            backlog_limit if backlog_limit is not None and backlog_limit >= 0 else None
        )
        self._active = 0
        self._pending: deque[Job] = deque()
        self._tasks: set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(self, work: UnitOfWork) -> asyncio.Future:
        """
        Enqueues `work` and returns a future resolved with its result.

        Raises:
            QueueFullError: If the backlog is at capacity. Nothing is enqueued.
        """
        if self.backlog_limit is not None and len(self._pending) >= self.backlog_limit:
            log.warning(
                f"[yellow]Queue full: {self._active} running, "
                f"{len(self._pending)} waiting.[/yellow]"
            )
            raise QueueFullError()

        loop = asyncio.get_running_loop()
        job = Job(work=work, future=loop.create_future())
        self._pending.append(job)
        self._idle.clear()
        self._run_next()
        return job.future

    def _has_free_slot(self) -> bool:
        return self.concurrency_limit is None or self._active < self.concurrency_limit

    def _run_next(self) -> None:
        while self._pending and self._has_free_slot():
            job = self._pending.popleft()
            self._active += 1
            task = asyncio.create_task(self._execute(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _execute(self, job: Job) -> None:
        waited = time.monotonic() - job.enqueued_at
        log.debug(f"Job started after waiting {waited:.2f}s ({self._active} running)")
        try:
            result = await job.work()
        except asyncio.CancelledError:
            if not job.future.done():
                job.future.cancel()
            raise
        except Exception as e:
            if not job.future.done():
                job.future.set_exception(e)
        else:
            if not job.future.done():
                job.future.set_result(result)
        finally:
            self._active -= 1
            self._run_next()
            if self._active == 0 and not self._pending:
                self._idle.set()

    async def join(self) -> None:
        """Waits until no unit is running or waiting."""
        await self._idle.wait()

    async def cancel_all(self) -> None:
        """Drops waiting units and cancels running ones. Used at shutdown."""
        while self._pending:
            self._pending.popleft().future.cancel()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._idle.set()
