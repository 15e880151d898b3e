"""Tests for the bounded admission queue."""

import asyncio

import pytest

from soundrelay.core.task_queue import TaskQueue
from soundrelay.exceptions import QueueFullError
from tests.fakes import wait_until


class Gate:
    def __init__(self) -> None:
        self.running = 0
        self.peak = 0
        self.release = asyncio.Event()

    def job(self, value=None):
        async def work():
            self.running += 1
            self.peak = max(self.peak, self.running)
            try:
                await self.release.wait()
                return value
            finally:
                self.running -= 1

        return work


@pytest.mark.asyncio
async def test_concurrency_limit_is_never_exceeded() -> None:
    queue = TaskQueue(concurrency_limit=2, backlog_limit=10)
    gate = Gate()

    futures = [queue.submit(gate.job(i)) for i in range(6)]
    await wait_until(lambda: gate.running == 2)

    assert queue.active_count == 2
    assert queue.pending_count == 4

    gate.release.set()
    results = await asyncio.gather(*futures)

    assert results == list(range(6))
    assert gate.peak == 2
    assert queue.active_count == 0
    assert queue.pending_count == 0


@pytest.mark.asyncio
async def test_full_backlog_rejects_synchronously() -> None:
    queue = TaskQueue(concurrency_limit=1, backlog_limit=2)
    gate = Gate()

    running = queue.submit(gate.job("a"))
    await wait_until(lambda: gate.running == 1)
    queued = [queue.submit(gate.job("b")), queue.submit(gate.job("c"))]

    with pytest.raises(QueueFullError):
        queue.submit(gate.job("d"))
    assert queue.pending_count == 2

    gate.release.set()
    assert await running == "a"
    assert await asyncio.gather(*queued) == ["b", "c"]


@pytest.mark.asyncio
async def test_zero_backlog_rejects_when_every_slot_is_busy() -> None:
    queue = TaskQueue(concurrency_limit=1, backlog_limit=0)
    gate = Gate()

    # Admission is checked before the job is started, so even the first
    # submission needs a free backlog entry.
    with pytest.raises(QueueFullError):
        queue.submit(gate.job())
    gate.release.set()


@pytest.mark.asyncio
async def test_failure_only_fails_its_own_future() -> None:
    queue = TaskQueue(concurrency_limit=1, backlog_limit=5)

    async def boom():
        raise RuntimeError("boom")

    async def fine():
        return "ok"

    failing = queue.submit(boom)
    succeeding = queue.submit(fine)

    with pytest.raises(RuntimeError, match="boom"):
        await failing
    assert await succeeding == "ok"


@pytest.mark.asyncio
async def test_failures_do_not_leak_capacity() -> None:
    queue = TaskQueue(concurrency_limit=2, backlog_limit=2)

    async def boom():
        raise ValueError("nope")

    for _ in range(5):
        batch = [queue.submit(boom), queue.submit(boom)]
        await asyncio.gather(*batch, return_exceptions=True)

    await queue.join()
    assert queue.active_count == 0
    assert queue.pending_count == 0

    gate = Gate()
    futures = [queue.submit(gate.job(i)) for i in range(4)]
    await wait_until(lambda: gate.running == 2)
    gate.release.set()
    assert await asyncio.gather(*futures) == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_jobs_start_in_fifo_order() -> None:
    queue = TaskQueue(concurrency_limit=1, backlog_limit=None)
    order = []

    def job(i):
        async def work():
            order.append(i)

        return work

    futures = [queue.submit(job(i)) for i in range(5)]
    await asyncio.gather(*futures)
    assert order == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_join_waits_for_running_and_queued_work() -> None:
    queue = TaskQueue(concurrency_limit=1)
    gate = Gate()
    queue.submit(gate.job())
    queue.submit(gate.job())

    joiner = asyncio.create_task(queue.join())
    await asyncio.sleep(0.01)
    assert not joiner.done()

    gate.release.set()
    await asyncio.wait_for(joiner, timeout=1)


@pytest.mark.asyncio
async def test_cancel_all_drops_waiting_jobs() -> None:
    queue = TaskQueue(concurrency_limit=1, backlog_limit=5)
    gate = Gate()
    running = queue.submit(gate.job())
    waiting = queue.submit(gate.job())
    await wait_until(lambda: gate.running == 1)

    await queue.cancel_all()

    assert waiting.cancelled()
    assert running.cancelled()
    assert queue.pending_count == 0
