"""Tests for the bounded priority task queue."""

import asyncio

import pytest

from agent_orchestrator.agents.queue import TaskQueue


@pytest.mark.asyncio
async def test_queue_respects_concurrency_limit():
    """No more than `concurrency` functions run at once."""
    queue = TaskQueue(concurrency=2)
    active = 0
    peak = 0

    async def job():
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return "done"

    results = await asyncio.gather(*(queue.add(job) for _ in range(6)))

    assert results == ["done"] * 6
    assert peak == 2
    assert queue.running == 0


@pytest.mark.asyncio
async def test_queue_admits_highest_priority_first():
    """Waiters run by priority, FIFO among equal priorities."""
    queue = TaskQueue(concurrency=1)
    order = []
    gate = asyncio.Event()

    async def blocker():
        await gate.wait()

    def job(name):
        async def run():
            order.append(name)
        return run

    first = asyncio.ensure_future(queue.add(blocker))
    await asyncio.sleep(0)
    waiters = [
        asyncio.ensure_future(queue.add(job("low"), priority=1)),
        asyncio.ensure_future(queue.add(job("high-a"), priority=5)),
        asyncio.ensure_future(queue.add(job("none"))),
        asyncio.ensure_future(queue.add(job("high-b"), priority=5)),
    ]
    await asyncio.sleep(0)
    assert queue.pending == 4

    gate.set()
    await asyncio.gather(first, *waiters)

    assert order == ["high-a", "high-b", "low", "none"]


@pytest.mark.asyncio
async def test_queue_releases_slot_when_function_raises():
    """A failing function frees its slot and propagates its error."""
    queue = TaskQueue(concurrency=1)

    async def boom():
        raise RuntimeError("boom")

    async def ok():
        return 42

    with pytest.raises(RuntimeError):
        await queue.add(boom)
    assert await queue.add(ok) == 42


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_leak_a_slot():
    """Cancelling a queued caller leaves capacity intact."""
    queue = TaskQueue(concurrency=1)
    gate = asyncio.Event()

    async def blocker():
        await gate.wait()

    async def ok():
        return "ok"

    running = asyncio.ensure_future(queue.add(blocker))
    await asyncio.sleep(0)
    waiting = asyncio.ensure_future(queue.add(ok))
    await asyncio.sleep(0)
    waiting.cancel()
    gate.set()
    await running

    assert await queue.add(ok) == "ok"
    assert queue.running == 0


def test_queue_rejects_non_positive_concurrency():
    with pytest.raises(ValueError):
        TaskQueue(concurrency=0)
    queue = TaskQueue()
    with pytest.raises(ValueError):
        queue.concurrency = 0
