"""Virtual Clock — tests for deterministic sleeping and advancing.

Tests cover:
    - Sleepers wake only once advance() reaches their deadline, in deadline order
    - now() reads each sleeper's deadline when it wakes
    - Non-positive sleeps return without advance()
"""

import asyncio

import pytest

from trustlend.infrastructure.clock import SystemClock, VirtualClock


async def test_sleeper_wakes_at_deadline():
    clock = VirtualClock(start=0.0)
    woke_at = []

    async def sleeper():
        await clock.sleep(5)
        woke_at.append(clock.now())

    task = asyncio.create_task(sleeper())
    await clock.advance(4)
    assert woke_at == []
    await clock.advance(1)
    await task
    assert woke_at == [5.0]


async def test_sleepers_wake_in_deadline_order():
    clock = VirtualClock(start=0.0)
    order = []

    async def sleeper(name, seconds):
        await clock.sleep(seconds)
        order.append((name, clock.now()))

    tasks = [
        asyncio.create_task(sleeper("late", 3)),
        asyncio.create_task(sleeper("early", 1)),
    ]
    await clock.advance(10)
    await asyncio.gather(*tasks)
    assert order == [("early", 1.0), ("late", 3.0)]
    assert clock.now() == 10.0


async def test_zero_sleep_does_not_block():
    clock = VirtualClock()
    await asyncio.wait_for(clock.sleep(0), timeout=1)
    assert clock.pending_sleepers == 0


async def test_pending_sleepers_counts_blocked_tasks():
    clock = VirtualClock()
    task = asyncio.create_task(clock.sleep(2))
    await asyncio.sleep(0)
    assert clock.pending_sleepers == 1
    await clock.advance(2)
    await task
    assert clock.pending_sleepers == 0


async def test_advance_rejects_negative():
    with pytest.raises(ValueError):
        await VirtualClock().advance(-1)


async def test_system_clock_sleep_clamps_negative():
    await asyncio.wait_for(SystemClock().sleep(-5), timeout=1)
