"""Clock — wall-clock time and deferred execution behind one small protocol.

Invariants:
    - now() returns epoch seconds as float
    - sleep(seconds <= 0) still yields to the event loop exactly like asyncio.sleep(0)
    - VirtualClock time only moves through advance(); sleepers wake in deadline order

Design Decisions:
    - The scheduler awaits Clock.sleep instead of asyncio.sleep so repayments
      can be simulated on a virtual timeline in tests and demos
"""

import asyncio
import heapq
import itertools
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Real time: time.time() and asyncio.sleep()."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class VirtualClock:
    """Manually advanced clock. Sleepers block until advance() passes their deadline."""

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start
        self._sleepers: list[tuple[float, int, asyncio.Future]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, _, fut in self._sleepers if not fut.done())

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        fut = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self._now + seconds, next(self._seq), fut))
        await fut

    async def advance(self, seconds: float) -> None:
        """Move time forward, waking every sleeper whose deadline is reached."""
        if seconds < 0:
            raise ValueError("VirtualClock cannot move backwards")
        # tasks created just before advance() register their sleep first
        await asyncio.sleep(0)
        target = self._now + seconds
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, fut = heapq.heappop(self._sleepers)
            self._now = max(self._now, deadline)
            if not fut.done():
                fut.set_result(None)
                # let the woken task run up to its next suspension point
                await asyncio.sleep(0)
        self._now = target
        await asyncio.sleep(0)
