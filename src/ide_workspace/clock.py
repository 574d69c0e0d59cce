"""Timer primitives used for deployment ticks and assistant latency.

``AsyncioClock`` schedules on the running event loop. ``ManualClock`` only
moves when ``advance()`` is called, which lets tests drive deployments and
simulated latency without real time passing.
"""

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(ABC):
    """Schedulable "call back after N ms" primitive."""

    @abstractmethod
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay_ms`` milliseconds."""
        ...

    @abstractmethod
    async def sleep(self, delay_ms: int) -> None:
        """Suspend the calling coroutine for ``delay_ms`` milliseconds."""
        ...

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time, timezone-aware."""
        ...


class AsyncioClock(Clock):
    """Clock backed by the running asyncio event loop."""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(max(0, delay_ms) / 1000, callback)

    async def sleep(self, delay_ms: int) -> None:
        await asyncio.sleep(max(0, delay_ms) / 1000)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class _ManualTimer:
    def __init__(self, callback: Callable[[], None]):
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock(Clock):
    """Deterministic clock advanced explicitly by the caller."""

    def __init__(self, start: datetime | None = None):
        self._start = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._elapsed_ms = 0
        self._queue: list[tuple[int, int, _ManualTimer]] = []
        self._seq = itertools.count()

    @property
    def elapsed_ms(self) -> int:
        return self._elapsed_ms

    @property
    def pending(self) -> int:
        """Number of scheduled, not yet cancelled callbacks."""
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(callback)
        due = self._elapsed_ms + max(0, delay_ms)
        heapq.heappush(self._queue, (due, next(self._seq), timer))
        return timer

    async def sleep(self, delay_ms: int) -> None:
        if delay_ms <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()

        def _wake() -> None:
            if not future.done():
                future.set_result(None)

        self.call_later(delay_ms, _wake)
        await future

    def advance(self, delay_ms: int) -> None:
        """Move time forward, firing due callbacks in schedule order.

        Callbacks may schedule further callbacks; those fire too if they
        fall inside the advanced window.
        """
        target = self._elapsed_ms + delay_ms
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            self._elapsed_ms = due
            if not timer.cancelled:
                timer.callback()
        self._elapsed_ms = target

    def now(self) -> datetime:
        return self._start + timedelta(milliseconds=self._elapsed_ms)
