"""
Timer scheduling for live streams and reconnect backoff.

Anything with ``call_later(delay_seconds, callback, *args)`` returning a handle
with ``cancel()`` can drive a stream. A running ``asyncio`` event loop already
fits; ``ManualScheduler`` is a deterministic clock for tests and offline
replay that only moves when ``advance()`` is called.
"""

import heapq
from collections.abc import Callable
from typing import Any, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class ManualTimer:
    __slots__ = ("when", "callback", "args", "cancelled")

    def __init__(self, when: float, callback: Callable[..., Any], args: tuple[Any, ...]):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """A virtual clock. Timers fire in due order, ties in scheduling order."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._seq = 0
        self._queue: list[tuple[float, int, ManualTimer]] = []

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay), callback, args)
        self._seq += 1
        heapq.heappush(self._queue, (timer.when, self._seq, timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every timer that comes due. Returns how many fired."""
        target = self._now + max(0.0, seconds)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = when
            timer.callback(*timer.args)
            fired += 1
        self._now = target
        return fired
