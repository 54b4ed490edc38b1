"""
Client-side running buffers for a live run stream.

Frames can arrive twice (replays after a reconnect) and out of order. Each
buffer keys items by their identifying fields, drops repeats, keeps items
sorted by timestamp, and caps its size by dropping the oldest entries.
"""

import bisect
from collections.abc import Callable, Hashable
from typing import Generic, Protocol, TypeVar

from ..generators.metric_generator import METRIC_NAMES
from ..models import LogLine, MetricPoint, RunStatus, TimelineEvent
from ..streaming.events import (
    LogLineFrame,
    MetricPointFrame,
    RunEvent,
    StatusFrame,
    TimelineEventFrame,
)

LOG_BUFFER_LIMIT = 5000
TIMELINE_BUFFER_LIMIT = 500
METRIC_BUFFER_LIMIT = 4000


class _Timestamped(Protocol):
    ts: str


T = TypeVar("T", bound=_Timestamped)


def log_key(line: LogLine) -> Hashable:
    return (line.ts, line.level, line.source, line.message)


def timeline_key(event: TimelineEvent) -> Hashable:
    return (event.ts, event.type, event.title)


def metric_key(point: MetricPoint) -> Hashable:
    return (point.ts, point.name, point.value)


class SortedDedupBuffer(Generic[T]):
    def __init__(self, key: Callable[[T], Hashable], limit: int):
        self._key = key
        self._limit = limit
        self._items: list[T] = []
        self._keys: set[Hashable] = set()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[T]:
        return list(self._items)

    def add(self, item: T) -> bool:
        """Insert in timestamp order. Returns False if an equal item is already held."""
        k = self._key(item)
        if k in self._keys:
            return False
        bisect.insort_right(self._items, item, key=lambda i: i.ts)
        self._keys.add(k)
        while len(self._items) > self._limit:
            dropped = self._items.pop(0)
            self._keys.discard(self._key(dropped))
        return True


class RunStreamBuffers:
    def __init__(
        self,
        log_limit: int = LOG_BUFFER_LIMIT,
        timeline_limit: int = TIMELINE_BUFFER_LIMIT,
        metric_limit: int = METRIC_BUFFER_LIMIT,
    ):
        self.status: RunStatus | None = None
        self.logs: SortedDedupBuffer[LogLine] = SortedDedupBuffer(log_key, log_limit)
        self.timeline: SortedDedupBuffer[TimelineEvent] = SortedDedupBuffer(
            timeline_key, timeline_limit
        )
        self.metrics: dict[str, SortedDedupBuffer[MetricPoint]] = {
            name: SortedDedupBuffer(metric_key, metric_limit) for name in METRIC_NAMES
        }
        self.duplicates = 0

    def apply(self, event: RunEvent) -> bool:
        """Merge one frame. Returns True if it changed any buffer."""
        match event:
            case StatusFrame(status=status):
                changed = status is not self.status
                self.status = status
                return changed
            case LogLineFrame(line=line):
                added = self.logs.add(line)
            case TimelineEventFrame(event=timeline_event):
                added = self.timeline.add(timeline_event)
            case MetricPointFrame(point=point):
                series = self.metrics.get(point.name)
                if series is None:
                    return False
                added = series.add(point)
            case _:
                return False
        if not added:
            self.duplicates += 1
        return added
