"""
Per-subscription live event generator.

On start the simulator sends the run's current status, then ticks every
500-1500 ms. Each tick emits one frame:

    50%  log line       level spikes in the last 6 steps of every 40
    40%  metric point   random walk from the last known value
    10%  timeline event checkpoint / alert / log spike by step % 3

Optionally a synthetic disconnect is scheduled 20-45 s after start; it closes
the connection with code 1012. Once stopped, no timer belonging to the
simulator fires and nothing more is sent.
"""

import logging
import math
import random
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..generators.metric_generator import METRIC_BOUNDS, METRIC_NAMES
from ..models import LogLevel, LogLine, MetricPoint, RunStatus, Severity, TimelineEvent, TimelineEventType
from ..statistics.prng import clamp
from ..timeutil import to_iso, utc_now
from .clock import Scheduler, TimerHandle
from .events import (
    SYNTHETIC_DISCONNECT_CODE,
    SYNTHETIC_DISCONNECT_REASON,
    LogLineFrame,
    MetricPointFrame,
    RunEvent,
    StatusFrame,
    TimelineEventFrame,
)

if TYPE_CHECKING:
    from ..store import QueryStore

logger = logging.getLogger(__name__)

TICK_INTERVAL_MS = (500, 1500)
SPIKE_CYCLE = 40
SPIKE_FROM_STEP = 34

METRIC_SEEDS = {
    "loss": 0.7,
    "accuracy": 0.82,
    "throughput": 420.0,
    "gpu_util": 88.0,
}

# (noise scale, drift) per step
_WALK = {
    "loss": (0.02, -0.003),
    "accuracy": (0.004, 0.001),
    "throughput": (12.0, 0.0),
    "gpu_util": (1.8, 0.0),
}


def random_between_ms(rand: random.Random, low: int, high: int) -> int:
    """Uniform integer milliseconds in [low, high]; bounds may come in either order."""
    lo, hi = min(low, high), max(low, high)
    return math.floor(rand.random() * (hi - lo + 1)) + lo


def next_metric_value(name: str, previous: float, rand: random.Random) -> float:
    noise = (rand.random() - 0.5) * 2
    scale, drift = _WALK.get(name, (0.0, 0.0))
    low, high = METRIC_BOUNDS.get(name, (-math.inf, math.inf))
    return clamp(previous + noise * scale + drift, low, high)


def pick_stream_log_level(step: int, rand: random.Random) -> LogLevel:
    x = rand.random()
    in_spike = step % SPIKE_CYCLE >= SPIKE_FROM_STEP
    if in_spike and x < 0.12:
        return LogLevel.ERROR
    if in_spike and x < 0.35:
        return LogLevel.WARN
    if x < 0.01:
        return LogLevel.ERROR
    if x < 0.08:
        return LogLevel.WARN
    if x < 0.76:
        return LogLevel.INFO
    return LogLevel.DEBUG


def stream_log_line(
    step: int, values: Mapping[str, float], rand: random.Random, now: datetime
) -> LogLine:
    level = pick_stream_log_level(step, rand)
    match level:
        case LogLevel.INFO:
            lr = 0.0005 + math.sin(step / 40) * 0.00008
            loss = values.get("loss", METRIC_SEEDS["loss"])
            acc = values.get("accuracy", METRIC_SEEDS["accuracy"])
            source = "trainer"
            message = f"[trainer] step={step:06d} loss={loss:.4f} acc={acc:.3f} lr={lr:.6f}"
        case LogLevel.WARN:
            source = "system"
            message = f"[system] gpu throttling: temp={math.floor(70 + rand.random() * 22)}C"
        case LogLevel.ERROR:
            source = "trainer"
            message = "[trainer] checkpoint write failed: EIO (simulated)"
        case LogLevel.DEBUG:
            pending = math.floor(rand.random() * 18)
            running = math.floor(1 + rand.random() * 6)
            source = "trainer"
            message = f"[trainer] scheduler tick: pending={pending} running={running}"
    return LogLine(ts=to_iso(now), level=level, source=source, message=message)


def stream_timeline_event(step: int, now: datetime) -> TimelineEvent:
    ts = to_iso(now)
    match step % 3:
        case 0:
            return TimelineEvent(
                ts, TimelineEventType.CHECKPOINT, "checkpoint saved", Severity.INFO, {"step": step}
            )
        case 1:
            return TimelineEvent(
                ts,
                TimelineEventType.ALERT,
                "anomaly detected: p95 latency drift",
                Severity.WARNING,
                {"step": step},
            )
        case _:
            return TimelineEvent(
                ts,
                TimelineEventType.LOG_SPIKE,
                "log spike (stream)",
                Severity.WARNING,
                {"linesPerMin": 900},
            )


class LiveRunSimulator:
    """
    Drive one live subscription.

    ``send`` receives every frame; ``close`` is called with (code, reason)
    when the simulator ends the connection itself (synthetic disconnect).
    Call ``stop()`` when the peer goes away.
    """

    def __init__(
        self,
        run_id: str,
        status: RunStatus,
        scheduler: Scheduler,
        send: Callable[[RunEvent], None],
        close: Callable[[int, str], None],
        *,
        initial_values: Mapping[str, float] | None = None,
        rand: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
        disconnect_window_ms: tuple[int, int] | None = (20_000, 45_000),
        tick_interval_ms: tuple[int, int] = TICK_INTERVAL_MS,
    ):
        self.run_id = run_id
        self.status = status
        self._scheduler = scheduler
        self._send = send
        self._close = close
        self._rand = rand or random.Random()
        self._clock = clock
        self._disconnect_window_ms = disconnect_window_ms
        self._tick_interval_ms = tick_interval_ms

        self.values: dict[str, float] = {name: METRIC_SEEDS[name] for name in METRIC_NAMES}
        if initial_values:
            self.values.update(initial_values)

        self.step = 0
        self.frames_sent = 0
        self._started = False
        self._closed = False
        self._tick_timer: TimerHandle | None = None
        self._disconnect_timer: TimerHandle | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Send the status frame, arm the synthetic disconnect, run the first tick."""
        if self._started or self._closed:
            return
        self._started = True
        logger.debug("Live stream opened for %s", self.run_id)
        self._emit(StatusFrame(self.run_id, self.status))

        if self._disconnect_window_ms is not None:
            delay_ms = random_between_ms(self._rand, *self._disconnect_window_ms)
            self._disconnect_timer = self._scheduler.call_later(
                delay_ms / 1000, self._synthetic_disconnect
            )
        self._tick()

    def stop(self) -> None:
        """Cancel every pending timer. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for timer in (self._tick_timer, self._disconnect_timer):
            if timer is not None:
                timer.cancel()
        self._tick_timer = None
        self._disconnect_timer = None
        logger.debug("Live stream closed for %s after %d frames", self.run_id, self.frames_sent)

    def _emit(self, frame: RunEvent) -> None:
        if self._closed:
            return
        self._send(frame)
        self.frames_sent += 1

    def _synthetic_disconnect(self) -> None:
        if self._closed:
            return
        logger.info("Synthetic disconnect for %s", self.run_id)
        self.stop()
        self._close(SYNTHETIC_DISCONNECT_CODE, SYNTHETIC_DISCONNECT_REASON)

    def _tick(self) -> None:
        if self._closed:
            return
        self.step += 1
        now = self._clock()

        r = self._rand.random()
        if r < 0.5:
            line = stream_log_line(self.step, self.values, self._rand, now)
            self._emit(LogLineFrame(self.run_id, line))
        elif r < 0.9:
            name = METRIC_NAMES[math.floor(self._rand.random() * len(METRIC_NAMES))]
            value = next_metric_value(name, self.values[name], self._rand)
            self.values[name] = value
            self._emit(MetricPointFrame(self.run_id, MetricPoint(to_iso(now), name, round(value, 4))))
        else:
            self._emit(TimelineEventFrame(self.run_id, stream_timeline_event(self.step, now)))

        if self._closed:
            return
        delay_ms = random_between_ms(self._rand, *self._tick_interval_ms)
        self._tick_timer = self._scheduler.call_later(delay_ms / 1000, self._tick)


def initial_values_from_series(series: Mapping[str, list[MetricPoint]]) -> dict[str, float]:
    """Last stored value per metric so the live walk continues the history."""
    return {name: points[-1].value for name, points in series.items() if points}


def simulator_for_run(
    store: "QueryStore",
    run_id: str,
    scheduler: Scheduler,
    send: Callable[[RunEvent], None],
    close: Callable[[int, str], None],
    **options: Any,
) -> LiveRunSimulator | None:
    """Build a simulator seeded with the run's status and last metric values. None for unknown runs."""
    status = store.get_run_status(run_id)
    if status is None:
        return None
    series = {name: store.get_run_metrics(run_id, name) or [] for name in METRIC_NAMES}
    return LiveRunSimulator(
        run_id,
        status,
        scheduler,
        send,
        close,
        initial_values=initial_values_from_series(series),
        **options,
    )
