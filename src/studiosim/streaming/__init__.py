"""Live run streaming: event frames, schedulers and the per-subscription simulator."""

from .clock import ManualScheduler, Scheduler, TimerHandle
from .events import (
    NORMAL_CLOSURE,
    SYNTHETIC_DISCONNECT_CODE,
    SYNTHETIC_DISCONNECT_REASON,
    FrameError,
    LogLineFrame,
    MetricPointFrame,
    RunEvent,
    StatusFrame,
    TimelineEventFrame,
    decode_event,
    dumps_event,
    encode_event,
    loads_event,
)
from .simulator import LiveRunSimulator, simulator_for_run

__all__ = [
    "ManualScheduler",
    "Scheduler",
    "TimerHandle",
    "RunEvent",
    "StatusFrame",
    "LogLineFrame",
    "MetricPointFrame",
    "TimelineEventFrame",
    "FrameError",
    "encode_event",
    "decode_event",
    "dumps_event",
    "loads_event",
    "NORMAL_CLOSURE",
    "SYNTHETIC_DISCONNECT_CODE",
    "SYNTHETIC_DISCONNECT_REASON",
    "LiveRunSimulator",
    "simulator_for_run",
]
