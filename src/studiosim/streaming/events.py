"""
Live run stream frames.

One JSON object per frame, tagged by ``type``:

    {"type": "status",         "runId": ..., "status": ...}
    {"type": "log_line",       "runId": ..., "line":  {ts, level, source, message}}
    {"type": "metric_point",   "runId": ..., "point": {ts, name, value}}
    {"type": "timeline_event", "runId": ..., "event": {ts, type, title, severity?, metadata?}}
"""

import json
from dataclasses import dataclass
from typing import Any, TypeAlias

from ..models import (
    LogLevel,
    LogLine,
    MetricPoint,
    RunStatus,
    Severity,
    TimelineEvent,
    TimelineEventType,
)

NORMAL_CLOSURE = 1000
SYNTHETIC_DISCONNECT_CODE = 1012
SYNTHETIC_DISCONNECT_REASON = "Synthetic disconnect (demo)"


class FrameError(ValueError):
    """A stream frame is not valid JSON or does not match any frame shape."""


@dataclass(frozen=True)
class StatusFrame:
    run_id: str
    status: RunStatus


@dataclass(frozen=True)
class LogLineFrame:
    run_id: str
    line: LogLine


@dataclass(frozen=True)
class MetricPointFrame:
    run_id: str
    point: MetricPoint


@dataclass(frozen=True)
class TimelineEventFrame:
    run_id: str
    event: TimelineEvent


RunEvent: TypeAlias = StatusFrame | LogLineFrame | MetricPointFrame | TimelineEventFrame


def encode_event(event: RunEvent) -> dict[str, Any]:
    match event:
        case StatusFrame(run_id=run_id, status=status):
            return {"type": "status", "runId": run_id, "status": status.value}
        case LogLineFrame(run_id=run_id, line=line):
            return {"type": "log_line", "runId": run_id, "line": line.to_dict()}
        case MetricPointFrame(run_id=run_id, point=point):
            return {"type": "metric_point", "runId": run_id, "point": point.to_dict()}
        case TimelineEventFrame(run_id=run_id, event=timeline_event):
            return {"type": "timeline_event", "runId": run_id, "event": timeline_event.to_dict()}
    raise TypeError(f"Not a run event: {event!r}")


def _log_line(raw: Any) -> LogLine:
    return LogLine(
        ts=str(raw["ts"]),
        level=LogLevel(raw["level"]),
        source=str(raw["source"]),
        message=str(raw["message"]),
    )


def _metric_point(raw: Any) -> MetricPoint:
    return MetricPoint(ts=str(raw["ts"]), name=str(raw["name"]), value=float(raw["value"]))


def _timeline_event(raw: Any) -> TimelineEvent:
    severity = raw.get("severity")
    metadata = raw.get("metadata")
    return TimelineEvent(
        ts=str(raw["ts"]),
        type=TimelineEventType(raw["type"]),
        title=str(raw["title"]),
        severity=Severity(severity) if severity is not None else None,
        metadata=dict(metadata) if isinstance(metadata, dict) else None,
    )


def decode_event(payload: Any) -> RunEvent:
    """Rebuild a frame from its decoded JSON object. Raises FrameError on anything else."""
    if not isinstance(payload, dict) or not isinstance(payload.get("runId"), str):
        raise FrameError("frame must be an object with a string runId")
    run_id = payload["runId"]
    try:
        match payload.get("type"):
            case "status":
                return StatusFrame(run_id, RunStatus(payload["status"]))
            case "log_line":
                return LogLineFrame(run_id, _log_line(payload["line"]))
            case "metric_point":
                return MetricPointFrame(run_id, _metric_point(payload["point"]))
            case "timeline_event":
                return TimelineEventFrame(run_id, _timeline_event(payload["event"]))
            case other:
                raise FrameError(f"unknown frame type: {other!r}")
    except FrameError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise FrameError(f"malformed {payload.get('type')} frame: {e}") from e


def dumps_event(event: RunEvent) -> str:
    return json.dumps(encode_event(event), separators=(",", ":"))


def loads_event(text: str) -> RunEvent:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise FrameError(f"frame is not JSON: {e}") from e
    return decode_event(payload)
