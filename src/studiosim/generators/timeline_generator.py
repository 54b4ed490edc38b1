"""Debugging timeline for a run: commit, checkpoints, the incident and its aftermath."""

import math
from datetime import datetime

from ..models import Severity, TimelineEvent, TimelineEventType
from ..statistics.prng import Rng, chance, pick, random_int
from ..timeutil import add_minutes, to_iso

BRANCHES = ("main", "train/sweep", "hotfix/metrics", "exp/augments")
CHECKPOINT_INTERVALS = (10, 12, 15)
MITIGATION_NOTE_PROBABILITY = 0.45
LINKED_DEPLOY_PROBABILITY = 0.35


def generate_timeline(
    rng: Rng,
    start: datetime,
    duration_minutes: float,
    incident_at_minute: float,
    commit_hash: str,
) -> list[TimelineEvent]:
    """Return the run's events sorted ascending by timestamp."""
    events: list[TimelineEvent] = [
        TimelineEvent(
            ts=to_iso(start),
            type=TimelineEventType.COMMIT,
            title=f"code: {commit_hash[:12]}",
            severity=Severity.INFO,
            metadata={"branch": pick(rng, BRANCHES)},
        )
    ]

    every = pick(rng, CHECKPOINT_INTERVALS)
    minute = every
    while minute < duration_minutes:
        events.append(
            TimelineEvent(
                ts=to_iso(add_minutes(start, minute)),
                type=TimelineEventType.CHECKPOINT,
                title=f"checkpoint @ {minute}m",
                severity=Severity.INFO,
                metadata={"step": minute * 120},
            )
        )
        minute += every

    events.append(
        TimelineEvent(
            ts=to_iso(add_minutes(start, incident_at_minute)),
            type=TimelineEventType.ALERT,
            title="loss spike + GPU underutilization",
            severity=Severity.CRITICAL if chance(rng, 0.5) else Severity.WARNING,
            metadata={"detector": "spike:v2", "windowMin": 5},
        )
    )

    if chance(rng, MITIGATION_NOTE_PROBABILITY):
        events.append(
            TimelineEvent(
                ts=to_iso(add_minutes(start, incident_at_minute + random_int(rng, 2, 10))),
                type=TimelineEventType.NOTE,
                title="auto-mitigation: reduced batch size",
                severity=Severity.INFO,
                metadata={"action": "batch_size", "delta": "-50%"},
            )
        )

    if chance(rng, LINKED_DEPLOY_PROBABILITY):
        deploy_at = random_int(
            rng, math.floor(duration_minutes * 0.15), math.floor(duration_minutes * 0.65)
        )
        events.append(
            TimelineEvent(
                ts=to_iso(add_minutes(start, deploy_at)),
                type=TimelineEventType.DEPLOY,
                title="linked deployment observed",
                severity=Severity.INFO,
                metadata={"stage": pick(rng, ("canary", "ramp", "prod"))},
            )
        )

    events.append(
        TimelineEvent(
            ts=to_iso(add_minutes(start, incident_at_minute - 1)),
            type=TimelineEventType.LOG_SPIKE,
            title="log volume spike",
            severity=Severity.WARNING,
            metadata={"linesPerMin": random_int(rng, 300, 1200)},
        )
    )

    events.sort(key=lambda event: event.ts)
    return events
