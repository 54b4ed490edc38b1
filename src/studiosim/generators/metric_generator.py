"""
Synthesise per-run training metric series around an incident window.

Each series is sampled on a fixed step (15 s by default) from the run start to
the end of its generated duration. ``t`` is fractional progress through the
run. Near ``incident_at_minute`` every series is biased the way a real
training anomaly looks: loss jumps, accuracy dips, throughput and GPU
utilisation drop.

Draw budget per series is fixed so incident placement never shifts the stream:
    loss:       2 shape draws, then 2 per point (penalty factor, noise)
    accuracy:   2 shape draws, then 2 per point (penalty, noise)
    throughput: 1 shape draw,  then 2 per point (drop factor, noise)
    gpu_util:   3 per point (level, dip, noise)
    other:      1 per point
"""

import math
from datetime import datetime

from ..models import MetricPoint
from ..statistics.prng import Rng, clamp, create_rng, random_float
from ..timeutil import add_minutes, to_iso

METRIC_NAMES = ("loss", "accuracy", "throughput", "gpu_util")
DEFAULT_INTERVAL_SECONDS = 15

# Minutes either side of the incident in which the penalty applies.
INCIDENT_WINDOWS = {
    "loss": 3.0,
    "accuracy": 2.0,
    "throughput": 2.0,
    "gpu_util": 2.0,
}

METRIC_BOUNDS = {
    "loss": (0.05, 10.0),
    "accuracy": (0.0, 1.0),
    "throughput": (50.0, 1200.0),
    "gpu_util": (0.0, 100.0),
}


def _near_incident(name: str, minutes: float, incident_at_minute: float) -> bool:
    return abs(minutes - incident_at_minute) < INCIDENT_WINDOWS.get(name, 0.0)


def generate_metric_series(
    rng: Rng,
    name: str,
    start: datetime,
    duration_minutes: float,
    incident_at_minute: float,
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
) -> list[MetricPoint]:
    """Return one series, ascending by timestamp, values rounded to 4 places."""
    total_seconds = duration_minutes * 60
    steps = max(1, math.floor(total_seconds / interval_seconds))

    if name == "loss":
        start_loss = random_float(rng, 2.0, 3.2)
        floor_loss = random_float(rng, 0.18, 0.6)
    elif name == "accuracy":
        start_acc = random_float(rng, 0.05, 0.2)
        ceiling_acc = random_float(rng, 0.78, 0.93)
    elif name == "throughput":
        base_tp = random_float(rng, 180, 520)

    points: list[MetricPoint] = []
    for i in range(steps + 1):
        t = i / steps
        minutes = (i * interval_seconds) / 60
        near = _near_incident(name, minutes, incident_at_minute)

        if name == "loss":
            value = floor_loss + (start_loss - floor_loss) * math.exp(-4.2 * t)
            penalty = random_float(rng, 1.08, 1.25)
            if near:
                value *= penalty
            value += random_float(rng, -0.03, 0.03)
        elif name == "accuracy":
            value = start_acc + (ceiling_acc - start_acc) * (1 - math.exp(-3.6 * t))
            penalty = random_float(rng, 0.03, 0.08)
            if near:
                value -= penalty
            value += random_float(rng, -0.01, 0.01)
        elif name == "throughput":
            value = base_tp + 30 * math.sin(t * math.pi * 6)
            drop = random_float(rng, 0.65, 0.82)
            if near:
                value *= drop
            value += random_float(rng, -18, 18)
        elif name == "gpu_util":
            value = random_float(rng, 72, 96)
            dip = random_float(rng, 15, 30)
            if near:
                value -= dip
            value += random_float(rng, -3, 3)
        else:
            value = random_float(rng, 0, 1)

        low, high = METRIC_BOUNDS.get(name, (0.0, 1.0))
        value = clamp(value, low, high)
        points.append(
            MetricPoint(ts=to_iso(add_minutes(start, minutes)), name=name, value=round(value, 4))
        )

    return points


def make_sparkline(name: str, minutes: int, seed: str, now: datetime) -> list[MetricPoint]:
    """
    Short per-minute series for dashboard tiles.

    Seeded by the minute bucket of ``now`` so repeated calls within the same
    minute agree.
    """
    bucket = math.floor(now.timestamp() / 60)
    rng = create_rng(f"{seed}:{name}:{minutes}:{bucket}")
    points: list[MetricPoint] = []
    for i in range(minutes - 1, -1, -1):
        ts = to_iso(add_minutes(now, -i))
        t = (minutes - i) / minutes
        if name == "gpu_util":
            value = 82 + 6 * math.sin(t * math.pi * 2) + (rng.next() - 0.5) * 6
            value = clamp(value, 0, 100)
        elif name == "throughput":
            value = 410 + 60 * math.sin(t * math.pi * 3) + (rng.next() - 0.5) * 40
            value = max(50.0, value)
        else:
            value = (rng.next() - 0.5) * 2
        points.append(MetricPoint(ts=ts, name=name, value=round(value, 2)))
    return points
