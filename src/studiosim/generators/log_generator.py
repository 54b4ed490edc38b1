"""
Synthesise training log lines correlated with a run's incident window.

Lines are spread evenly over the run with +/-35% jitter, then sorted. Inside
+/-2.5 minutes of the incident the level mix shifts toward WARN/ERROR, and a
share of those WARN/ERROR lines get a "gradient overflow" follow-up.

Message bodies come from per-level templates. Placeholders and their ranges
are stable so that fingerprints (digits -> ``#``, hex -> ``<hash>``) group the
same template together:

    #{n}     int 1..99          #{b}    int 2..24
    #{mb}    int 12..980        #{tp}   int 80..1200
    #{acc}   float 0.55..0.92 (3 places)
    #{loss}  float 0.12..2.9 (4 places)
    #{lr}    float 0.00001..0.0015 (6 places)
    #{step}  line index, zero padded to 6
    #{commit} first 12 chars of the run's commit hash
"""

import re
from datetime import datetime

from ..models import LogLevel, LogLine
from ..statistics.prng import Rng, chance, pick, random_float, random_int
from ..timeutil import add_ms, to_iso

LOG_SOURCES = ("trainer", "dataloader", "eval", "checkpoint", "system")
INCIDENT_LOG_WINDOW_MINUTES = 2.5
FOLLOW_UP_PROBABILITY = 0.08
GRADIENT_OVERFLOW_MESSAGE = (
    "Gradient overflow detected; scaling down loss scale and retrying step."
)

LOG_TEMPLATES: dict[LogLevel, tuple[str, ...]] = {
    LogLevel.DEBUG: (
        "prefetch queue depth=#{n} batch=#{b}",
        "tokenizer cache hit rate=#{n}%",
        "scheduler tick: pending=#{n} running=#{b}",
        "cuda kernel launch latency=#{n}us",
    ),
    LogLevel.INFO: (
        "step=#{step} loss=#{loss} acc=#{acc} lr=#{lr}",
        "checkpoint saved: ckpt_#{n}.pt (#{mb}MB)",
        "eval: split=dev p95=#{n}ms acc=#{acc}",
        "data: shard=#{n}/#{b} throughput=#{tp}/s",
        "git: commit=#{commit}",
    ),
    LogLevel.WARN: (
        "dataloader stall detected: wait=#{n}ms",
        "gpu throttling: temp=#{n}C",
        "retrying request to feature store (attempt #{b})",
        "skipping batch: NaNs detected in input tensor",
    ),
    LogLevel.ERROR: (
        "CUDA out of memory: tried to allocate #{mb}MB",
        "checkpoint write failed: EIO (disk pressure)",
        "evaluation failed: invalid label index #{n}",
        "fatal: unrecoverable gradient explosion at step #{step}",
    ),
}

_LEVEL_WEIGHTS = {
    LogLevel.ERROR: 4,
    LogLevel.WARN: 3,
    LogLevel.INFO: 2,
    LogLevel.DEBUG: 1,
}

_HEX_LITERAL = re.compile(r"\b0x[0-9a-fA-F]+\b")
_HASH_WORD = re.compile(r"\b[a-f0-9]{7,40}\b")
_DIGITS = re.compile(r"[0-9]+")
_HEX_SENTINEL = "\x00hexlit\x00"


def level_weight(level: LogLevel) -> int:
    return _LEVEL_WEIGHTS[level]


def fingerprint_log_message(message: str) -> str:
    """Normalise a message so structurally identical lines compare equal."""
    out = _HEX_LITERAL.sub(_HEX_SENTINEL, message)
    out = _HASH_WORD.sub("<hash>", out)
    out = _DIGITS.sub("#", out)
    return out.replace(_HEX_SENTINEL, "0x#").strip()


def pick_log_level(rng: Rng, in_incident_window: bool) -> LogLevel:
    """One draw, cumulative cut points: in-window ERROR < .06 <= WARN < .22, else .01 / .07."""
    x = rng.next()
    if in_incident_window:
        if x < 0.06:
            return LogLevel.ERROR
        if x < 0.22:
            return LogLevel.WARN
        if x < 0.78:
            return LogLevel.INFO
        return LogLevel.DEBUG
    if x < 0.01:
        return LogLevel.ERROR
    if x < 0.07:
        return LogLevel.WARN
    if x < 0.7:
        return LogLevel.INFO
    return LogLevel.DEBUG


def format_log_message(
    rng: Rng,
    level: LogLevel,
    source: str,
    commit_hash: str,
    step: int,
) -> str:
    """Fill a random template for level. Always 8 draws (template + 7 fillers)."""
    template = pick(rng, LOG_TEMPLATES[level])
    replacements = {
        "#{n}": str(random_int(rng, 1, 99)),
        "#{b}": str(random_int(rng, 2, 24)),
        "#{mb}": str(random_int(rng, 12, 980)),
        "#{tp}": str(random_int(rng, 80, 1200)),
        "#{acc}": f"{random_float(rng, 0.55, 0.92):.3f}",
        "#{loss}": f"{random_float(rng, 0.12, 2.9):.4f}",
        "#{lr}": f"{random_float(rng, 0.00001, 0.0015):.6f}",
        "#{step}": f"{step:06d}",
        "#{commit}": commit_hash[:12],
    }
    message = template
    for placeholder, value in replacements.items():
        message = message.replace(placeholder, value)
    return f"[{source}] {message}"


def generate_logs(
    rng: Rng,
    start: datetime,
    duration_minutes: float,
    incident_at_minute: float,
    commit_hash: str,
) -> list[LogLine]:
    """Return 1600-3200 lines (plus follow-ups), ascending by timestamp."""
    total_ms = duration_minutes * 60_000
    line_count = random_int(rng, 1600, 3200)
    base_interval_ms = total_ms / line_count

    lines: list[LogLine] = []
    for i in range(line_count):
        jitter = random_float(rng, -0.35, 0.35) * base_interval_ms
        offset_ms = i * base_interval_ms + jitter
        at = add_ms(start, offset_ms)
        minutes = offset_ms / 60_000

        in_window = abs(minutes - incident_at_minute) < INCIDENT_LOG_WINDOW_MINUTES
        level = pick_log_level(rng, in_window)
        source = pick(rng, LOG_SOURCES)
        message = format_log_message(rng, level, source, commit_hash, i)
        lines.append(LogLine(ts=to_iso(at), level=level, source=source, message=message))

        if (
            in_window
            and level in (LogLevel.WARN, LogLevel.ERROR)
            and chance(rng, FOLLOW_UP_PROBABILITY)
        ):
            follow_at = add_ms(at, random_int(rng, 20, 1800))
            lines.append(
                LogLine(
                    ts=to_iso(follow_at),
                    level=pick(rng, (LogLevel.WARN, LogLevel.ERROR)),
                    source="trainer",
                    message=GRADIENT_OVERFLOW_MESSAGE,
                )
            )

    lines.sort(key=lambda line: line.ts)
    return lines
