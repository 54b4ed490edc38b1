"""
Synthetic inference request traces.

Each trace is a fixed five-step pipeline:

  Request (fetch)
  Feature fetch (fetch)        <- may fail
  Model inference (inference)  <- may fail
  Post-processing (transform)  <- may fail
  Response (response)

At most one step is marked error. Steps after a failure still run, and each
step starts when the previous one ends.
"""

from dataclasses import dataclass
from datetime import datetime

from ..models import Trace, TraceStep, TraceStepKind, TraceStepStatus
from ..statistics.prng import Rng, chance, random_int, unique_sample
from ..timeutil import add_hours, add_ms, parse_iso, to_iso
from .ids import IdFactory, hex_token

TRACE_COUNT = 18
TRACE_ERROR_PROBABILITY = 0.18
TRACE_TAGS = ("shadow", "edge-case", "baseline", "canary", "perf")
NO_ERROR = -1


@dataclass(frozen=True)
class StepTemplate:
    title: str
    kind: TraceStepKind
    duration_ms: tuple[int, int]
    input_preview: str
    output_preview: str
    error_message: str | None = None


STEP_TEMPLATES = (
    StepTemplate(
        "Request",
        TraceStepKind.FETCH,
        (2, 9),
        '{"query":"reset password","locale":"en-US"}',
        '{"features":["q_len","has_verb","lang"]}',
    ),
    StepTemplate(
        "Feature fetch",
        TraceStepKind.FETCH,
        (6, 28),
        '{"userId":"u_49201","plan":"pro"}',
        '{"sparse":[...],"dense":[...]}',
        "Timeout contacting feature store shard 03",
    ),
    StepTemplate(
        "Model inference",
        TraceStepKind.INFERENCE,
        (18, 84),
        '{"input":"<vector:768>"}',
        '{"label":"account_access","p":0.87}',
        "Tensor shape mismatch in attention block (expected 768)",
    ),
    StepTemplate(
        "Post-processing",
        TraceStepKind.TRANSFORM,
        (4, 20),
        '{"label":"account_access","p":0.87}',
        '{"decision":"route_to_flow","confidence":"high"}',
        'Rule engine failed to parse expression: "p >> 0.8"',
    ),
    StepTemplate(
        "Response",
        TraceStepKind.RESPONSE,
        (1, 6),
        '{"decision":"route_to_flow","confidence":"high"}',
        '{"status":200,"body":"ok"}',
    ),
)


def generate_trace_steps(rng: Rng, created_at: str, error_index: int) -> list[TraceStep]:
    """Two draws per step: duration, then the step id."""
    started = parse_iso(created_at)
    steps: list[TraceStep] = []
    elapsed_ms = 0
    for index, template in enumerate(STEP_TEMPLATES):
        duration_ms = random_int(rng, *template.duration_ms)
        failed = index == error_index and template.error_message is not None
        steps.append(
            TraceStep(
                id=f"step_{hex_token(rng, 1e9)}",
                title=template.title,
                kind=template.kind,
                started_at=to_iso(add_ms(started, elapsed_ms)),
                duration_ms=duration_ms,
                status=TraceStepStatus.ERROR if failed else TraceStepStatus.OK,
                input_preview=template.input_preview,
                output_preview="{}" if failed else template.output_preview,
                error_message=template.error_message if failed else None,
            )
        )
        elapsed_ms += duration_ms
    return steps


def generate_traces(
    rng: Rng,
    make_id: IdFactory,
    now: datetime,
    model_version_ids: list[str],
    count: int = TRACE_COUNT,
) -> list[Trace]:
    traces: list[Trace] = []
    for _ in range(count):
        model_version_id = rng.pick(model_version_ids)
        trace_id = make_id("trace")
        created_at = to_iso(add_hours(now, -random_int(rng, 1, 48)))
        request_id = f"req_{hex_token(rng, 1e12)}"

        error_index = random_int(rng, 1, 3) if chance(rng, TRACE_ERROR_PROBABILITY) else NO_ERROR
        steps = generate_trace_steps(rng, created_at, error_index)

        traces.append(
            Trace(
                id=trace_id,
                created_at=created_at,
                request_id=request_id,
                model_version_id=model_version_id,
                steps=steps,
                tags=unique_sample(rng, TRACE_TAGS, 1, 3),
            )
        )
    return traces
