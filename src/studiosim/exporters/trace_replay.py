"""
Replay synthetic inference traces as OpenTelemetry spans.

Each trace becomes one root span named after its request, with one child per
pipeline step. Span timestamps are the synthetic ones, not wall-clock, so the
exported file lines up with what the dashboard shows.
"""

import logging
from collections.abc import Iterable

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor, SpanExporter
from opentelemetry.trace import SpanKind, Status, StatusCode, set_span_in_context

from ..config import resource_attributes
from ..models import Trace, TraceStep, TraceStepStatus
from ..timeutil import parse_iso

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "studiosim.traces"

_NS_PER_MS = 1_000_000


def iso_to_ns(value: str) -> int:
    return int(parse_iso(value).timestamp() * 1000) * _NS_PER_MS


def step_attributes(trace: Trace, step: TraceStep) -> dict[str, str | int]:
    return {
        "studiosim.step.id": step.id,
        "studiosim.step.kind": step.kind.value,
        "studiosim.step.duration_ms": step.duration_ms,
        "studiosim.request_id": trace.request_id,
    }


class TraceReplayer:
    """Owns a TracerProvider wired to one exporter."""

    def __init__(self, exporter: SpanExporter, seed: str):
        self.provider = TracerProvider(resource=Resource.create(resource_attributes(seed)))
        self.provider.add_span_processor(SimpleSpanProcessor(exporter))
        self.tracer = self.provider.get_tracer(INSTRUMENTATION_NAME)
        self.spans_emitted = 0

    def replay(self, trace: Trace) -> None:
        start_ns = iso_to_ns(trace.created_at)
        end_ns = start_ns + sum(step.duration_ms for step in trace.steps) * _NS_PER_MS
        failed = next((s for s in trace.steps if s.status == TraceStepStatus.ERROR), None)

        root = self.tracer.start_span(
            f"inference {trace.request_id}",
            kind=SpanKind.SERVER,
            start_time=start_ns,
            attributes={
                "studiosim.trace.id": trace.id,
                "studiosim.request_id": trace.request_id,
                "studiosim.model_version_id": trace.model_version_id,
                "studiosim.tags": list(trace.tags),
            },
        )
        parent_ctx = set_span_in_context(root)

        for step in trace.steps:
            step_start = iso_to_ns(step.started_at)
            span = self.tracer.start_span(
                step.title,
                context=parent_ctx,
                kind=SpanKind.INTERNAL,
                start_time=step_start,
                attributes=step_attributes(trace, step),
            )
            if step.status == TraceStepStatus.ERROR:
                span.set_status(Status(StatusCode.ERROR, step.error_message))
            else:
                span.set_status(Status(StatusCode.OK))
            span.end(end_time=step_start + step.duration_ms * _NS_PER_MS)
            self.spans_emitted += 1

        if failed is not None:
            root.set_status(Status(StatusCode.ERROR, f"{failed.title} failed"))
        else:
            root.set_status(Status(StatusCode.OK))
        root.end(end_time=end_ns)
        self.spans_emitted += 1

    def replay_all(self, traces: Iterable[Trace]) -> int:
        """Replay every trace, flush, and return how many traces were sent."""
        count = 0
        for trace in traces:
            self.replay(trace)
            count += 1
        self.provider.force_flush()
        logger.info("Replayed %d traces as %d spans", count, self.spans_emitted)
        return count

    def shutdown(self) -> None:
        self.provider.shutdown()
