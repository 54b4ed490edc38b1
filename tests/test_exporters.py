"""Tests for trace replay and the file, console and OTLP exporters."""

import io
import json

import pytest
from opentelemetry.sdk.trace.export import SpanExporter
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from studiosim.config import Settings
from studiosim.exporters import (
    FileSpanExporter,
    TraceReplayer,
    create_console_exporter,
    create_otlp_trace_exporter,
    dump_dataset,
    iso_to_ns,
    traces_endpoint,
)
from studiosim.models import TraceStepStatus
from studiosim.store import QueryStore


@pytest.fixture
def memory_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


def test_replay_builds_one_span_per_step(store: QueryStore, memory_exporter: InMemorySpanExporter) -> None:
    """A trace becomes a root span with every step as a direct child."""
    trace = store.list_traces()[0]
    replayer = TraceReplayer(memory_exporter, store.seed)
    replayer.replay(trace)

    spans = memory_exporter.get_finished_spans()
    assert len(spans) == len(trace.steps) + 1
    root = next(s for s in spans if s.parent is None)
    children = [s for s in spans if s.parent is not None]
    assert all(s.parent.span_id == root.context.span_id for s in children)
    assert all(s.context.trace_id == root.context.trace_id for s in children)
    assert [s.name for s in children] == [step.title for step in trace.steps]
    assert root.start_time == iso_to_ns(trace.created_at)
    assert root.resource.attributes["studiosim.seed"] == store.seed
    assert replayer.spans_emitted == len(spans)


def test_failed_step_marks_root_as_error(store: QueryStore, memory_exporter: InMemorySpanExporter) -> None:
    traces = store.list_traces()
    failed = next(
        (t for t in traces if any(s.status is TraceStepStatus.ERROR for s in t.steps)), None
    )
    if failed is None:
        pytest.skip("seed produced no failed trace")

    TraceReplayer(memory_exporter, store.seed).replay(failed)
    spans = memory_exporter.get_finished_spans()
    root = next(s for s in spans if s.parent is None)
    assert root.status.status_code is StatusCode.ERROR
    errors = [s for s in spans if s.parent is not None and s.status.status_code is StatusCode.ERROR]
    assert len(errors) == 1


def test_step_spans_keep_synthetic_durations(store: QueryStore, memory_exporter: InMemorySpanExporter) -> None:
    trace = store.list_traces()[0]
    TraceReplayer(memory_exporter, store.seed).replay(trace)
    children = [s for s in memory_exporter.get_finished_spans() if s.parent is not None]
    for span, step in zip(children, trace.steps):
        assert span.end_time - span.start_time == step.duration_ms * 1_000_000
        assert span.attributes["studiosim.step.id"] == step.id


def test_replay_all_counts_traces(store: QueryStore, memory_exporter: InMemorySpanExporter) -> None:
    traces = store.list_traces()
    replayer = TraceReplayer(memory_exporter, store.seed)
    assert replayer.replay_all(traces) == len(traces)
    replayer.shutdown()


def test_file_exporter_writes_jsonl(store: QueryStore, tmp_path) -> None:
    """Each exported span is one JSON object per line."""
    output = tmp_path / "spans" / "traces.jsonl"
    replayer = TraceReplayer(FileSpanExporter(output, append=False), store.seed)
    trace = store.list_traces()[0]
    replayer.replay_all([trace])
    replayer.shutdown()

    rows = [json.loads(line) for line in output.read_text(encoding="utf-8").splitlines()]
    assert len(rows) == len(trace.steps) + 1
    roots = [r for r in rows if r["parent_span_id"] is None]
    assert len(roots) == 1
    assert roots[0]["attributes"]["studiosim.trace.id"] == trace.id
    assert len(roots[0]["trace_id"]) == 32


def test_file_exporter_truncates_without_append(tmp_path) -> None:
    output = tmp_path / "traces.jsonl"
    output.write_text("stale\n", encoding="utf-8")
    FileSpanExporter(output, append=False)
    assert not output.exists()


def test_console_exporter_short_lines(store: QueryStore) -> None:
    out = io.StringIO()
    trace = store.list_traces()[0]
    replayer = TraceReplayer(create_console_exporter(out=out), store.seed)
    replayer.replay(trace)

    lines = out.getvalue().splitlines()
    assert len(lines) == len(trace.steps) + 1
    assert lines[-1].startswith(f"inference {trace.request_id}")
    assert all(line.startswith("  ") for line in lines[:-1])


def test_otlp_rejects_unknown_protocol() -> None:
    with pytest.raises(ValueError, match="Unknown OTLP protocol"):
        create_otlp_trace_exporter(Settings(), protocol="carrier-pigeon")


@pytest.mark.parametrize(
    "endpoint, protocol, expected",
    [
        ("http://collector:4318", "http", "http://collector:4318/v1/traces"),
        ("http://collector:4318/", "http", "http://collector:4318/v1/traces"),
        ("https://otel.example/v1/traces", "http", "https://otel.example/v1/traces"),
        ("http://collector:4317", "grpc", "collector:4317"),
        ("collector:4317/", "grpc", "collector:4317"),
    ],
)
def test_traces_endpoint(endpoint: str, protocol: str, expected: str) -> None:
    """HTTP endpoints gain the traces path once; gRPC drops the scheme."""
    assert traces_endpoint(endpoint, protocol) == expected


def test_dump_dataset_counts_match_store(store: QueryStore, tmp_path) -> None:
    """Row counts written agree with the store's own stats."""
    counts = dump_dataset(store, tmp_path)
    stats = store.stats()

    assert counts["experiments"] == stats.experiments
    assert counts["runs"] == stats.runs
    assert counts["logs"] == stats.log_lines
    assert counts["metrics"] == stats.metric_points
    assert counts["timeline"] == stats.timeline_events
    assert counts["deployments"] == stats.deployments
    assert counts["traces"] == stats.traces

    logs = (tmp_path / "logs.jsonl").read_text(encoding="utf-8").splitlines()
    first = json.loads(logs[0])
    assert set(first) == {"runId", "ts", "level", "source", "message"}


def test_otlp_http_exporter_from_settings() -> None:
    settings = Settings(otlp_endpoint="http://collector:4318", otlp_headers=(("x-tenant", "acme"),))
    exporter = create_otlp_trace_exporter(settings)
    assert isinstance(exporter, SpanExporter)
