"""
File-based output for offline analysis.

- FileSpanExporter: OTel spans as JSON lines
- dump_dataset: the generated dataset as one JSONL file per entity kind
"""

import json
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from ..generators import METRIC_NAMES
from ..models import to_wire
from ..store import MAX_LOG_LIMIT, QueryStore

logger = logging.getLogger(__name__)


def span_to_dict(span: ReadableSpan) -> dict[str, Any]:
    return {
        "name": span.name,
        "trace_id": format(span.context.trace_id, "032x"),
        "span_id": format(span.context.span_id, "016x"),
        "parent_span_id": format(span.parent.span_id, "016x") if span.parent else None,
        "start_time": span.start_time,
        "end_time": span.end_time,
        "status": {
            "status_code": span.status.status_code.name,
            "description": span.status.description,
        },
        "attributes": dict(span.attributes) if span.attributes else {},
        "kind": span.kind.name if span.kind else "INTERNAL",
        "resource": dict(span.resource.attributes) if span.resource else {},
    }


class FileSpanExporter(SpanExporter):
    """Export spans to a JSONL file."""

    def __init__(self, output_path: str | Path, append: bool = True):
        self.output_path = Path(output_path)
        self.append = append
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

        if not append and self.output_path.exists():
            self.output_path.unlink()

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        try:
            with open(self.output_path, "a", encoding="utf-8") as f:
                for span in spans:
                    f.write(json.dumps(span_to_dict(span), default=str) + "\n")
        except OSError:
            logger.exception("Could not write spans to %s", self.output_path)
            return SpanExportResult.FAILURE
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True


def write_jsonl(path: Path, rows: Iterable[Any]) -> int:
    count = 0
    with open(path, "w", encoding="utf-8") as f:
        for row in rows:
            f.write(json.dumps(to_wire(row), separators=(",", ":")) + "\n")
            count += 1
    return count


def _all_log_lines(store: QueryStore, run_id: str) -> list[dict[str, Any]]:
    """Every line of a run, oldest first, walked page by page from the tail."""
    pages: list[list[dict[str, Any]]] = []
    cursor: str | None = None
    while True:
        page = store.get_run_logs(run_id, cursor=cursor, limit=MAX_LOG_LIMIT)
        if page is None:
            return []
        pages.append([{"runId": run_id, **line.to_dict()} for line in page.items])
        if page.next_cursor is None:
            break
        cursor = page.next_cursor
    return [line for page_items in reversed(pages) for line in page_items]


def dump_dataset(store: QueryStore, out_dir: str | Path) -> dict[str, int]:
    """
    Write the store's current contents under ``out_dir``.

    Files: experiments, runs, logs, metrics, timeline, deployments, traces
    (all ``.jsonl``). Returns the row count per file.
    """
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    experiments = store.list_experiments()
    runs = [run for exp in experiments for run in (store.list_runs(exp.id) or [])]

    logs: list[dict[str, Any]] = []
    metrics: list[dict[str, Any]] = []
    timeline: list[dict[str, Any]] = []
    for run in runs:
        logs.extend(_all_log_lines(store, run.id))
        for name in METRIC_NAMES:
            for point in store.get_run_metrics(run.id, name) or []:
                metrics.append({"runId": run.id, **point.to_dict()})
        detail = store.get_run(run.id)
        if detail is not None:
            timeline.extend({"runId": run.id, **event.to_dict()} for event in detail.timeline)

    counts = {
        "experiments": write_jsonl(out / "experiments.jsonl", experiments),
        "runs": write_jsonl(out / "runs.jsonl", runs),
        "logs": write_jsonl(out / "logs.jsonl", logs),
        "metrics": write_jsonl(out / "metrics.jsonl", metrics),
        "timeline": write_jsonl(out / "timeline.jsonl", timeline),
        "deployments": write_jsonl(out / "deployments.jsonl", store.list_deployments()),
        "traces": write_jsonl(out / "traces.jsonl", store.list_traces()),
    }
    logger.info("Dumped dataset seed=%s to %s: %s", store.seed, out, counts)
    return counts
