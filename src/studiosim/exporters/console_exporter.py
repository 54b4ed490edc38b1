"""Console span exporter for eyeballing a replay."""

import sys
from typing import TextIO

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import ConsoleSpanExporter


def _one_line(span: ReadableSpan) -> str:
    duration_ms = ((span.end_time or 0) - (span.start_time or 0)) / 1_000_000
    indent = "  " if span.parent else ""
    return f"{indent}{span.name} [{span.status.status_code.name}] {duration_ms:.0f}ms\n"


def create_console_exporter(verbose: bool = False, out: TextIO = sys.stdout) -> ConsoleSpanExporter:
    """Full JSON per span when verbose, otherwise one short line each."""
    if verbose:
        return ConsoleSpanExporter(out=out)
    return ConsoleSpanExporter(out=out, formatter=_one_line)
