"""Trace replay exporters and dataset dumps."""

from .console_exporter import create_console_exporter
from .file_exporter import FileSpanExporter, dump_dataset, span_to_dict
from .otlp_exporter import create_otlp_trace_exporter, traces_endpoint
from .trace_replay import TraceReplayer, iso_to_ns

__all__ = [
    "TraceReplayer",
    "iso_to_ns",
    "FileSpanExporter",
    "span_to_dict",
    "dump_dataset",
    "create_console_exporter",
    "create_otlp_trace_exporter",
    "traces_endpoint",
]
