"""Seeded generators for the synthetic dataset and per-run series."""

from .config_generator import deep_merge, make_config
from .dataset import (
    DEFAULT_SEED,
    Dataset,
    RunPlan,
    generate_dataset,
    generate_run_data,
    plan_fresh_run,
)
from .ids import IdFactory, format_commit
from .log_generator import fingerprint_log_message, generate_logs, level_weight
from .metric_generator import METRIC_NAMES, generate_metric_series, make_sparkline
from .timeline_generator import generate_timeline
from .trace_generator import generate_traces

__all__ = [
    "DEFAULT_SEED",
    "Dataset",
    "RunPlan",
    "generate_dataset",
    "generate_run_data",
    "plan_fresh_run",
    "IdFactory",
    "format_commit",
    "make_config",
    "deep_merge",
    "METRIC_NAMES",
    "generate_metric_series",
    "make_sparkline",
    "generate_logs",
    "fingerprint_log_message",
    "level_weight",
    "generate_timeline",
    "generate_traces",
]
