"""
Command-line interface for the studio simulator.

Provides commands for:
- Inspecting the generated dataset (summary, logs, metrics)
- Replaying inference traces as OpenTelemetry spans
- Dumping the dataset to JSONL
- Driving a live run stream against a virtual clock
- Serving the HTTP + WebSocket API
"""

import argparse
import logging
import random
import sys
from datetime import timedelta

from .client import RunStreamClient, StreamStatus
from .config import Settings, get_settings
from .exporters import (
    FileSpanExporter,
    TraceReplayer,
    create_console_exporter,
    create_otlp_trace_exporter,
    dump_dataset,
    traces_endpoint,
)
from .generators import METRIC_NAMES
from .store import DEFAULT_LOG_LIMIT, QueryStore
from .streaming.clock import ManualScheduler
from .streaming.loopback import LoopbackTransport
from .timeutil import utc_now

_STREAM_STEP_SECONDS = 0.25
_BARS = "▁▂▃▄▅▆▇█"


def text_sparkline(values: list[float], width: int = 40) -> str:
    """Unicode bar chart of the last ``width`` values, scaled to their own range."""
    tail = values[-width:]
    if not tail:
        return ""
    low, high = min(tail), max(tail)
    span = high - low or 1.0
    return "".join(_BARS[int((v - low) / span * (len(_BARS) - 1))] for v in tail)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="studiosim",
        description="Deterministic synthetic telemetry for an ML platform studio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Entity counts and the newest experiments for a seed
  studiosim --seed demo summary

  # Newest 50 log lines of a run, then the page before them
  studiosim logs run_ab12cd34 --limit 50
  studiosim logs run_ab12cd34 --limit 50 --cursor 1450

  # Replay traces to a local collector
  studiosim export-traces --exporter otlp --endpoint http://localhost:4318

  # Watch 90 virtual seconds of a live stream
  studiosim stream run_ab12cd34 --seconds 90
        """,
    )
    parser.add_argument(
        "--seed",
        type=str,
        default=None,
        help="Dataset seed (default: STUDIOSIM_SEED or ai-infra-studio)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("summary", help="Show entity counts and recent experiments")

    logs_parser = subparsers.add_parser("logs", help="Page through a run's logs, newest first")
    logs_parser.add_argument("run_id", type=str)
    logs_parser.add_argument("--cursor", type=str, default=None, help="Cursor from a previous page")
    logs_parser.add_argument("--limit", type=int, default=DEFAULT_LOG_LIMIT, help="Lines per page")

    metrics_parser = subparsers.add_parser("metrics", help="Print one metric series of a run")
    metrics_parser.add_argument("run_id", type=str)
    metrics_parser.add_argument("--name", type=str, required=True, choices=METRIC_NAMES)
    metrics_parser.add_argument("--from", dest="from_ts", type=str, default=None)
    metrics_parser.add_argument("--to", dest="to_ts", type=str, default=None)

    export_parser = subparsers.add_parser(
        "export-traces", help="Replay inference traces as OpenTelemetry spans"
    )
    export_parser.add_argument(
        "--exporter",
        choices=("file", "console", "otlp"),
        default="file",
        help="Where spans go (default: file)",
    )
    export_parser.add_argument(
        "--output-file",
        type=str,
        default="traces.jsonl",
        help="JSONL path for --exporter file (default: traces.jsonl)",
    )
    export_parser.add_argument(
        "--endpoint",
        type=str,
        default=None,
        help="OTLP endpoint for --exporter otlp (default: OTEL_EXPORTER_OTLP_ENDPOINT or http://localhost:4318)",
    )
    export_parser.add_argument(
        "--protocol",
        choices=("http", "grpc"),
        default=None,
        help="OTLP protocol (default: OTEL_EXPORTER_OTLP_PROTOCOL or http)",
    )
    export_parser.add_argument("--verbose", action="store_true", help="Full JSON on the console")

    dump_parser = subparsers.add_parser("dump", help="Write the dataset as JSONL files")
    dump_parser.add_argument("out_dir", type=str)

    stream_parser = subparsers.add_parser(
        "stream", help="Follow a run's live stream on a virtual clock"
    )
    stream_parser.add_argument("run_id", type=str)
    stream_parser.add_argument(
        "--seconds", type=float, default=60.0, help="Virtual seconds to simulate (default: 60)"
    )
    stream_parser.add_argument(
        "--refuse",
        type=int,
        default=0,
        help="Refuse this many connects first, to watch the backoff",
    )
    stream_parser.add_argument("--quiet", action="store_true", help="Only print the summary")

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP and WebSocket API")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    return parser


def cmd_summary(store: QueryStore, args: argparse.Namespace):
    """Print entity counts and the newest experiments."""
    stats = store.stats()
    print(f"Seed: {store.seed}")
    print(f"   Experiments: {stats.experiments}")
    print(f"   Runs: {stats.runs}")
    print(f"   Log lines: {stats.log_lines}")
    print(f"   Metric points: {stats.metric_points}")
    print(f"   Timeline events: {stats.timeline_events}")
    print(f"   Models: {stats.models} ({stats.model_versions} versions)")
    print(f"   Deployments: {stats.deployments}")
    print(f"   Traces: {stats.traces}")
    print(f"   Authoring templates: {stats.templates} ({stats.config_versions} config versions)")
    print()

    dashboard = store.get_dashboard()
    for name, points in dashboard.sparklines.items():
        print(f"{name:<11} {text_sparkline([p.value for p in points])}")
    print()

    print("Experiments:")
    for experiment in store.list_experiments():
        runs = store.list_runs(experiment.id) or []
        print(f"  - {experiment.id}  {experiment.name}  ({len(runs)} runs)")
        for run in runs[:3]:
            print(f"      {run.id}  {run.status.value:<9} {run.started_at}")


def cmd_logs(store: QueryStore, args: argparse.Namespace):
    page = store.get_run_logs(args.run_id, cursor=args.cursor, limit=args.limit)
    if page is None:
        print(f"Run not found: {args.run_id}")
        sys.exit(1)
    for line in page.items:
        print(f"{line.ts} {line.level.value:<5} [{line.source}] {line.message}")
    print()
    if page.next_cursor is not None:
        print(f"Next page: --cursor {page.next_cursor}")
    else:
        print("Start of log reached")


def cmd_metrics(store: QueryStore, args: argparse.Namespace):
    points = store.get_run_metrics(args.run_id, args.name, args.from_ts, args.to_ts)
    if points is None:
        print(f"Run not found: {args.run_id}")
        sys.exit(1)
    for point in points:
        print(f"{point.ts} {point.value:.4f}")
    print()
    print(f"{len(points)} points  {text_sparkline([p.value for p in points])}")


def cmd_export_traces(store: QueryStore, settings: Settings, args: argparse.Namespace):
    print(f"Replaying traces for seed {store.seed}")
    if args.exporter == "file":
        exporter = FileSpanExporter(args.output_file, append=False)
        print(f"   Output: {args.output_file}")
    elif args.exporter == "otlp":
        protocol = args.protocol or settings.otlp_protocol
        endpoint = args.endpoint or settings.otlp_endpoint
        exporter = create_otlp_trace_exporter(settings, endpoint, protocol)
        print(f"   Output: OTLP {traces_endpoint(endpoint, protocol)} ({protocol})")
    else:
        exporter = create_console_exporter(verbose=args.verbose)
        print("   Output: console")
    print()

    replayer = TraceReplayer(exporter, store.seed)
    try:
        count = replayer.replay_all(store.list_traces())
    finally:
        replayer.shutdown()
    print()
    print(f"Replayed {count} traces ({replayer.spans_emitted} spans)")


def cmd_dump(store: QueryStore, args: argparse.Namespace):
    counts = dump_dataset(store, args.out_dir)
    print(f"Wrote dataset for seed {store.seed} to {args.out_dir}")
    for name, count in counts.items():
        print(f"   {name}.jsonl: {count}")


def cmd_stream(store: QueryStore, settings: Settings, args: argparse.Namespace):
    """Run a loopback stream on a virtual clock and print what the client sees."""
    if store.get_run_status(args.run_id) is None:
        print(f"Run not found: {args.run_id}")
        sys.exit(1)

    scheduler = ManualScheduler()
    started = utc_now()
    rand = random.Random()
    transport = LoopbackTransport(
        store,
        scheduler,
        rand=rand,
        clock=lambda: started + timedelta(seconds=scheduler.time()),
        disconnect_window_ms=settings.disconnect_window_ms if settings.ws_chaos_disconnect else None,
        refuse_connections=args.refuse,
    )

    def on_status(status: StreamStatus):
        print(f"[{scheduler.time():7.2f}s] status: {status.value}")

    client = RunStreamClient(args.run_id, transport, scheduler, rand=rand, on_status=on_status)
    seen_logs = 0
    client.subscribe()
    try:
        while scheduler.time() < args.seconds:
            scheduler.advance(_STREAM_STEP_SECONDS)
            if args.quiet:
                continue
            lines = client.buffers.logs.items
            for line in lines[seen_logs:]:
                print(f"[{scheduler.time():7.2f}s] {line.level.value:<5} {line.message}")
            seen_logs = len(lines)
    finally:
        client.dispose()

    buffers = client.buffers
    print()
    print(f"Streamed {args.seconds:.0f}s of run {args.run_id}")
    print(f"   Connects: {client.connects}")
    print(f"   Log lines: {len(buffers.logs)}")
    print(f"   Timeline events: {len(buffers.timeline)}")
    for name, series in buffers.metrics.items():
        values = [p.value for p in series.items]
        print(f"   {name:<11} {len(values):4d} {text_sparkline(values)}")
    print(f"   Duplicates dropped: {buffers.duplicates}")
    print(f"   Malformed frames: {client.malformed_frames}")


def cmd_serve(store: QueryStore, settings: Settings, args: argparse.Namespace):
    import uvicorn

    from .api import create_app

    host = args.host or settings.host
    port = args.port or settings.port
    print(f"Serving seed {store.seed} on http://{host}:{port}")
    uvicorn.run(create_app(store=store, settings=settings), host=host, port=port)


def main():
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = QueryStore(seed=args.seed or settings.seed)

    try:
        if args.command == "summary":
            cmd_summary(store, args)
        elif args.command == "logs":
            cmd_logs(store, args)
        elif args.command == "metrics":
            cmd_metrics(store, args)
        elif args.command == "export-traces":
            cmd_export_traces(store, settings, args)
        elif args.command == "dump":
            cmd_dump(store, args)
        elif args.command == "stream":
            cmd_stream(store, settings, args)
        elif args.command == "serve":
            cmd_serve(store, settings, args)
        else:
            parser.print_help()
            sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted")


if __name__ == "__main__":
    main()
