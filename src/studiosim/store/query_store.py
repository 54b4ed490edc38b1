"""
In-memory query store over one generated dataset.

The store owns every entity map. Reads hand out deep copies so callers can
never mutate store state by reference; the only writes are the mutation
operations below. A single re-entrant lock serialises all access, which is
enough for the threadpool the HTTP adapter runs sync handlers on.
"""

import copy
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from ..generators.dataset import (
    CLUSTERS,
    DEFAULT_SEED,
    Dataset,
    generate_artifacts,
    generate_dataset,
    generate_run_data,
    plan_fresh_run,
)
from ..generators.log_generator import fingerprint_log_message, level_weight
from ..generators.metric_generator import make_sparkline
from ..models import (
    AuthoringTemplate,
    ClusterRef,
    CodeRef,
    ComputeInfo,
    ConfigLanguage,
    ConfigVersion,
    DatasetRef,
    Deployment,
    DeploymentStage,
    DeploymentStatus,
    Experiment,
    Incident,
    LogLevel,
    LogPage,
    MetricPoint,
    Model,
    ModelVersion,
    Run,
    RunDetail,
    RunMeta,
    RunStatus,
    Severity,
    StepStatus,
    TimelineEventType,
    Trace,
    WireModel,
)
from ..schemas.authoring import AuthoringConfig
from ..statistics.prng import chance, clamp, pick
from ..timeutil import parse_iso_ms, to_iso, utc_now

logger = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 200
MAX_LOG_LIMIT = 1000
QUICK_EXPERIMENT_ID = "exp_quick"
DASHBOARD_ACTIVE_RUNS = 6
DASHBOARD_DEPLOYMENTS = 6
DASHBOARD_ALERTS = 8
SPARKLINE_MINUTES = 60

INCIDENT_TITLES = (
    "p95 latency regression",
    "error rate spike",
    "canary divergence detected",
    "CPU saturation on inference workers",
)


@dataclass
class CreatedRun(WireModel):
    run: Run
    experiment: Experiment
    config_version: ConfigVersion


@dataclass
class AlertSummary(WireModel):
    id: str
    ts: str
    title: str
    severity: Severity
    run_id: str
    experiment_id: str


@dataclass
class Dashboard(WireModel):
    active_runs: list[Run]
    recent_deploys: list[Deployment]
    alerts: list[AlertSummary]
    sparklines: dict[str, list[MetricPoint]]


@dataclass
class LogFingerprint(WireModel):
    fingerprint: str
    count: int
    level: LogLevel
    first_ts: str
    last_ts: str
    sample: str


@dataclass
class StoreStats(WireModel):
    experiments: int
    runs: int
    config_versions: int
    templates: int
    models: int
    model_versions: int
    deployments: int
    traces: int
    log_lines: int = 0
    metric_points: int = 0
    timeline_events: int = 0


def _by_ts_desc(value: str) -> float:
    return -parse_iso_ms(value)


def decode_cursor(cursor: str | None, size: int) -> int:
    """Index to page back from. Missing or malformed cursors mean the end of the log."""
    if not cursor:
        return size
    try:
        before = int(cursor)
    except ValueError:
        return size
    if before < 0:
        return size
    return min(before, size)


class QueryStore:
    """
    Generated dataset plus the read and mutation operations over it.

    Missing entities are reported as ``None``; the service layer turns that
    into a NOT_FOUND result.
    """

    def __init__(
        self,
        seed: str = DEFAULT_SEED,
        now_fn: Callable[[], datetime] = utc_now,
    ):
        self.seed = seed
        self._now_fn = now_fn
        self._lock = threading.RLock()
        self._data: Dataset = generate_dataset(seed, now_fn())

        stats = self.stats()
        logger.info(
            "Generated dataset seed=%s experiments=%d runs=%d deployments=%d traces=%d",
            seed,
            stats.experiments,
            stats.runs,
            stats.deployments,
            stats.traces,
        )

    def _now_iso(self) -> str:
        return to_iso(self._now_fn())

    def stats(self) -> StoreStats:
        with self._lock:
            ds = self._data
            return StoreStats(
                experiments=len(ds.experiments),
                runs=len(ds.runs),
                config_versions=len(ds.config_versions),
                templates=len(ds.templates),
                models=len(ds.models),
                model_versions=sum(len(v) for v in ds.model_versions_by_model.values()),
                deployments=len(ds.deployments),
                traces=len(ds.traces),
                log_lines=sum(len(d.logs) for d in ds.run_data.values()),
                metric_points=sum(
                    len(series) for d in ds.run_data.values() for series in d.metrics.values()
                ),
                timeline_events=sum(len(d.timeline) for d in ds.run_data.values()),
            )

    # Experiments and runs

    def list_experiments(self) -> list[Experiment]:
        with self._lock:
            items = sorted(
                self._data.experiments.values(), key=lambda e: _by_ts_desc(e.created_at)
            )
            return copy.deepcopy(items)

    def get_experiment(self, experiment_id: str) -> Experiment | None:
        with self._lock:
            return copy.deepcopy(self._data.experiments.get(experiment_id))

    def list_runs(self, experiment_id: str) -> list[Run] | None:
        """Runs of one experiment, newest start first. None if the experiment is unknown."""
        with self._lock:
            if experiment_id not in self._data.experiments:
                return None
            ids = self._data.runs_by_experiment.get(experiment_id, [])
            runs = [self._data.runs[i] for i in ids if i in self._data.runs]
            runs.sort(key=lambda r: _by_ts_desc(r.started_at))
            return copy.deepcopy(runs)

    def get_run(self, run_id: str) -> RunDetail | None:
        with self._lock:
            run = self._data.runs.get(run_id)
            if run is None:
                return None
            data = self._data.run_data.get(run_id)
            timeline = data.timeline if data else []
            return copy.deepcopy(RunDetail(run=run, timeline=timeline))

    def get_run_status(self, run_id: str) -> RunStatus | None:
        with self._lock:
            run = self._data.runs.get(run_id)
            return run.status if run else None

    def get_run_logs(
        self, run_id: str, cursor: str | None = None, limit: int = DEFAULT_LOG_LIMIT
    ) -> LogPage | None:
        """
        Reverse-chronological page of log lines.

        Returns the ``limit`` lines immediately before ``cursor`` (an index into
        the ascending log), in ascending order. ``next_cursor`` points further
        into the past and is absent once the first line has been returned.
        """
        with self._lock:
            if run_id not in self._data.runs:
                return None
            data = self._data.run_data.get(run_id)
            lines = data.logs if data else []
            safe_limit = int(clamp(limit, 1, MAX_LOG_LIMIT))
            before = decode_cursor(cursor, len(lines))
            start = max(0, before - safe_limit)
            return LogPage(
                items=list(lines[start:before]),
                next_cursor=str(start) if start > 0 else None,
            )

    def get_run_metrics(
        self,
        run_id: str,
        name: str,
        from_ts: str | None = None,
        to_ts: str | None = None,
    ) -> list[MetricPoint] | None:
        """Named series filtered to [from_ts, to_ts], either bound optional. Unknown names give []."""
        with self._lock:
            if run_id not in self._data.runs:
                return None
            data = self._data.run_data.get(run_id)
            series = data.metrics.get(name, []) if data else []
            from_ms = parse_iso_ms(from_ts) if from_ts else float("-inf")
            to_ms = parse_iso_ms(to_ts) if to_ts else float("inf")
            return [p for p in series if from_ms <= parse_iso_ms(p.ts) <= to_ms]

    def get_log_fingerprints(self, run_id: str, limit: int = 20) -> list[LogFingerprint] | None:
        """Group a run's lines by normalised message, most frequent first."""
        with self._lock:
            if run_id not in self._data.runs:
                return None
            data = self._data.run_data.get(run_id)
            lines = data.logs if data else []

        groups: dict[str, LogFingerprint] = {}
        for line in lines:
            key = fingerprint_log_message(line.message)
            group = groups.get(key)
            if group is None:
                groups[key] = LogFingerprint(
                    fingerprint=key,
                    count=1,
                    level=line.level,
                    first_ts=line.ts,
                    last_ts=line.ts,
                    sample=line.message,
                )
                continue
            group.count += 1
            group.last_ts = line.ts
            if level_weight(line.level) > level_weight(group.level):
                group.level = line.level

        ranked = sorted(
            groups.values(), key=lambda g: (-g.count, -level_weight(g.level), g.fingerprint)
        )
        return ranked[: max(1, limit)]

    def create_run_from_config(
        self,
        language: ConfigLanguage,
        content: str,
        config: AuthoringConfig,
        experiment_id: str | None = None,
    ) -> CreatedRun:
        """
        Start a new running run from a validated authoring config.

        The run lands in ``experiment_id`` (the quick-runs experiment by
        default, created on first use) and its series are generated the same
        way as the seeded runs, anchored at the current time.
        """
        with self._lock:
            ds = self._data
            now = self._now_fn()
            started_at = to_iso(now)
            target_id = experiment_id or QUICK_EXPERIMENT_ID

            experiment = ds.experiments.get(target_id)
            if experiment is None:
                experiment = Experiment(
                    id=target_id,
                    name="Quick Runs",
                    owner=config.owner,
                    created_at=started_at,
                    tags=["ad-hoc", "authoring"],
                    description="Runs created from Model Authoring configs.",
                )
                ds.experiments[target_id] = experiment
                ds.runs_by_experiment[target_id] = []

            run_id = ds.make_id("run")
            plan = plan_fresh_run(ds.rng, now)

            config_version = ConfigVersion(
                id=ds.make_id("cfg"),
                created_at=started_at,
                title="authoring draft",
                language=language,
                content=content,
                schema_version=1,
            )
            ds.config_versions[config_version.id] = config_version

            data = generate_run_data(ds.rng, plan)
            compute = config.training.compute
            run = Run(
                id=run_id,
                experiment_id=target_id,
                status=RunStatus.RUNNING,
                started_at=started_at,
                config_version_id=config_version.id,
                metrics_summary=data.metrics_summary(),
                artifacts=generate_artifacts(ds.rng, run_id),
                meta=RunMeta(
                    dataset=DatasetRef(
                        name=config.training.dataset.name,
                        version=config.training.dataset.version,
                    ),
                    compute=ComputeInfo(
                        gpu_type=compute.gpu_type, gpus=compute.gpus, spot=chance(ds.rng, 0.35)
                    ),
                    code=CodeRef(commit_hash=plan.commit_hash, branch="authoring/draft"),
                    cluster=ClusterRef(name=pick(ds.rng, CLUSTERS), region="us-east"),
                ),
            )

            ds.runs[run_id] = run
            ds.runs_by_experiment.setdefault(target_id, []).insert(0, run_id)
            ds.run_data[run_id] = data
            ds.incident_minutes[run_id] = plan.incident_at_minute

            logger.info(
                "Created run %s in %s from %s config (duration=%dm)",
                run_id,
                target_id,
                language.value,
                plan.duration_minutes,
            )
            return copy.deepcopy(
                CreatedRun(run=run, experiment=experiment, config_version=config_version)
            )

    # Registry

    def list_models(self) -> list[Model]:
        with self._lock:
            return copy.deepcopy(sorted(self._data.models.values(), key=lambda m: m.name))

    def get_model(self, model_id: str) -> Model | None:
        with self._lock:
            return copy.deepcopy(self._data.models.get(model_id))

    def list_model_versions(self, model_id: str) -> list[ModelVersion] | None:
        with self._lock:
            if model_id not in self._data.models:
                return None
            versions = sorted(
                self._data.model_versions_by_model.get(model_id, []),
                key=lambda v: _by_ts_desc(v.created_at),
            )
            return copy.deepcopy(versions)

    def get_model_version(self, version_id: str) -> ModelVersion | None:
        with self._lock:
            for versions in self._data.model_versions_by_model.values():
                for version in versions:
                    if version.id == version_id:
                        return copy.deepcopy(version)
            return None

    # Deployments

    def list_deployments(self) -> list[Deployment]:
        with self._lock:
            items = sorted(
                self._data.deployments.values(), key=lambda d: _by_ts_desc(d.started_at)
            )
            return copy.deepcopy(items)

    def get_deployment(self, deployment_id: str) -> Deployment | None:
        with self._lock:
            return copy.deepcopy(self._data.deployments.get(deployment_id))

    def simulate_incident(self, deployment_id: str) -> Deployment | None:
        """Record a new incident (newest first) and pause the rollout."""
        with self._lock:
            dep = self._data.deployments.get(deployment_id)
            if dep is None:
                return None
            rng = self._data.rng
            incident = Incident(
                id=self._data.make_id("inc"),
                created_at=self._now_iso(),
                title=pick(rng, INCIDENT_TITLES),
                severity=Severity.CRITICAL if chance(rng, 0.55) else Severity.WARNING,
            )
            dep.incidents.insert(0, incident)
            if dep.status is not DeploymentStatus.ROLLED_BACK:
                dep.status = DeploymentStatus.PAUSED
            logger.info(
                "Incident %s on deployment %s: %s (%s)",
                incident.id,
                deployment_id,
                incident.title,
                incident.severity.value,
            )
            return copy.deepcopy(dep)

    def advance_deployment(self, deployment_id: str) -> Deployment | None:
        """
        Move one stage forward: canary -> ramp -> prod -> succeeded.

        A rolled-back deployment is returned unchanged.
        """
        with self._lock:
            dep = self._data.deployments.get(deployment_id)
            if dep is None:
                return None
            if dep.status is DeploymentStatus.ROLLED_BACK:
                return copy.deepcopy(dep)

            previous = dep.stage
            match dep.stage:
                case DeploymentStage.CANARY:
                    dep.stage = DeploymentStage.RAMP
                    statuses = (StepStatus.DONE, StepStatus.ACTIVE, StepStatus.PENDING)
                    dep.status = DeploymentStatus.RUNNING
                case DeploymentStage.RAMP:
                    dep.stage = DeploymentStage.PROD
                    statuses = (StepStatus.DONE, StepStatus.DONE, StepStatus.ACTIVE)
                    dep.status = DeploymentStatus.RUNNING
                case DeploymentStage.PROD:
                    statuses = (StepStatus.DONE,) * len(dep.rollout_steps)
                    dep.status = DeploymentStatus.SUCCEEDED
                    dep.ended_at = self._now_iso()

            for index, step in enumerate(dep.rollout_steps):
                step.status = statuses[index] if index < len(statuses) else StepStatus.DONE

            logger.info(
                "Deployment %s advanced %s -> %s (%s)",
                deployment_id,
                previous.value,
                dep.stage.value,
                dep.status.value,
            )
            return copy.deepcopy(dep)

    def rollback_deployment(self, deployment_id: str) -> Deployment | None:
        """
        Terminate the rollout as rolled back.

        Step 0 is marked done, step 1 done unless the rollout was still in
        canary (then it keeps its status), step 2 failed.
        """
        with self._lock:
            dep = self._data.deployments.get(deployment_id)
            if dep is None:
                return None
            dep.status = DeploymentStatus.ROLLED_BACK
            dep.ended_at = self._now_iso()
            for index, step in enumerate(dep.rollout_steps):
                if index == 0:
                    step.status = StepStatus.DONE
                elif index == 1 and dep.stage is not DeploymentStage.CANARY:
                    step.status = StepStatus.DONE
                elif index == 2:
                    step.status = StepStatus.FAILED
            logger.info("Deployment %s rolled back at stage %s", deployment_id, dep.stage.value)
            return copy.deepcopy(dep)

    # Traces

    def list_traces(self) -> list[Trace]:
        with self._lock:
            items = sorted(self._data.traces.values(), key=lambda t: _by_ts_desc(t.created_at))
            return copy.deepcopy(items)

    def get_trace(self, trace_id: str) -> Trace | None:
        with self._lock:
            return copy.deepcopy(self._data.traces.get(trace_id))

    # Authoring

    def list_authoring_templates(self) -> list[AuthoringTemplate]:
        """Templates sorted by title. Use ``summary()`` for the version-less view."""
        with self._lock:
            return copy.deepcopy(sorted(self._data.templates.values(), key=lambda t: t.title))

    def get_authoring_template(self, template_id: str) -> AuthoringTemplate | None:
        with self._lock:
            return copy.deepcopy(self._data.templates.get(template_id))

    def get_config_version(self, version_id: str) -> ConfigVersion | None:
        with self._lock:
            return copy.deepcopy(self._data.config_versions.get(version_id))

    def get_config_lineage(self, version_id: str) -> list[ConfigVersion] | None:
        """
        Follow parent links from version_id back to the root.

        The walk visits at most as many versions as exist, so a corrupted
        chain can not loop forever.
        """
        with self._lock:
            versions = self._data.config_versions
            if version_id not in versions:
                return None
            chain: list[ConfigVersion] = []
            seen: set[str] = set()
            current: str | None = version_id
            while current is not None and current in versions:
                if current in seen or len(chain) >= len(versions):
                    logger.warning("Config lineage for %s loops at %s", version_id, current)
                    break
                seen.add(current)
                version = versions[current]
                chain.append(version)
                current = version.parent_id
            return copy.deepcopy(chain)

    # Dashboard

    def get_dashboard(self) -> Dashboard:
        with self._lock:
            ds = self._data
            runs = list(ds.runs.values())
            active = sorted(
                (r for r in runs if r.status is RunStatus.RUNNING),
                key=lambda r: _by_ts_desc(r.started_at),
            )[:DASHBOARD_ACTIVE_RUNS]
            deploys = sorted(ds.deployments.values(), key=lambda d: _by_ts_desc(d.started_at))[
                :DASHBOARD_DEPLOYMENTS
            ]
            alerts = [
                AlertSummary(
                    id=f"{run.id}_{event.ts}",
                    ts=event.ts,
                    title=event.title,
                    severity=event.severity or Severity.WARNING,
                    run_id=run.id,
                    experiment_id=run.experiment_id,
                )
                for run in runs
                for event in ds.run_data[run.id].timeline
                if event.type is TimelineEventType.ALERT
            ]
            alerts.sort(key=lambda a: _by_ts_desc(a.ts))

            now = self._now_fn()
            return copy.deepcopy(
                Dashboard(
                    active_runs=active,
                    recent_deploys=deploys,
                    alerts=alerts[:DASHBOARD_ALERTS],
                    sparklines={
                        name: make_sparkline(name, SPARKLINE_MINUTES, self.seed, now)
                        for name in ("gpu_util", "throughput")
                    },
                )
            )
