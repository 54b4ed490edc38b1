"""
Build the complete synthetic dataset from a seed and a fixed "now".

Everything is drawn from one stream in a fixed order: experiments and their
runs, authoring templates, registry models and versions, deployments, then
traces. The same (seed, now) pair always yields the same dataset.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..models import (
    Artifact,
    ArtifactKind,
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
    EvalSummary,
    Experiment,
    Model,
    ModelStage,
    ModelVersion,
    RolloutStep,
    Run,
    RunData,
    RunMeta,
    RunStatus,
    StepStatus,
    Trace,
)
from ..schemas.authoring import config_to_text
from ..statistics.prng import Rng, chance, create_rng, pick, random_float, random_int, unique_sample
from ..timeutil import add_hours, add_minutes, to_iso
from .config_generator import OWNERS, deep_merge, make_config
from .ids import IdFactory, format_commit
from .log_generator import generate_logs
from .metric_generator import METRIC_NAMES, generate_metric_series
from .timeline_generator import BRANCHES, generate_timeline
from .trace_generator import generate_traces

DEFAULT_SEED = "ai-infra-studio"

CLUSTERS = ("orion", "atlas", "zephyr", "nebula")
REGIONS = ("us-east", "us-west", "eu-central")
EXPERIMENT_TAGS = ("baseline", "sweep", "ablation", "eval", "stability", "perf")
EXPERIMENT_NAMES = (
    "Ranker: cold-start stabilization",
    "Fraud: graph features ablation",
    "Support: intent finetune sweep",
    "Vision: robustness eval harness",
    "Search: latency-aware distillation",
    "RAG: retrieval scorer v3",
    "Ads: calibration reliability",
    "Safety: toxicity classifier refresh",
    "Infra: throughput tuning",
)
EXPERIMENT_DESCRIPTION = (
    "Synthetic experiment for demo UX: runs, compare mode, metrics/logs streaming, "
    "and debugging timeline."
)

ROLLOUT_STEP_TITLES = ("Canary (1%)", "Ramp (10% → 50%)", "Promote (100%)")

MODEL_SPECS = (
    ("SupportIntent", "Multi-class intent model powering support triage and self-serve answers."),
    ("SearchRanker", "Learning-to-rank model tuned for latency-aware relevance."),
    ("FraudScore", "Graph-augmented risk model for real-time fraud scoring."),
    ("ImageModeration", "Vision classifier for policy compliance and safety."),
)

TEMPLATE_SPECS: tuple[dict[str, Any], ...] = (
    {
        "title": "Batch Trainer (baseline)",
        "description": "A clean starting point with stable defaults and clear training metadata.",
        "language": ConfigLanguage.JSON,
        "variants": (
            {"training": {"hyperparams": {"learningRate": 0.0006, "batchSize": 64, "epochs": 8}}},
            {"training": {"hyperparams": {"learningRate": 0.0003, "batchSize": 128, "epochs": 8}}},
            {"training": {"compute": {"gpuType": "H100-80GB", "gpus": 8, "mixedPrecision": True}}},
        ),
    },
    {
        "title": "Finetune Sweep (fast iterate)",
        "description": "Aggressive learning rate and lower epoch count to quickly validate direction.",
        "language": ConfigLanguage.YAML,
        "variants": (
            {"training": {"hyperparams": {"learningRate": 0.0012, "batchSize": 32, "epochs": 3}}},
            {"training": {"hyperparams": {"learningRate": 0.0009, "batchSize": 32, "epochs": 5}}},
            {"training": {"hyperparams": {"learningRate": 0.0007, "batchSize": 64, "epochs": 5}}},
        ),
    },
    {
        "title": "Eval-Only (shadow run)",
        "description": "Runs evaluation wiring and artifacts without changing training knobs.",
        "language": ConfigLanguage.JSON,
        "variants": (
            {
                "tags": ["eval", "shadow"],
                "training": {"hyperparams": {"learningRate": 0.0005, "batchSize": 64, "epochs": 3}},
            },
            {
                "tags": ["eval", "shadow"],
                "training": {"hyperparams": {"learningRate": 0.0005, "batchSize": 64, "epochs": 5}},
            },
        ),
    },
)


@dataclass(frozen=True)
class RunPlan:
    """Where a run's series start, how long they span and when the incident hits."""

    start: datetime
    duration_minutes: int
    incident_at_minute: int
    commit_hash: str


@dataclass
class Dataset:
    seed: str
    now: datetime
    rng: Rng
    make_id: IdFactory
    experiments: dict[str, Experiment] = field(default_factory=dict)
    runs: dict[str, Run] = field(default_factory=dict)
    runs_by_experiment: dict[str, list[str]] = field(default_factory=dict)
    run_data: dict[str, RunData] = field(default_factory=dict)
    incident_minutes: dict[str, int] = field(default_factory=dict)
    config_versions: dict[str, ConfigVersion] = field(default_factory=dict)
    templates: dict[str, AuthoringTemplate] = field(default_factory=dict)
    models: dict[str, Model] = field(default_factory=dict)
    model_versions_by_model: dict[str, list[ModelVersion]] = field(default_factory=dict)
    deployments: dict[str, Deployment] = field(default_factory=dict)
    traces: dict[str, Trace] = field(default_factory=dict)


def pick_run_status(rng: Rng) -> RunStatus:
    """12% running, 8% failed, 6% canceled, the rest succeeded."""
    x = rng.next()
    if x < 0.12:
        return RunStatus.RUNNING
    if x < 0.2:
        return RunStatus.FAILED
    if x < 0.26:
        return RunStatus.CANCELED
    return RunStatus.SUCCEEDED


def generate_run_data(rng: Rng, plan: RunPlan) -> RunData:
    """Metric series, logs and timeline for one run, in that draw order."""
    metrics = {
        name: generate_metric_series(
            rng, name, plan.start, plan.duration_minutes, plan.incident_at_minute
        )
        for name in METRIC_NAMES
    }
    logs = generate_logs(
        rng, plan.start, plan.duration_minutes, plan.incident_at_minute, plan.commit_hash
    )
    timeline = generate_timeline(
        rng, plan.start, plan.duration_minutes, plan.incident_at_minute, plan.commit_hash
    )
    return RunData(logs=logs, metrics=metrics, timeline=timeline)


def generate_artifacts(rng: Rng, run_id: str) -> list[Artifact]:
    artifacts = [
        Artifact(
            id=f"{run_id}_a{i}",
            name=f"checkpoint_{i + 1:02d}.pt",
            kind=ArtifactKind.CHECKPOINT,
            size_bytes=random_int(rng, 80_000_000, 460_000_000),
        )
        for i in range(random_int(rng, 2, 5))
    ]
    artifacts.append(
        Artifact(
            id=f"{run_id}_report",
            name="eval_report.json",
            kind=ArtifactKind.REPORT,
            size_bytes=random_int(rng, 14_000, 220_000),
        )
    )
    artifacts.append(
        Artifact(
            id=f"{run_id}_plot",
            name="metrics.png",
            kind=ArtifactKind.PLOT,
            size_bytes=random_int(rng, 48_000, 380_000),
        )
    )
    return artifacts


def initial_rollout_statuses(stage: DeploymentStage) -> tuple[StepStatus, StepStatus, StepStatus]:
    """Step statuses consistent with a deployment that is currently at stage."""
    if stage is DeploymentStage.CANARY:
        return (StepStatus.ACTIVE, StepStatus.PENDING, StepStatus.PENDING)
    if stage is DeploymentStage.RAMP:
        return (StepStatus.DONE, StepStatus.ACTIVE, StepStatus.PENDING)
    return (StepStatus.DONE, StepStatus.DONE, StepStatus.ACTIVE)


def _generate_experiments(ds: Dataset) -> None:
    rng, make_id, now = ds.rng, ds.make_id, ds.now
    for name in EXPERIMENT_NAMES:
        exp_id = make_id("exp")
        created_at = to_iso(add_hours(now, -random_int(rng, 12, 240)))
        owner = pick(rng, OWNERS)
        tags = unique_sample(rng, EXPERIMENT_TAGS, 2, 4)
        ds.experiments[exp_id] = Experiment(
            id=exp_id,
            name=name,
            owner=owner,
            created_at=created_at,
            tags=tags,
            description=EXPERIMENT_DESCRIPTION,
        )
        ds.runs_by_experiment[exp_id] = []

        for _ in range(random_int(rng, 3, 6)):
            _generate_run(ds, exp_id, owner)


def _generate_run(ds: Dataset, experiment_id: str, owner: str) -> None:
    rng, make_id, now = ds.rng, ds.make_id, ds.now
    run_id = make_id("run")
    status = pick_run_status(rng)
    duration_minutes = random_int(rng, 70, 140)

    if status is RunStatus.RUNNING:
        elapsed_minutes = random_int(rng, 16, 86)
        start = add_minutes(now, -elapsed_minutes)
    else:
        elapsed_minutes = duration_minutes + random_int(rng, -4, 9)
        start = add_minutes(
            add_hours(now, -random_int(rng, 2, 48)), -random_int(rng, 0, 90)
        )
    started_at = to_iso(start)

    incident_at_minute = random_int(
        rng, 10, max(14, min(elapsed_minutes - 6, duration_minutes - 15))
    )
    commit_hash = format_commit(rng)

    cfg = make_config(rng, {"owner": owner})
    language = ConfigLanguage.YAML if chance(rng, 0.35) else ConfigLanguage.JSON
    config_version_id = make_id("cfg")
    ds.config_versions[config_version_id] = ConfigVersion(
        id=config_version_id,
        created_at=started_at,
        title=f"run config ({language.value.upper()})",
        language=language,
        content=config_to_text(language, cfg),
        schema_version=1,
    )

    plan = RunPlan(
        start=start,
        duration_minutes=elapsed_minutes if status is RunStatus.RUNNING else duration_minutes,
        incident_at_minute=incident_at_minute,
        commit_hash=commit_hash,
    )
    data = generate_run_data(rng, plan)

    ended_at = None
    if not status.is_active:
        ended_at = to_iso(add_minutes(start, duration_minutes + random_int(rng, -4, 9)))

    run = Run(
        id=run_id,
        experiment_id=experiment_id,
        status=status,
        started_at=started_at,
        ended_at=ended_at,
        config_version_id=config_version_id,
        metrics_summary=data.metrics_summary(),
        artifacts=generate_artifacts(rng, run_id),
        meta=RunMeta(
            dataset=DatasetRef(
                name=cfg.training.dataset.name, version=cfg.training.dataset.version
            ),
            compute=ComputeInfo(
                gpu_type=cfg.training.compute.gpu_type,
                gpus=cfg.training.compute.gpus,
                spot=chance(rng, 0.35),
            ),
            code=CodeRef(commit_hash=commit_hash, branch=pick(rng, BRANCHES)),
            cluster=ClusterRef(name=pick(rng, CLUSTERS), region=pick(rng, REGIONS)),
        ),
    )

    ds.runs[run_id] = run
    ds.runs_by_experiment[experiment_id].append(run_id)
    ds.run_data[run_id] = data
    ds.incident_minutes[run_id] = incident_at_minute


def _generate_templates(ds: Dataset) -> None:
    rng, make_id, now = ds.rng, ds.make_id, ds.now
    for spec in TEMPLATE_SPECS:
        template_id = make_id("tpl")
        slug = spec["title"].lower().replace(" ", "-")
        base = make_config(rng, {"name": f"template/{slug}"}).to_wire()
        language: ConfigLanguage = spec["language"]

        versions: list[ConfigVersion] = []
        parent: ConfigVersion | None = None
        for i, variant in enumerate(spec["variants"]):
            cfg = make_config(rng, deep_merge(base, variant))
            version_id = make_id("cfg")
            created_at = to_iso(add_hours(now, -random_int(rng, 2, 72)))
            if parent is not None:
                # A version is never older than the one it was derived from.
                created_at = max(created_at, parent.created_at)
            version = ConfigVersion(
                id=version_id,
                created_at=created_at,
                title=f"v{i + 1}",
                language=language,
                content=config_to_text(language, cfg),
                schema_version=1,
                parent_id=parent.id if parent else None,
            )
            versions.append(version)
            ds.config_versions[version_id] = version
            parent = version

        ds.templates[template_id] = AuthoringTemplate(
            id=template_id,
            title=spec["title"],
            description=spec["description"],
            language=language,
            latest_config_version_id=versions[-1].id,
            versions=versions,
        )


def _generate_registry(ds: Dataset) -> None:
    rng, make_id, now = ds.rng, ds.make_id, ds.now
    all_run_ids = list(ds.runs)
    stages = (ModelStage.DRAFT, ModelStage.STAGING, ModelStage.PRODUCTION)
    for name, description in MODEL_SPECS:
        model_id = make_id("model")
        ds.models[model_id] = Model(id=model_id, name=name, description=description)

        versions: list[ModelVersion] = []
        for i, stage in enumerate(stages):
            best_run_id = pick(rng, all_run_ids)
            versions.append(
                ModelVersion(
                    id=make_id("mv"),
                    model_id=model_id,
                    version=f"v{i + 1}.{random_int(rng, 0, 9)}",
                    created_at=to_iso(add_hours(now, -random_int(rng, 12, 240))),
                    best_run_id=best_run_id,
                    eval_summary=EvalSummary(
                        accuracy=round(random_float(rng, 0.7, 0.93), 3),
                        latency_p95_ms=round(random_float(rng, 18, 120), 1),
                        robustness=round(random_float(rng, 0.55, 0.92), 3),
                    ),
                    stage=stage,
                )
            )
        ds.model_versions_by_model[model_id] = versions


def _generate_deployments(ds: Dataset) -> None:
    rng, make_id, now = ds.rng, ds.make_id, ds.now
    for versions in ds.model_versions_by_model.values():
        for version in versions:
            if version.stage is ModelStage.DRAFT:
                continue
            dep_id = make_id("dep")
            if version.stage is ModelStage.PRODUCTION:
                stage = DeploymentStage.PROD
            else:
                stage = pick(rng, (DeploymentStage.CANARY, DeploymentStage.RAMP))
            started = add_hours(now, -random_int(rng, 1, 72))
            steps = [
                RolloutStep(id=make_id("step"), title=title, status=status)
                for title, status in zip(
                    ROLLOUT_STEP_TITLES, initial_rollout_statuses(stage), strict=True
                )
            ]
            status = pick(
                rng,
                (
                    DeploymentStatus.RUNNING,
                    DeploymentStatus.RUNNING,
                    DeploymentStatus.PAUSED,
                    DeploymentStatus.SUCCEEDED,
                ),
            )
            ended_at = None
            if chance(rng, 0.25):
                ended_at = to_iso(add_hours(started, random_int(rng, 1, 6)))
            ds.deployments[dep_id] = Deployment(
                id=dep_id,
                model_version_id=version.id,
                stage=stage,
                status=status,
                started_at=to_iso(started),
                ended_at=ended_at,
                rollout_steps=steps,
                incidents=[],
            )


def generate_dataset(seed: str, now: datetime) -> Dataset:
    """Generate every entity for seed, anchored at now."""
    rng = create_rng(seed)
    ds = Dataset(seed=seed, now=now, rng=rng, make_id=IdFactory(rng))

    _generate_experiments(ds)
    _generate_templates(ds)
    _generate_registry(ds)
    _generate_deployments(ds)

    model_version_ids = [
        v.id for versions in ds.model_versions_by_model.values() for v in versions
    ]
    for trace in generate_traces(rng, ds.make_id, now, model_version_ids):
        ds.traces[trace.id] = trace

    return ds


def plan_fresh_run(rng: Rng, start: datetime) -> RunPlan:
    """Plan for a run created now: full duration ahead, incident 18..duration-15 minutes in."""
    duration_minutes = random_int(rng, 70, 140)
    incident_at_minute = random_int(rng, 18, max(22, duration_minutes - 15))
    return RunPlan(
        start=start,
        duration_minutes=duration_minutes,
        incident_at_minute=incident_at_minute,
        commit_hash=format_commit(rng),
    )

