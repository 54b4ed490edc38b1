"""
Entities of the synthetic ML-platform dataset.

Field names are snake_case in Python; ``to_dict()`` produces the camelCase wire
shape (``startedAt``, ``configVersionId``...). Optional fields that are unset
are omitted from the wire shape rather than sent as null.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any

MetadataValue = str | int | float | bool | None


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _fields_to_wire(value: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in fields(value):
        item = getattr(value, f.name)
        if item is None:
            continue
        out[_camel(f.name)] = to_wire(item)
    return out


def to_wire(value: Any) -> Any:
    """Convert dataclasses, enums and containers into JSON-ready values."""
    if isinstance(value, WireModel):
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return _fields_to_wire(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    return value


class WireModel:
    def to_dict(self) -> dict[str, Any]:
        return _fields_to_wire(self)


class RunStatus(Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_active(self) -> bool:
        return self in (RunStatus.QUEUED, RunStatus.RUNNING)


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class TimelineEventType(Enum):
    DEPLOY = "deploy"
    CHECKPOINT = "checkpoint"
    ALERT = "alert"
    LOG_SPIKE = "log_spike"
    COMMIT = "commit"
    NOTE = "note"


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class ConfigLanguage(Enum):
    YAML = "yaml"
    JSON = "json"


class ArtifactKind(Enum):
    CHECKPOINT = "checkpoint"
    REPORT = "report"
    PLOT = "plot"


class ModelStage(Enum):
    DRAFT = "draft"
    STAGING = "staging"
    PRODUCTION = "production"
    ARCHIVED = "archived"


class DeploymentStage(Enum):
    CANARY = "canary"
    RAMP = "ramp"
    PROD = "prod"


class DeploymentStatus(Enum):
    RUNNING = "running"
    PAUSED = "paused"
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"


class StepStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"
    FAILED = "failed"


class TraceStepKind(Enum):
    FETCH = "fetch"
    INFERENCE = "inference"
    TRANSFORM = "transform"
    RESPONSE = "response"


class TraceStepStatus(Enum):
    OK = "ok"
    ERROR = "error"


@dataclass
class Experiment(WireModel):
    id: str
    name: str
    owner: str
    created_at: str
    tags: list[str]
    description: str


@dataclass(frozen=True)
class LogLine(WireModel):
    ts: str
    level: LogLevel
    source: str
    message: str


@dataclass(frozen=True)
class MetricPoint(WireModel):
    ts: str
    name: str
    value: float


@dataclass(frozen=True)
class TimelineEvent(WireModel):
    ts: str
    type: TimelineEventType
    title: str
    severity: Severity | None = None
    metadata: dict[str, MetadataValue] | None = None


@dataclass
class Artifact(WireModel):
    id: str
    name: str
    kind: ArtifactKind
    size_bytes: int


@dataclass
class DatasetRef(WireModel):
    name: str
    version: str


@dataclass
class ComputeInfo(WireModel):
    gpu_type: str
    gpus: int
    spot: bool


@dataclass
class CodeRef(WireModel):
    commit_hash: str
    branch: str


@dataclass
class ClusterRef(WireModel):
    name: str
    region: str


@dataclass
class RunMeta(WireModel):
    dataset: DatasetRef
    compute: ComputeInfo
    code: CodeRef
    cluster: ClusterRef


@dataclass
class Run(WireModel):
    id: str
    experiment_id: str
    status: RunStatus
    started_at: str
    config_version_id: str
    metrics_summary: dict[str, float]
    artifacts: list[Artifact]
    meta: RunMeta
    ended_at: str | None = None


@dataclass
class RunData:
    """Per-run series owned by the store. Each list is ascending by ts."""

    logs: list[LogLine]
    metrics: dict[str, list[MetricPoint]]
    timeline: list[TimelineEvent]

    def metrics_summary(self) -> dict[str, float]:
        """Last value of every non-empty series."""
        return {name: series[-1].value for name, series in self.metrics.items() if series}


@dataclass
class RunDetail(WireModel):
    """A run together with a copy of its timeline."""

    run: Run
    timeline: list[TimelineEvent]

    def to_dict(self) -> dict[str, Any]:
        out = self.run.to_dict()
        out["timeline"] = to_wire(self.timeline)
        return out


@dataclass
class ConfigVersion(WireModel):
    id: str
    created_at: str
    title: str
    language: ConfigLanguage
    content: str
    schema_version: int = 1
    parent_id: str | None = None


@dataclass
class AuthoringTemplate(WireModel):
    id: str
    title: str
    description: str
    language: ConfigLanguage
    latest_config_version_id: str
    versions: list[ConfigVersion] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        out = self.to_dict()
        out.pop("versions", None)
        return out


@dataclass
class Model(WireModel):
    id: str
    name: str
    description: str


@dataclass
class EvalSummary(WireModel):
    accuracy: float
    latency_p95_ms: float
    robustness: float


@dataclass
class ModelVersion(WireModel):
    id: str
    model_id: str
    version: str
    created_at: str
    best_run_id: str
    eval_summary: EvalSummary
    stage: ModelStage


@dataclass
class RolloutStep(WireModel):
    id: str
    title: str
    status: StepStatus


@dataclass
class Incident(WireModel):
    id: str
    created_at: str
    title: str
    severity: Severity


@dataclass
class Deployment(WireModel):
    id: str
    model_version_id: str
    stage: DeploymentStage
    status: DeploymentStatus
    started_at: str
    rollout_steps: list[RolloutStep]
    incidents: list[Incident] = field(default_factory=list)
    ended_at: str | None = None


@dataclass
class TraceStep(WireModel):
    id: str
    title: str
    kind: TraceStepKind
    started_at: str
    duration_ms: int
    status: TraceStepStatus
    input_preview: str
    output_preview: str
    error_message: str | None = None


@dataclass
class Trace(WireModel):
    id: str
    created_at: str
    request_id: str
    model_version_id: str
    steps: list[TraceStep]
    tags: list[str]


@dataclass
class LogPage(WireModel):
    items: list[LogLine]
    next_cursor: str | None = None
