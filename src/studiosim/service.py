"""
Typed request/response boundary over the query store.

Every externally triggerable failure (unknown id, bad input, unparsable or
invalid config) comes back as ``Err(ApiError)`` rather than an exception.
Callers dispatch with ``match``::

    match service.get_run(run_id):
        case Ok(value=detail):
            ...
        case Err(error=error):
            ...
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeAlias, TypeVar

from pydantic import ValidationError

from .models import (
    AuthoringTemplate,
    ConfigLanguage,
    ConfigVersion,
    Deployment,
    Experiment,
    LogPage,
    MetricPoint,
    Model,
    ModelVersion,
    Run,
    RunDetail,
    Trace,
)
from .schemas.authoring import (
    ConfigParseError,
    parse_config_text,
    schema_error_details,
    validate_config,
)
from .store import DEFAULT_LOG_LIMIT, CreatedRun, Dashboard, LogFingerprint, QueryStore
from .timeutil import parse_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorCode(Enum):
    NOT_FOUND = "NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    CONFIG_PARSE_ERROR = "CONFIG_PARSE_ERROR"
    CONFIG_SCHEMA_ERROR = "CONFIG_SCHEMA_ERROR"
    CHAOS_500 = "CHAOS_500"


_HTTP_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.CONFIG_PARSE_ERROR: 400,
    ErrorCode.CONFIG_SCHEMA_ERROR: 400,
    ErrorCode.CHAOS_500: 500,
}


@dataclass(frozen=True)
class ApiError:
    code: ErrorCode
    message: str
    details: Any = None

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.code]

    @property
    def retryable(self) -> bool:
        return self.code is ErrorCode.CHAOS_500

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details is not None:
            out["details"] = self.details
        return out


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: ApiError


Result: TypeAlias = Ok[T] | Err


def not_found(kind: str, entity_id: str) -> Err:
    return Err(ApiError(ErrorCode.NOT_FOUND, f"{kind} not found: {entity_id}"))


def bad_request(message: str) -> Err:
    return Err(ApiError(ErrorCode.BAD_REQUEST, message))


def parse_limit(raw: str | int | None, default: int = DEFAULT_LOG_LIMIT) -> int:
    """Page size from a query parameter. Non-numeric input falls back to the default."""
    if raw is None or raw == "":
        return default
    try:
        return int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return default


def _is_timestamp(value: str) -> bool:
    try:
        parse_iso(value)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class LogQuery:
    run_id: str
    cursor: str | None = None
    limit: int = DEFAULT_LOG_LIMIT


@dataclass(frozen=True)
class MetricQuery:
    run_id: str
    name: str | None
    from_ts: str | None = None
    to_ts: str | None = None


@dataclass(frozen=True)
class CreateRunRequest:
    language: ConfigLanguage
    content: str
    experiment_id: str | None = None

    @classmethod
    def from_body(cls, body: Any) -> "Ok[CreateRunRequest] | Err":
        """Validate a decoded JSON body of shape {language, content}."""
        if not isinstance(body, dict):
            return bad_request("Expected JSON body.")
        language = body.get("language")
        content = body.get("content")
        if language not in ("yaml", "json"):
            return bad_request('Expected language to be "yaml" or "json".')
        if not isinstance(content, str) or not content.strip():
            return bad_request("Expected content to be a non-empty string.")
        experiment_id = body.get("experimentId")
        if experiment_id is not None and not isinstance(experiment_id, str):
            return bad_request("Expected experimentId to be a string.")
        return Ok(cls(ConfigLanguage(language), content, experiment_id))


class StudioService:
    """Store operations with typed results."""

    def __init__(self, store: QueryStore):
        self.store = store

    @property
    def seed(self) -> str:
        return self.store.seed

    def get_dashboard(self) -> Ok[Dashboard]:
        return Ok(self.store.get_dashboard())

    def list_experiments(self) -> Ok[list[Experiment]]:
        return Ok(self.store.list_experiments())

    def get_experiment(self, experiment_id: str) -> Result[Experiment]:
        experiment = self.store.get_experiment(experiment_id)
        if experiment is None:
            return not_found("Experiment", experiment_id)
        return Ok(experiment)

    def list_runs(self, experiment_id: str) -> Result[list[Run]]:
        runs = self.store.list_runs(experiment_id)
        if runs is None:
            return not_found("Experiment", experiment_id)
        return Ok(runs)

    def get_run(self, run_id: str) -> Result[RunDetail]:
        detail = self.store.get_run(run_id)
        if detail is None:
            return not_found("Run", run_id)
        return Ok(detail)

    def get_run_logs(self, query: LogQuery) -> Result[LogPage]:
        page = self.store.get_run_logs(query.run_id, query.cursor, query.limit)
        if page is None:
            return not_found("Run", query.run_id)
        return Ok(page)

    def get_run_metrics(self, query: MetricQuery) -> Result[list[MetricPoint]]:
        if self.store.get_run_status(query.run_id) is None:
            return not_found("Run", query.run_id)
        name = (query.name or "").strip()
        if not name:
            return bad_request("Missing required query param: name")
        for param, value in (("from", query.from_ts), ("to", query.to_ts)):
            if value and not _is_timestamp(value):
                return bad_request(f"Invalid '{param}' timestamp: {value}")
        points = self.store.get_run_metrics(query.run_id, name, query.from_ts, query.to_ts)
        return Ok(points or [])

    def get_log_fingerprints(self, run_id: str, limit: int = 20) -> Result[list[LogFingerprint]]:
        groups = self.store.get_log_fingerprints(run_id, limit)
        if groups is None:
            return not_found("Run", run_id)
        return Ok(groups)

    def create_run(self, request: CreateRunRequest) -> Result[CreatedRun]:
        """Parse, validate, then create. Parse and schema failures are distinct codes."""
        try:
            raw = parse_config_text(request.language, request.content)
        except ConfigParseError as e:
            return Err(ApiError(ErrorCode.CONFIG_PARSE_ERROR, str(e)))

        try:
            config = validate_config(raw)
        except ValidationError as e:
            logger.debug("Rejected %s config: %d schema errors", request.language.value, e.error_count())
            return Err(
                ApiError(
                    ErrorCode.CONFIG_SCHEMA_ERROR,
                    "Config failed schema validation.",
                    schema_error_details(e),
                )
            )

        if request.experiment_id and self.store.get_experiment(request.experiment_id) is None:
            return not_found("Experiment", request.experiment_id)

        return Ok(
            self.store.create_run_from_config(
                request.language, request.content, config, request.experiment_id
            )
        )

    def list_models(self) -> Ok[list[Model]]:
        return Ok(self.store.list_models())

    def list_model_versions(self, model_id: str) -> Result[list[ModelVersion]]:
        versions = self.store.list_model_versions(model_id)
        if versions is None:
            return not_found("Model", model_id)
        return Ok(versions)

    def list_deployments(self) -> Ok[list[Deployment]]:
        return Ok(self.store.list_deployments())

    def get_deployment(self, deployment_id: str) -> Result[Deployment]:
        return self._deployment_result(deployment_id, self.store.get_deployment(deployment_id))

    def simulate_incident(self, deployment_id: str) -> Result[Deployment]:
        return self._deployment_result(deployment_id, self.store.simulate_incident(deployment_id))

    def advance_deployment(self, deployment_id: str) -> Result[Deployment]:
        return self._deployment_result(deployment_id, self.store.advance_deployment(deployment_id))

    def rollback_deployment(self, deployment_id: str) -> Result[Deployment]:
        return self._deployment_result(deployment_id, self.store.rollback_deployment(deployment_id))

    def _deployment_result(self, deployment_id: str, dep: Deployment | None) -> Result[Deployment]:
        if dep is None:
            return not_found("Deployment", deployment_id)
        return Ok(dep)

    def list_traces(self) -> Ok[list[Trace]]:
        return Ok(self.store.list_traces())

    def get_trace(self, trace_id: str) -> Result[Trace]:
        trace = self.store.get_trace(trace_id)
        if trace is None:
            return not_found("Trace", trace_id)
        return Ok(trace)

    def list_authoring_templates(self) -> Ok[list[dict[str, Any]]]:
        return Ok([t.summary() for t in self.store.list_authoring_templates()])

    def get_authoring_template(self, template_id: str) -> Result[AuthoringTemplate]:
        template = self.store.get_authoring_template(template_id)
        if template is None:
            return not_found("Template", template_id)
        return Ok(template)

    def get_config_version(self, version_id: str) -> Result[ConfigVersion]:
        version = self.store.get_config_version(version_id)
        if version is None:
            return not_found("Config version", version_id)
        return Ok(version)

    def get_config_lineage(self, version_id: str) -> Result[list[ConfigVersion]]:
        chain = self.store.get_config_lineage(version_id)
        if chain is None:
            return not_found("Config version", version_id)
        return Ok(chain)
