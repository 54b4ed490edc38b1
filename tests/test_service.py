"""Tests for the typed service boundary: results, error codes and request parsing."""

import pytest
from conftest import VALID_CONFIG_JSON, VALID_CONFIG_YAML

from studiosim.models import ConfigLanguage, RunStatus
from studiosim.service import (
    ApiError,
    CreateRunRequest,
    Err,
    ErrorCode,
    LogQuery,
    MetricQuery,
    Ok,
    StudioService,
    parse_limit,
)
from studiosim.store import QueryStore


@pytest.fixture
def service(store: QueryStore) -> StudioService:
    return StudioService(store)


def _error(result) -> ApiError:
    assert isinstance(result, Err), result
    return result.error


def test_unknown_run_is_not_found(service: StudioService) -> None:
    """Missing runs map to NOT_FOUND with a 404 status."""
    error = _error(service.get_run("run_nope"))
    assert error.code is ErrorCode.NOT_FOUND
    assert error.http_status == 404
    assert error.message == "Run not found: run_nope"
    assert error.to_dict() == {"code": "NOT_FOUND", "message": "Run not found: run_nope"}


def test_not_found_for_each_kind(service: StudioService) -> None:
    """Every lookup reports NOT_FOUND for unknown ids."""
    results = [
        service.get_experiment("x"),
        service.list_runs("x"),
        service.get_run_logs(LogQuery("x")),
        service.get_log_fingerprints("x"),
        service.list_model_versions("x"),
        service.get_deployment("x"),
        service.simulate_incident("x"),
        service.advance_deployment("x"),
        service.rollback_deployment("x"),
        service.get_trace("x"),
        service.get_authoring_template("x"),
        service.get_config_version("x"),
        service.get_config_lineage("x"),
    ]
    assert all(_error(r).code is ErrorCode.NOT_FOUND for r in results)


def test_metrics_require_name(service: StudioService, any_run_id: str) -> None:
    """A known run without a metric name is a BAD_REQUEST."""
    error = _error(service.get_run_metrics(MetricQuery(any_run_id, None)))
    assert error.code is ErrorCode.BAD_REQUEST
    assert error.http_status == 400
    assert error.message == "Missing required query param: name"


def test_metrics_unknown_run_checked_first(service: StudioService) -> None:
    """An unknown run reports NOT_FOUND even when the name is missing too."""
    assert _error(service.get_run_metrics(MetricQuery("run_nope", None))).code is (
        ErrorCode.NOT_FOUND
    )


@pytest.mark.parametrize("bounds", [{"from_ts": "garbage"}, {"to_ts": "2024-13-45T99:00:00Z"}])
def test_metrics_reject_unparseable_bounds(
    service: StudioService, any_run_id: str, bounds: dict
) -> None:
    """A time bound that does not parse is a BAD_REQUEST, not an open or empty range."""
    error = _error(service.get_run_metrics(MetricQuery(any_run_id, "loss", **bounds)))
    assert error.code is ErrorCode.BAD_REQUEST
    assert error.message.startswith("Invalid '")


def test_metrics_accept_iso_bounds(service: StudioService, store: QueryStore, any_run_id: str) -> None:
    series = store.get_run_metrics(any_run_id, "loss")
    query = MetricQuery(any_run_id, "loss", series[0].ts, series[2].ts)
    match service.get_run_metrics(query):
        case Ok(value=points):
            assert [p.ts for p in points] == [p.ts for p in series[:3]]
        case Err(error=error):
            pytest.fail(f"unexpected error {error}")


def test_metrics_ok(service: StudioService, any_run_id: str) -> None:
    match service.get_run_metrics(MetricQuery(any_run_id, "throughput")):
        case Ok(value=points):
            assert points
            assert {p.name for p in points} == {"throughput"}
        case Err(error=error):
            pytest.fail(f"unexpected error {error}")


def test_create_run_json(service: StudioService) -> None:
    """A valid JSON config creates a running run whose config text round-trips."""
    result = service.create_run(CreateRunRequest(ConfigLanguage.JSON, VALID_CONFIG_JSON))
    assert isinstance(result, Ok)
    created = result.value
    assert created.run.status is RunStatus.RUNNING
    version = service.get_config_version(created.run.config_version_id)
    assert isinstance(version, Ok)
    assert version.value.content == VALID_CONFIG_JSON


def test_create_run_yaml(service: StudioService) -> None:
    """YAML configs are accepted the same way; owner comes from the config."""
    result = service.create_run(CreateRunRequest(ConfigLanguage.YAML, VALID_CONFIG_YAML))
    assert isinstance(result, Ok)
    assert result.value.experiment.owner == "mika"
    assert result.value.config_version.language is ConfigLanguage.YAML


def test_create_run_parse_error(service: StudioService) -> None:
    """Text that is not valid in its declared language is a CONFIG_PARSE_ERROR."""
    error = _error(service.create_run(CreateRunRequest(ConfigLanguage.JSON, "{not json")))
    assert error.code is ErrorCode.CONFIG_PARSE_ERROR
    assert error.http_status == 400

    error = _error(service.create_run(CreateRunRequest(ConfigLanguage.YAML, "a: [1, 2")))
    assert error.code is ErrorCode.CONFIG_PARSE_ERROR


def test_create_run_schema_error_details(service: StudioService) -> None:
    """Well-formed text that breaks the schema reports per-field details."""
    error = _error(
        service.create_run(CreateRunRequest(ConfigLanguage.JSON, '{"name": "", "owner": "a"}'))
    )
    assert error.code is ErrorCode.CONFIG_SCHEMA_ERROR
    assert error.message == "Config failed schema validation."
    locs = {item["loc"] for item in error.details}
    assert "name" in locs
    assert "training" in locs
    assert all({"loc", "msg", "type"} <= set(item) for item in error.details)


def test_create_run_rejects_out_of_range_gpus(service: StudioService) -> None:
    """Schema bounds apply: gpus must be 1..32."""
    content = VALID_CONFIG_JSON.replace('"gpus": 4', '"gpus": 64')
    error = _error(service.create_run(CreateRunRequest(ConfigLanguage.JSON, content)))
    assert error.code is ErrorCode.CONFIG_SCHEMA_ERROR
    assert "training.compute.gpus" in {item["loc"] for item in error.details}


@pytest.mark.parametrize(
    "language, content",
    [
        (ConfigLanguage.JSON, VALID_CONFIG_JSON.replace("0.0005", "Infinity")),
        (ConfigLanguage.JSON, VALID_CONFIG_JSON.replace("0.0005", "NaN")),
        (ConfigLanguage.YAML, VALID_CONFIG_YAML.replace("0.0003", ".inf")),
    ],
)
def test_create_run_rejects_non_finite_learning_rate(
    service: StudioService, language: ConfigLanguage, content: str
) -> None:
    """learningRate must be a finite positive number."""
    error = _error(service.create_run(CreateRunRequest(language, content)))
    assert error.code is ErrorCode.CONFIG_SCHEMA_ERROR
    assert "training.hyperparams.learningRate" in {item["loc"] for item in error.details}


def test_create_run_unknown_experiment(service: StudioService) -> None:
    error = _error(
        service.create_run(CreateRunRequest(ConfigLanguage.JSON, VALID_CONFIG_JSON, "exp_nope"))
    )
    assert error.code is ErrorCode.NOT_FOUND


@pytest.mark.parametrize(
    "body, message",
    [
        (None, "Expected JSON body."),
        ([], "Expected JSON body."),
        ({"language": "toml", "content": "x"}, 'Expected language to be "yaml" or "json".'),
        ({"language": "json"}, "Expected content to be a non-empty string."),
        ({"language": "json", "content": "   "}, "Expected content to be a non-empty string."),
    ],
)
def test_create_run_request_validation(body, message: str) -> None:
    """Malformed request bodies are BAD_REQUEST with a specific message."""
    error = _error(CreateRunRequest.from_body(body))
    assert error.code is ErrorCode.BAD_REQUEST
    assert error.message == message


def test_create_run_request_ok() -> None:
    result = CreateRunRequest.from_body({"language": "yaml", "content": "name: x"})
    assert result == Ok(CreateRunRequest(ConfigLanguage.YAML, "name: x"))


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 200), ("", 200), ("50", 50), ("abc", 200), ("12.7", 12), ("inf", 200), (7, 7)],
)
def test_parse_limit(raw, expected: int) -> None:
    """Page sizes parse leniently and fall back to the default."""
    assert parse_limit(raw) == expected


def test_chaos_error_is_retryable() -> None:
    assert ApiError(ErrorCode.CHAOS_500, "x").retryable
    assert ApiError(ErrorCode.CHAOS_500, "x").http_status == 500
    assert not ApiError(ErrorCode.NOT_FOUND, "x").retryable


def test_template_summaries_omit_versions(service: StudioService) -> None:
    result = service.list_authoring_templates()
    assert isinstance(result, Ok)
    assert all("versions" not in summary for summary in result.value)
    assert all("latestConfigVersionId" in summary for summary in result.value)
