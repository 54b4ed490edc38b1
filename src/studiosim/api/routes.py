"""
HTTP routes over the studio service.

GET  /health
GET  /dashboard
GET  /experiments                        GET /experiments/{id}      GET /experiments/{id}/runs
POST /runs                               GET /runs/{id}
GET  /runs/{id}/logs?cursor=&limit=      GET /runs/{id}/metrics?name=&from=&to=
GET  /runs/{id}/log-fingerprints?limit=
GET  /registry/models                    GET /registry/models/{id}/versions
GET  /deployments                        GET /deployments/{id}
POST /deployments/{id}/simulate-incident|advance|rollback
GET  /traces                             GET /traces/{id}
GET  /authoring/templates                GET /authoring/templates/{id}
GET  /config-versions/{id}               GET /config-versions/{id}/lineage
"""

import json
from typing import Any

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse

from ..models import to_wire
from ..service import (
    CreateRunRequest,
    Err,
    LogQuery,
    MetricQuery,
    Ok,
    StudioService,
    bad_request,
    parse_limit,
)

router = APIRouter()


def _service(request: Request) -> StudioService:
    return request.app.state.service


def respond(result: Any, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    match result:
        case Ok(value=value):
            return JSONResponse(status_code=status_code, content=to_wire(value))
        case Err(error=error):
            return JSONResponse(status_code=error.http_status, content=error.to_dict())
    raise TypeError(f"Not a service result: {result!r}")


@router.get("/health")
def health(request: Request) -> dict[str, Any]:
    return {"ok": True, "seed": _service(request).seed}


@router.get("/dashboard")
def dashboard(request: Request) -> JSONResponse:
    return respond(_service(request).get_dashboard())


# Experiments and runs


@router.get("/experiments")
def list_experiments(request: Request) -> JSONResponse:
    return respond(_service(request).list_experiments())


@router.get("/experiments/{experiment_id}")
def get_experiment(request: Request, experiment_id: str) -> JSONResponse:
    return respond(_service(request).get_experiment(experiment_id))


@router.get("/experiments/{experiment_id}/runs")
def list_runs(request: Request, experiment_id: str) -> JSONResponse:
    return respond(_service(request).list_runs(experiment_id))


@router.post("/runs")
async def create_run(request: Request) -> JSONResponse:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return respond(bad_request("Expected JSON body."))

    match CreateRunRequest.from_body(body):
        case Ok(value=create):
            result = _service(request).create_run(create)
        case Err() as err:
            return respond(err)
    return respond(result, status_code=status.HTTP_201_CREATED)


@router.get("/runs/{run_id}")
def get_run(request: Request, run_id: str) -> JSONResponse:
    return respond(_service(request).get_run(run_id))


@router.get("/runs/{run_id}/logs")
def get_run_logs(
    request: Request,
    run_id: str,
    cursor: str | None = None,
    limit: str | None = None,
) -> JSONResponse:
    query = LogQuery(run_id=run_id, cursor=cursor, limit=parse_limit(limit))
    return respond(_service(request).get_run_logs(query))


@router.get("/runs/{run_id}/metrics")
def get_run_metrics(
    request: Request,
    run_id: str,
    name: str | None = None,
    from_ts: str | None = Query(default=None, alias="from"),
    to_ts: str | None = Query(default=None, alias="to"),
) -> JSONResponse:
    query = MetricQuery(run_id=run_id, name=name, from_ts=from_ts, to_ts=to_ts)
    return respond(_service(request).get_run_metrics(query))


@router.get("/runs/{run_id}/log-fingerprints")
def get_log_fingerprints(request: Request, run_id: str, limit: str | None = None) -> JSONResponse:
    return respond(_service(request).get_log_fingerprints(run_id, parse_limit(limit, 20)))


# Registry and deployments


@router.get("/registry/models")
def list_models(request: Request) -> JSONResponse:
    return respond(_service(request).list_models())


@router.get("/registry/models/{model_id}/versions")
def list_model_versions(request: Request, model_id: str) -> JSONResponse:
    return respond(_service(request).list_model_versions(model_id))


@router.get("/deployments")
def list_deployments(request: Request) -> JSONResponse:
    return respond(_service(request).list_deployments())


@router.get("/deployments/{deployment_id}")
def get_deployment(request: Request, deployment_id: str) -> JSONResponse:
    return respond(_service(request).get_deployment(deployment_id))


@router.post("/deployments/{deployment_id}/simulate-incident")
def simulate_incident(request: Request, deployment_id: str) -> JSONResponse:
    return respond(_service(request).simulate_incident(deployment_id))


@router.post("/deployments/{deployment_id}/advance")
def advance_deployment(request: Request, deployment_id: str) -> JSONResponse:
    return respond(_service(request).advance_deployment(deployment_id))


@router.post("/deployments/{deployment_id}/rollback")
def rollback_deployment(request: Request, deployment_id: str) -> JSONResponse:
    return respond(_service(request).rollback_deployment(deployment_id))


# Traces and authoring


@router.get("/traces")
def list_traces(request: Request) -> JSONResponse:
    return respond(_service(request).list_traces())


@router.get("/traces/{trace_id}")
def get_trace(request: Request, trace_id: str) -> JSONResponse:
    return respond(_service(request).get_trace(trace_id))


@router.get("/authoring/templates")
def list_templates(request: Request) -> JSONResponse:
    return respond(_service(request).list_authoring_templates())


@router.get("/authoring/templates/{template_id}")
def get_template(request: Request, template_id: str) -> JSONResponse:
    return respond(_service(request).get_authoring_template(template_id))


@router.get("/config-versions/{version_id}")
def get_config_version(request: Request, version_id: str) -> JSONResponse:
    return respond(_service(request).get_config_version(version_id))


@router.get("/config-versions/{version_id}/lineage")
def get_config_lineage(request: Request, version_id: str) -> JSONResponse:
    return respond(_service(request).get_config_lineage(version_id))
