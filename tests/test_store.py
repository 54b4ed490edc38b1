"""Tests for the query store: paging, range queries, mutations and copies."""

import pytest
from conftest import NOW, SEED, VALID_CONFIG_JSON

from studiosim.generators import METRIC_NAMES, generate_dataset
from studiosim.models import (
    ConfigLanguage,
    DeploymentStage,
    DeploymentStatus,
    LogLevel,
    RunStatus,
    StepStatus,
)
from studiosim.schemas.authoring import parse_config_text, validate_config
from studiosim.store import MAX_LOG_LIMIT, QUICK_EXPERIMENT_ID, QueryStore
from studiosim.timeutil import parse_iso


def _config():
    return validate_config(parse_config_text(ConfigLanguage.JSON, VALID_CONFIG_JSON))


def _walk_logs(store: QueryStore, run_id: str, limit: int) -> list:
    pages = []
    cursor = None
    while True:
        page = store.get_run_logs(run_id, cursor=cursor, limit=limit)
        assert page is not None
        assert len(page.items) <= limit
        pages.append(page.items)
        if page.next_cursor is None:
            break
        cursor = page.next_cursor
    return [line for items in reversed(pages) for line in items]


@pytest.fixture
def canary_store() -> QueryStore:
    """A store holding at least one canary deployment."""
    for i in range(1, 40):
        candidate = QueryStore(seed=f"t{i}", now_fn=lambda: NOW)
        if any(d.stage is DeploymentStage.CANARY for d in candidate.list_deployments()):
            return candidate
    pytest.fail("no seed produced a canary deployment")


def _canary_id(store: QueryStore) -> str:
    return next(d.id for d in store.list_deployments() if d.stage is DeploymentStage.CANARY)


# Experiments and runs


def test_experiments_newest_first(store: QueryStore) -> None:
    """Experiments list newest createdAt first."""
    stamps = [parse_iso(e.created_at) for e in store.list_experiments()]
    assert stamps == sorted(stamps, reverse=True)


def test_runs_newest_first(store: QueryStore) -> None:
    """An experiment's runs list newest startedAt first."""
    for experiment in store.list_experiments():
        runs = store.list_runs(experiment.id)
        stamps = [parse_iso(r.started_at) for r in runs]
        assert stamps == sorted(stamps, reverse=True)


def test_missing_entities_are_none(store: QueryStore) -> None:
    """Unknown ids read as None rather than raising."""
    assert store.get_experiment("exp_missing") is None
    assert store.list_runs("exp_missing") is None
    assert store.get_run("run_missing") is None
    assert store.get_run_logs("run_missing") is None
    assert store.get_run_metrics("run_missing", "loss") is None
    assert store.get_deployment("dep_missing") is None
    assert store.advance_deployment("dep_missing") is None
    assert store.rollback_deployment("dep_missing") is None
    assert store.simulate_incident("dep_missing") is None
    assert store.get_trace("trace_missing") is None
    assert store.get_config_version("cfg_missing") is None
    assert store.get_config_lineage("cfg_missing") is None


def test_get_run_returns_copy(store: QueryStore, any_run_id: str) -> None:
    """Mutating a returned run does not touch the store."""
    detail = store.get_run(any_run_id)
    original = detail.to_dict()
    detail.run.status = RunStatus.QUEUED
    detail.run.artifacts.clear()
    detail.timeline.clear()

    assert store.get_run(any_run_id).to_dict() == original


def test_get_run_includes_timeline(store: QueryStore, any_run_id: str) -> None:
    """The run detail wire shape carries the run fields plus its timeline."""
    wire = store.get_run(any_run_id).to_dict()
    assert wire["id"] == any_run_id
    assert wire["timeline"]
    assert "startedAt" in wire


# Log paging


@pytest.mark.parametrize("limit", [1, 7, 200, MAX_LOG_LIMIT])
def test_log_pages_chain_to_full_log(store: QueryStore, any_run_id: str, limit: int) -> None:
    """Following nextCursor from the tail yields every line once, in order."""
    expected = generate_dataset(SEED, NOW).run_data[any_run_id].logs
    assert _walk_logs(store, any_run_id, limit) == expected


def test_first_page_is_most_recent(store: QueryStore, any_run_id: str) -> None:
    """Without a cursor the page holds the newest lines, ascending."""
    page = store.get_run_logs(any_run_id, limit=5)
    full = generate_dataset(SEED, NOW).run_data[any_run_id].logs
    assert page.items == full[-5:]
    assert page.next_cursor == str(len(full) - 5)


def test_limit_is_clamped(store: QueryStore, any_run_id: str) -> None:
    """Limits below 1 become 1; above 1000 become 1000."""
    assert len(store.get_run_logs(any_run_id, limit=0).items) == 1
    assert len(store.get_run_logs(any_run_id, limit=-3).items) == 1
    assert len(store.get_run_logs(any_run_id, limit=50_000).items) == MAX_LOG_LIMIT


def test_cursor_zero_is_start_of_log(store: QueryStore, any_run_id: str) -> None:
    """A cursor at the first line returns nothing further back."""
    page = store.get_run_logs(any_run_id, cursor="0", limit=10)
    assert page.items == []
    assert page.next_cursor is None


@pytest.mark.parametrize("cursor", ["abc", "-5", ""])
def test_unusable_cursor_reads_from_the_end(
    store: QueryStore, any_run_id: str, cursor: str
) -> None:
    """An unparsable or negative cursor behaves like no cursor."""
    assert store.get_run_logs(any_run_id, cursor=cursor, limit=10) == store.get_run_logs(
        any_run_id, limit=10
    )


# Metrics


def test_metric_range_is_inclusive(store: QueryStore, any_run_id: str) -> None:
    """from/to bounds keep the points that sit exactly on them."""
    series = store.get_run_metrics(any_run_id, "loss")
    window = store.get_run_metrics(any_run_id, "loss", series[10].ts, series[20].ts)
    assert window == series[10:21]


def test_metric_open_bounds(store: QueryStore, any_run_id: str) -> None:
    """Either bound may be omitted."""
    series = store.get_run_metrics(any_run_id, "gpu_util")
    assert store.get_run_metrics(any_run_id, "gpu_util", from_ts=series[-3].ts) == series[-3:]
    assert store.get_run_metrics(any_run_id, "gpu_util", to_ts=series[2].ts) == series[:3]


def test_metric_range_outside_series_is_empty(store: QueryStore, any_run_id: str) -> None:
    """A window beyond the data returns no points, not an error."""
    assert store.get_run_metrics(any_run_id, "loss", from_ts="2030-01-01T00:00:00.000Z") == []
    assert store.get_run_metrics(any_run_id, "no_such_metric") == []


# Fingerprints


def test_log_fingerprints_ranked_by_count(store: QueryStore, any_run_id: str) -> None:
    """Groups come most frequent first and never overcount the log."""
    groups = store.get_log_fingerprints(any_run_id, limit=50)
    counts = [g.count for g in groups]
    assert counts == sorted(counts, reverse=True)
    total_lines = len(generate_dataset(SEED, NOW).run_data[any_run_id].logs)
    assert sum(counts) <= total_lines
    assert all(isinstance(g.level, LogLevel) for g in groups)


def test_log_fingerprints_respect_limit(store: QueryStore, any_run_id: str) -> None:
    assert len(store.get_log_fingerprints(any_run_id, limit=3)) <= 3


# Run creation


def test_create_run_from_config(store: QueryStore) -> None:
    """A new run starts running, links its config text and lands in Quick Runs."""
    assert store.get_experiment(QUICK_EXPERIMENT_ID) is None

    created = store.create_run_from_config(ConfigLanguage.JSON, VALID_CONFIG_JSON, _config())

    assert created.run.status is RunStatus.RUNNING
    assert created.run.ended_at is None
    assert "endedAt" not in created.run.to_dict()
    assert created.experiment.id == QUICK_EXPERIMENT_ID
    assert created.experiment.name == "Quick Runs"

    version = store.get_config_version(created.run.config_version_id)
    assert version is not None
    assert version.content == VALID_CONFIG_JSON
    assert version.language is ConfigLanguage.JSON

    assert store.list_runs(QUICK_EXPERIMENT_ID)[0].id == created.run.id
    assert created.run.meta.dataset.name == "support_intents_v2"
    assert created.run.meta.compute.gpus == 4


def test_created_run_has_series(store: QueryStore) -> None:
    """The new run gets logs, every metric series and a commit at its start."""
    created = store.create_run_from_config(ConfigLanguage.JSON, VALID_CONFIG_JSON, _config())
    run_id = created.run.id
    assert store.get_run_logs(run_id).items
    for name in METRIC_NAMES:
        assert store.get_run_metrics(run_id, name)
    detail = store.get_run(run_id)
    commits = [e for e in detail.timeline if e.type.value == "commit"]
    assert [c.ts for c in commits] == [created.run.started_at]


def test_quick_experiment_created_once(store: QueryStore) -> None:
    """Later runs reuse the experiment and are prepended to it."""
    first = store.create_run_from_config(ConfigLanguage.JSON, VALID_CONFIG_JSON, _config())
    second = store.create_run_from_config(ConfigLanguage.JSON, VALID_CONFIG_JSON, _config())
    ids = [r.id for r in store.list_runs(QUICK_EXPERIMENT_ID)]
    assert set(ids) == {first.run.id, second.run.id}
    assert ids[0] == second.run.id
    quick = [e for e in store.list_experiments() if e.id == QUICK_EXPERIMENT_ID]
    assert len(quick) == 1


def test_create_run_into_existing_experiment(store: QueryStore) -> None:
    """An explicit experiment id places the run there."""
    experiment = store.list_experiments()[-1]
    created = store.create_run_from_config(
        ConfigLanguage.JSON, VALID_CONFIG_JSON, _config(), experiment_id=experiment.id
    )
    assert created.run.experiment_id == experiment.id
    assert store.list_runs(experiment.id)[0].id == created.run.id


# Deployments


def test_advance_three_times_reaches_succeeded(canary_store: QueryStore) -> None:
    """canary -> ramp -> prod -> succeeded, with steps following along."""
    dep_id = _canary_id(canary_store)

    dep = canary_store.advance_deployment(dep_id)
    assert (dep.stage, dep.status) == (DeploymentStage.RAMP, DeploymentStatus.RUNNING)
    assert [s.status for s in dep.rollout_steps] == [
        StepStatus.DONE,
        StepStatus.ACTIVE,
        StepStatus.PENDING,
    ]

    dep = canary_store.advance_deployment(dep_id)
    assert (dep.stage, dep.status) == (DeploymentStage.PROD, DeploymentStatus.RUNNING)
    assert [s.status for s in dep.rollout_steps] == [
        StepStatus.DONE,
        StepStatus.DONE,
        StepStatus.ACTIVE,
    ]

    dep = canary_store.advance_deployment(dep_id)
    assert (dep.stage, dep.status) == (DeploymentStage.PROD, DeploymentStatus.SUCCEEDED)
    assert all(s.status is StepStatus.DONE for s in dep.rollout_steps)
    assert dep.ended_at is not None


def test_rollback_is_terminal(canary_store: QueryStore) -> None:
    """After rollback, advance changes nothing."""
    dep_id = _canary_id(canary_store)
    canary_store.advance_deployment(dep_id)
    rolled = canary_store.rollback_deployment(dep_id)
    assert rolled.status is DeploymentStatus.ROLLED_BACK
    assert rolled.ended_at is not None

    after = canary_store.advance_deployment(dep_id)
    assert after.to_dict() == rolled.to_dict()
    assert canary_store.get_deployment(dep_id).status is DeploymentStatus.ROLLED_BACK


def test_rollback_at_canary_keeps_ramp_step(canary_store: QueryStore) -> None:
    """A canary rollback marks step 0 done, leaves step 1 as it was, fails step 2."""
    dep_id = _canary_id(canary_store)
    before = canary_store.get_deployment(dep_id)
    rolled = canary_store.rollback_deployment(dep_id)
    statuses = [s.status for s in rolled.rollout_steps]
    assert statuses == [StepStatus.DONE, before.rollout_steps[1].status, StepStatus.FAILED]
    assert rolled.stage is DeploymentStage.CANARY


def test_rollback_after_ramp_marks_second_step_done(canary_store: QueryStore) -> None:
    dep_id = _canary_id(canary_store)
    canary_store.advance_deployment(dep_id)
    rolled = canary_store.rollback_deployment(dep_id)
    assert [s.status for s in rolled.rollout_steps] == [
        StepStatus.DONE,
        StepStatus.DONE,
        StepStatus.FAILED,
    ]


def test_incident_pauses_without_changing_stage(store: QueryStore) -> None:
    """simulate_incident prepends an incident and pauses the rollout."""
    dep = store.list_deployments()[0]
    updated = store.simulate_incident(dep.id)
    assert updated.status is DeploymentStatus.PAUSED
    assert updated.stage is dep.stage
    assert len(updated.incidents) == len(dep.incidents) + 1

    second = store.simulate_incident(dep.id)
    assert second.incidents[1].id == updated.incidents[0].id


def test_incident_after_rollback_keeps_rolled_back(store: QueryStore) -> None:
    """The incident is recorded but rolled_back stays terminal."""
    dep = store.list_deployments()[0]
    store.rollback_deployment(dep.id)
    updated = store.simulate_incident(dep.id)
    assert updated.status is DeploymentStatus.ROLLED_BACK
    assert len(updated.incidents) == len(dep.incidents) + 1


def test_advance_resumes_paused_deployment(canary_store: QueryStore) -> None:
    """An incident pauses; the next advance moves on and runs again."""
    dep_id = _canary_id(canary_store)
    canary_store.simulate_incident(dep_id)
    dep = canary_store.advance_deployment(dep_id)
    assert dep.status is DeploymentStatus.RUNNING
    assert dep.stage is DeploymentStage.RAMP


# Authoring


def test_templates_sorted_by_title(store: QueryStore) -> None:
    titles = [t.title for t in store.list_authoring_templates()]
    assert titles == sorted(titles)
    assert len(titles) == 3


def test_lineage_walks_back_to_root(store: QueryStore) -> None:
    """Lineage of the latest version lists every version, newest first."""
    template = store.list_authoring_templates()[0]
    chain = store.get_config_lineage(template.latest_config_version_id)
    assert [v.id for v in chain] == [v.id for v in reversed(template.versions)]
    assert chain[-1].parent_id is None


def test_lineage_stops_on_a_loop(store: QueryStore) -> None:
    """A corrupted parent chain terminates instead of spinning."""
    template = store.list_authoring_templates()[0]
    versions = store._data.config_versions
    versions[template.versions[0].id].parent_id = template.latest_config_version_id

    chain = store.get_config_lineage(template.latest_config_version_id)
    assert len(chain) == len(template.versions)


# Dashboard


def test_dashboard_shape(store: QueryStore) -> None:
    """Active runs are running, lists are capped, sparklines have 60 points."""
    dashboard = store.get_dashboard()
    assert len(dashboard.active_runs) <= 6
    assert all(r.status is RunStatus.RUNNING for r in dashboard.active_runs)
    assert len(dashboard.recent_deploys) <= 6
    assert len(dashboard.alerts) <= 8
    assert set(dashboard.sparklines) == {"gpu_util", "throughput"}
    assert all(len(points) == 60 for points in dashboard.sparklines.values())


def test_dashboard_is_stable_within_a_minute(store: QueryStore) -> None:
    """Sparklines are seeded by the minute bucket, so a fixed clock repeats them."""
    assert store.get_dashboard().to_dict() == store.get_dashboard().to_dict()


def test_stats_counts(store: QueryStore) -> None:
    stats = store.stats()
    assert stats.experiments == 9
    assert stats.models == 4
    assert stats.deployments == 8
    assert stats.traces == 18
    assert stats.templates == 3
