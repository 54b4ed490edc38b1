"""Shared fixtures: a fixed seed and clock so every dataset is reproducible."""

from datetime import datetime, timezone

import pytest

from studiosim.store import QueryStore
from studiosim.streaming.clock import ManualScheduler

SEED = "t1"
NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)

VALID_CONFIG_JSON = """{
  "name": "x",
  "owner": "sara",
  "tags": ["quick"],
  "training": {
    "dataset": {"name": "support_intents_v2", "version": "v3.1"},
    "compute": {"gpuType": "A100-80GB", "gpus": 4, "mixedPrecision": true},
    "hyperparams": {"learningRate": 0.0005, "batchSize": 64, "epochs": 5}
  }
}"""

VALID_CONFIG_YAML = """\
name: y
owner: mika
training:
  dataset:
    name: fraud_graph_v5
    version: v4.2
  compute:
    gpuType: H100-80GB
    gpus: 8
  hyperparams:
    learningRate: 0.0003
    batchSize: 128
    epochs: 8
"""


@pytest.fixture
def store() -> QueryStore:
    """A fresh store for seed t1, frozen at 2024-01-01T00:00:00Z."""
    return QueryStore(seed=SEED, now_fn=lambda: NOW)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def any_run_id(store: QueryStore) -> str:
    experiment = store.list_experiments()[0]
    runs = store.list_runs(experiment.id)
    assert runs
    return runs[0].id
