"""Random but valid authoring configs for generated runs and templates."""

from typing import Any

from ..schemas.authoring import AuthoringConfig, validate_config
from ..statistics.prng import Rng, chance, pick, random_float, random_int

OWNERS = ("deb", "sara", "mika", "chen", "ravi", "sam", "noor", "jules")
DATASETS = ("support_intents_v2", "ranker_clicks_2025Q2", "fraud_graph_v5")
GPU_TYPES = ("A100-80GB", "H100-80GB", "L40S")
CONFIG_TAGS = ("baseline", "ablation", "sweep", "stability", "eval")

_ADJECTIVES = (
    "amber",
    "brisk",
    "carbon",
    "delta",
    "ember",
    "flux",
    "glacier",
    "helium",
    "ivory",
    "jolt",
    "kinetic",
    "lumen",
)
_NOUNS = ("otter", "falcon", "orchid", "quartz", "satellite", "kepler", "gizmo")


def format_run_name(rng: Rng) -> str:
    return f"{pick(rng, _ADJECTIVES)}-{pick(rng, _NOUNS)}-{random_int(rng, 10, 99)}"


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Recursively overlay patch onto a copy of base. Lists are replaced, not merged."""
    out = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict):
            existing = out.get(key)
            out[key] = deep_merge(existing if isinstance(existing, dict) else {}, value)
        else:
            out[key] = value
    return out


def make_config(rng: Rng, overrides: dict[str, Any] | None = None) -> AuthoringConfig:
    """
    Draw a full config, then shallow-merge overrides on top.

    All draws happen regardless of overrides (14 in total) so callers can
    override fields without shifting the stream.
    """
    owner = pick(rng, OWNERS)
    dataset_name = pick(rng, DATASETS)
    dataset_version = f"v{random_int(rng, 2, 11)}.{random_int(rng, 0, 9)}"

    config: dict[str, Any] = {
        "name": f"trainer/{format_run_name(rng)}",
        "description": "Synthetic config generated for AI Infra Studio.",
        "owner": owner,
        "tags": [pick(rng, CONFIG_TAGS), f"ds:{dataset_name}"],
    }
    config["training"] = {
        "dataset": {"name": dataset_name, "version": dataset_version},
        "compute": {
            "gpuType": pick(rng, GPU_TYPES),
            "gpus": pick(rng, (1, 2, 4, 8)),
            "mixedPrecision": chance(rng, 0.8),
        },
        "hyperparams": {
            "learningRate": round(random_float(rng, 0.00005, 0.0015), 6),
            "batchSize": pick(rng, (16, 32, 64, 128)),
            "epochs": pick(rng, (3, 5, 8, 12, 20)),
        },
    }

    merged = {**config, **(overrides or {})}
    return validate_config(merged)
