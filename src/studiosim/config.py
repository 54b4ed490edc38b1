"""
Process settings for the studio simulator.

Values come from environment variables, optionally layered over a YAML file
named by STUDIOSIM_CONFIG whose keys are the lower-case setting names
(``seed``, ``chaos_rate``, ``ws_disconnect_min_ms`` ...). Environment wins
over the file; the file wins over the defaults.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from . import __version__

DEFAULT_SEED = "ai-infra-studio"
DEFAULT_CHAOS_RATE = 0.18
DEFAULT_DISCONNECT_MIN_MS = 20_000
DEFAULT_DISCONNECT_MAX_MS = 45_000
SERVICE_NAME = "studiosim"
DEFAULT_OTLP_ENDPOINT = "http://localhost:4318"


def load_yaml(path: Path, default: Any = None) -> Any:
    """Load a YAML mapping; return default on a missing file, parse error or non-mapping."""
    if default is None:
        default = {}
    if not path.exists():
        return default
    try:
        with path.open(encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        return default
    return data if isinstance(data, dict) else default


def _lookup(env_var: str, file_values: dict[str, Any], key: str | None = None) -> Any:
    env = os.environ.get(env_var)
    if env is not None and env.strip() != "":
        return env.strip()
    return file_values.get(key or env_var.lower())


def _as_float(raw: Any, default: float, low: float, high: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if value != value or not low <= value <= high:
        return default
    return value


def _as_int(raw: Any, default: int) -> int:
    try:
        return int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return default


def _as_flag(raw: Any, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() not in ("0", "false", "no", "off")


def _as_protocol(raw: Any) -> str:
    """grpc, or http for anything else (including http/protobuf)."""
    return "grpc" if str(raw or "").strip().lower() == "grpc" else "http"


def _as_headers(raw: Any) -> tuple[tuple[str, str], ...]:
    """``k1=v1,k2=v2`` (or a YAML mapping) as ordered pairs; malformed entries are skipped."""
    if isinstance(raw, dict):
        return tuple((str(k), str(v)) for k, v in raw.items())
    pairs = []
    for item in str(raw or "").split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            pairs.append((key.strip(), value.strip()))
    return tuple(pairs)


@dataclass(frozen=True)
class Settings:
    seed: str = DEFAULT_SEED
    app_env: str = "development"
    chaos_rate: float = DEFAULT_CHAOS_RATE
    ws_chaos_disconnect: bool = True
    ws_disconnect_min_ms: int = DEFAULT_DISCONNECT_MIN_MS
    ws_disconnect_max_ms: int = DEFAULT_DISCONNECT_MAX_MS
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 4000
    otlp_endpoint: str = DEFAULT_OTLP_ENDPOINT
    otlp_protocol: str = "http"
    otlp_headers: tuple[tuple[str, str], ...] = ()

    @property
    def test_mode(self) -> bool:
        return self.app_env == "test"

    @property
    def disconnect_window_ms(self) -> tuple[int, int]:
        """(min, max) ordered, whatever order they were configured in."""
        low, high = self.ws_disconnect_min_ms, self.ws_disconnect_max_ms
        return (min(low, high), max(low, high))

    @classmethod
    def from_env(cls, config_path: Path | None = None) -> "Settings":
        path = config_path
        if path is None and os.environ.get("STUDIOSIM_CONFIG"):
            path = Path(os.environ["STUDIOSIM_CONFIG"])
        file_values = load_yaml(path) if path is not None else {}

        seed = _lookup("STUDIOSIM_SEED", file_values, "seed")
        app_env = _lookup("STUDIOSIM_ENV", file_values, "app_env")
        return cls(
            seed=str(seed or DEFAULT_SEED),
            app_env=str(app_env or "development").lower(),
            chaos_rate=_as_float(
                _lookup("CHAOS_RATE", file_values), DEFAULT_CHAOS_RATE, 0.0, 1.0
            ),
            ws_chaos_disconnect=_as_flag(_lookup("WS_CHAOS_DISCONNECT", file_values), True),
            ws_disconnect_min_ms=_as_int(
                _lookup("WS_DISCONNECT_MIN_MS", file_values), DEFAULT_DISCONNECT_MIN_MS
            ),
            ws_disconnect_max_ms=_as_int(
                _lookup("WS_DISCONNECT_MAX_MS", file_values), DEFAULT_DISCONNECT_MAX_MS
            ),
            log_level=str(_lookup("LOG_LEVEL", file_values) or "INFO").upper(),
            host=str(_lookup("HOST", file_values) or "0.0.0.0"),
            port=_as_int(_lookup("PORT", file_values), 4000),
            otlp_endpoint=str(
                _lookup("OTEL_EXPORTER_OTLP_ENDPOINT", file_values, "otlp_endpoint")
                or DEFAULT_OTLP_ENDPOINT
            ),
            otlp_protocol=_as_protocol(
                _lookup("OTEL_EXPORTER_OTLP_PROTOCOL", file_values, "otlp_protocol")
            ),
            otlp_headers=_as_headers(
                _lookup("OTEL_EXPORTER_OTLP_HEADERS", file_values, "otlp_headers")
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for this process, read once."""
    return Settings.from_env()


def resource_attributes(seed: str) -> dict[str, str]:
    """OTel resource attributes for exported spans."""
    return {
        "service.name": SERVICE_NAME,
        "service.version": __version__,
        "studiosim.seed": seed,
    }
