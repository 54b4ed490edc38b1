"""Tests for settings loaded from the environment and an optional YAML file."""

from pathlib import Path

import pytest

from studiosim.config import (
    DEFAULT_CHAOS_RATE,
    DEFAULT_SEED,
    Settings,
    load_yaml,
    resource_attributes,
)

_ENV_VARS = (
    "STUDIOSIM_CONFIG",
    "STUDIOSIM_SEED",
    "STUDIOSIM_ENV",
    "CHAOS_RATE",
    "WS_CHAOS_DISCONNECT",
    "WS_DISCONNECT_MIN_MS",
    "WS_DISCONNECT_MAX_MS",
    "LOG_LEVEL",
    "HOST",
    "PORT",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "OTEL_EXPORTER_OTLP_PROTOCOL",
    "OTEL_EXPORTER_OTLP_HEADERS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test from an environment with no studiosim settings."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    """With nothing set, every setting takes its default."""
    settings = Settings.from_env()
    assert settings.seed == DEFAULT_SEED
    assert settings.chaos_rate == DEFAULT_CHAOS_RATE
    assert settings.ws_chaos_disconnect is True
    assert settings.disconnect_window_ms == (20_000, 45_000)
    assert settings.port == 4000
    assert not settings.test_mode


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Environment variables replace defaults."""
    monkeypatch.setenv("STUDIOSIM_SEED", "t1")
    monkeypatch.setenv("CHAOS_RATE", "0.5")
    monkeypatch.setenv("WS_CHAOS_DISCONNECT", "0")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = Settings.from_env()
    assert settings.seed == "t1"
    assert settings.chaos_rate == 0.5
    assert settings.ws_chaos_disconnect is False
    assert settings.port == 8080
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("raw", ["abc", "1.5", "-0.1", "nan"])
def test_bad_chaos_rate_falls_back(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    """Non-numeric or out-of-range rates use the default."""
    monkeypatch.setenv("CHAOS_RATE", raw)
    assert Settings.from_env().chaos_rate == DEFAULT_CHAOS_RATE


def test_test_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STUDIOSIM_ENV", "TEST")
    assert Settings.from_env().test_mode


def test_disconnect_window_is_ordered(monkeypatch: pytest.MonkeyPatch) -> None:
    """Min and max configured the wrong way round still give an ordered window."""
    monkeypatch.setenv("WS_DISCONNECT_MIN_MS", "9000")
    monkeypatch.setenv("WS_DISCONNECT_MAX_MS", "3000")
    assert Settings.from_env().disconnect_window_ms == (3000, 9000)


def test_yaml_file_layer(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A YAML file sets values; the environment still wins over it."""
    path = tmp_path / "studiosim.yaml"
    path.write_text("seed: from-file\nchaos_rate: 0.3\nport: 5000\n", encoding="utf-8")
    monkeypatch.setenv("STUDIOSIM_CONFIG", str(path))
    monkeypatch.setenv("PORT", "6000")

    settings = Settings.from_env()
    assert settings.seed == "from-file"
    assert settings.chaos_rate == 0.3
    assert settings.port == 6000


def test_load_yaml_tolerates_bad_files(tmp_path: Path) -> None:
    """Missing, unparsable or non-mapping files give the default."""
    assert load_yaml(tmp_path / "missing.yaml") == {}
    broken = tmp_path / "broken.yaml"
    broken.write_text("a: [1, 2", encoding="utf-8")
    assert load_yaml(broken) == {}
    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n", encoding="utf-8")
    assert load_yaml(listing, default={"x": 1}) == {"x": 1}


def test_resource_attributes() -> None:
    attrs = resource_attributes("t1")
    assert attrs["service.name"] == "studiosim"
    assert attrs["studiosim.seed"] == "t1"


def test_otlp_settings_from_standard_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """The OTEL_EXPORTER_OTLP_* variables configure trace export."""
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4317")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_PROTOCOL", "grpc")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_HEADERS", "x-tenant=acme, authorization=Bearer t,broken")
    settings = Settings.from_env()
    assert settings.otlp_endpoint == "http://collector:4317"
    assert settings.otlp_protocol == "grpc"
    assert settings.otlp_headers == (("x-tenant", "acme"), ("authorization", "Bearer t"))


def test_otlp_defaults_to_local_http(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_PROTOCOL", "http/protobuf")
    settings = Settings.from_env()
    assert settings.otlp_endpoint == "http://localhost:4318"
    assert settings.otlp_protocol == "http"
    assert settings.otlp_headers == ()
