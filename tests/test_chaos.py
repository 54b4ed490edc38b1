"""Tests for opt-in synthetic failures."""

import random

from studiosim.chaos import CHAOS_ERROR, ChaosInjector
from studiosim.config import Settings
from studiosim.service import ErrorCode


def test_opted_in_requests_fail_at_rate_one() -> None:
    """Rate 1.0 with ?chaos=1 fails every time with CHAOS_500."""
    chaos = ChaosInjector(rate=1.0, rand=random.Random(1))
    for _ in range(50):
        error = chaos.check({"chaos": "1"}, "/experiments")
        assert error is CHAOS_ERROR
        assert error.code is ErrorCode.CHAOS_500
    assert chaos.injected == 50


def test_requests_without_flag_never_fail() -> None:
    """No opt-in, no failure, whatever the rate."""
    chaos = ChaosInjector(rate=1.0)
    assert all(chaos.check({}) is None for _ in range(50))
    assert all(chaos.check({"chaos": "0"}) is None for _ in range(50))
    assert all(chaos.check({"chaos": "true"}) is None for _ in range(50))
    assert chaos.injected == 0


def test_test_mode_disables_chaos() -> None:
    """Test mode bypasses the injector entirely."""
    chaos = ChaosInjector(rate=1.0, test_mode=True)
    assert all(chaos.check({"chaos": "1"}) is None for _ in range(50))


def test_rate_zero_never_fails() -> None:
    chaos = ChaosInjector(rate=0.0)
    assert all(chaos.check({"chaos": "1"}) is None for _ in range(50))


def test_rate_is_roughly_honoured() -> None:
    """Around 18% of opted-in requests fail at the default rate."""
    chaos = ChaosInjector(rand=random.Random(42))
    failures = sum(chaos.should_fail({"chaos": "1"}) for _ in range(5000))
    assert 0.14 < failures / 5000 < 0.22


def test_from_settings() -> None:
    chaos = ChaosInjector.from_settings(Settings(chaos_rate=0.4, app_env="test"))
    assert chaos.rate == 0.4
    assert chaos.test_mode


def test_error_payload_shape() -> None:
    """The payload carries code, message and a hint."""
    payload = CHAOS_ERROR.to_dict()
    assert payload["code"] == "CHAOS_500"
    assert "Retry" in payload["message"]
    assert payload["details"] == {"hint": "Remove ?chaos=1 to disable failures."}
