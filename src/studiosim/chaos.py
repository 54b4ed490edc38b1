"""
Opt-in synthetic request failures.

A request that carries ``chaos=1`` fails with a fixed CHAOS_500 payload at the
configured rate. Requests without the flag are never touched, and test mode
turns the whole thing off.
"""

import logging
import random
from collections.abc import Mapping

from .config import DEFAULT_CHAOS_RATE, Settings
from .service import ApiError, ErrorCode

logger = logging.getLogger(__name__)

CHAOS_QUERY_PARAM = "chaos"

CHAOS_ERROR = ApiError(
    ErrorCode.CHAOS_500,
    "Synthetic 500 (chaos mode). Retry should recover.",
    {"hint": "Remove ?chaos=1 to disable failures."},
)


class ChaosInjector:
    def __init__(
        self,
        rate: float = DEFAULT_CHAOS_RATE,
        test_mode: bool = False,
        rand: random.Random | None = None,
    ):
        self.rate = rate
        self.test_mode = test_mode
        self._rand = rand or random.Random()
        self.injected = 0

    @classmethod
    def from_settings(cls, settings: Settings, rand: random.Random | None = None) -> "ChaosInjector":
        return cls(rate=settings.chaos_rate, test_mode=settings.test_mode, rand=rand)

    def should_fail(self, query: Mapping[str, str]) -> bool:
        """One draw, only for opted-in requests outside test mode."""
        if self.test_mode:
            return False
        if query.get(CHAOS_QUERY_PARAM) != "1":
            return False
        return self._rand.random() < self.rate

    def check(self, query: Mapping[str, str], path: str = "") -> ApiError | None:
        """The error to answer with, or None to handle the request normally."""
        if not self.should_fail(query):
            return None
        self.injected += 1
        logger.warning("Chaos: failing %s (rate=%.2f)", path or "request", self.rate)
        return CHAOS_ERROR
