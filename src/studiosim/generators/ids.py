"""
Entity identifiers drawn from the dataset stream.

Format: ``{prefix}_{hex:8}{counter:4}``, e.g. ``run_3fa0c1d20007``. The random
half makes ids unguessable; the zero-padded counter keeps them ordered by
creation within one store.
"""

import math

from ..statistics.prng import Rng

_COMMIT_CHARS = "abcdef0123456789"


class IdFactory:
    """Mint ids from a shared stream. One draw per id."""

    def __init__(self, rng: Rng):
        self._rng = rng
        self._counter = 0

    @property
    def issued(self) -> int:
        return self._counter

    def __call__(self, prefix: str) -> str:
        self._counter += 1
        random_part = math.floor(self._rng.next() * 0xFFFFFFFF)
        return f"{prefix}_{random_part:08x}{self._counter:04x}"


def format_commit(rng: Rng) -> str:
    """Twelve hex characters, one draw each."""
    return "".join(_COMMIT_CHARS[math.floor(rng.next() * len(_COMMIT_CHARS))] for _ in range(12))


def hex_token(rng: Rng, scale: float) -> str:
    """Lower-case hex of floor(draw * scale); used for request and step ids."""
    return format(math.floor(rng.next() * scale), "x")
