"""
Seeded pseudo-random stream for reproducible synthetic data.

The seed string is folded into 32 bits with FNV-1a, and each draw runs the
state through a 32-bit avalanche mix (the mulberry32 construction). Two
streams built from the same seed return identical sequences forever.

Every helper consumes a fixed number of draws:
    next / random_float / random_int / pick / chance  -> 1 draw
    unique_sample(min, max)                           -> 1 + one per picked item
"""

import math
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF
_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193
_GOLDEN_GAMMA = 0x6D2B79F5
_TWO_POW_32 = 4294967296.0


class EmptyInputError(ValueError):
    """A generator helper was asked to choose from an empty pool."""


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


def fnv1a32(text: str) -> int:
    """32-bit FNV-1a hash of the UTF-8 bytes of text."""
    h = _FNV_OFFSET
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & _MASK32
    return h


class Rng:
    """Deterministic float stream in [0, 1). Calling the instance draws once."""

    def __init__(self, seed: str):
        self.seed = seed
        self._state = fnv1a32(seed) or 1

    def next(self) -> float:
        self._state = (self._state + _GOLDEN_GAMMA) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / _TWO_POW_32

    __call__ = next

    def random_int(self, min_inclusive: float, max_inclusive: float) -> int:
        return random_int(self, min_inclusive, max_inclusive)

    def random_float(self, min_inclusive: float, max_inclusive: float) -> float:
        return random_float(self, min_inclusive, max_inclusive)

    def pick(self, items: Sequence[T]) -> T:
        return pick(self, items)

    def chance(self, probability: float) -> bool:
        return chance(self, probability)


def create_rng(seed: str) -> Rng:
    """Return a fresh stream for seed."""
    return Rng(seed)


def random_int(rng: Rng, min_inclusive: float, max_inclusive: float) -> int:
    """Uniform integer in [min, max], both ends inclusive."""
    lo = math.ceil(min_inclusive)
    hi = math.floor(max_inclusive)
    return math.floor(rng.next() * (hi - lo + 1)) + lo


def random_float(rng: Rng, min_inclusive: float, max_inclusive: float) -> float:
    """Uniform float by linear interpolation between min and max."""
    return rng.next() * (max_inclusive - min_inclusive) + min_inclusive


def pick(rng: Rng, items: Sequence[T]) -> T:
    """Uniform choice. Raises EmptyInputError for an empty sequence."""
    if len(items) == 0:
        raise EmptyInputError("pick() requires a non-empty sequence")
    return items[math.floor(rng.next() * len(items))]


def chance(rng: Rng, probability: float) -> bool:
    """True with the given probability."""
    return rng.next() < probability


def clamp(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))


def unique_sample(rng: Rng, items: Sequence[T], min_count: int, max_count: int) -> list[T]:
    """Pick between min_count and max_count distinct items, in draw order."""
    count = int(clamp(random_int(rng, min_count, max_count), 0, len(items)))
    pool = list(items)
    picked: list[T] = []
    while len(picked) < count and pool:
        idx = random_int(rng, 0, len(pool) - 1)
        picked.append(pool.pop(idx))
    return picked
