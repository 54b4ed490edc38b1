"""Seeded randomness for reproducible synthetic telemetry."""

from .prng import (
    EmptyInputError,
    Rng,
    chance,
    clamp,
    create_rng,
    fnv1a32,
    pick,
    random_float,
    random_int,
    unique_sample,
)

__all__ = [
    "Rng",
    "create_rng",
    "fnv1a32",
    "random_int",
    "random_float",
    "pick",
    "chance",
    "clamp",
    "unique_sample",
    "EmptyInputError",
]
