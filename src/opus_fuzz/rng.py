"""Deterministic PRNG and seed acquisition — every fuzz decision flows from one seed."""

from __future__ import annotations

import logging
import os
import re
import time
from collections.abc import Mapping, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

MASK32 = 0xFFFFFFFF

SEED_ENV_VAR = "SEED"


class FastRand:
    """Two-lane multiply-with-carry generator.

    Pure 32-bit integer arithmetic, so the draw sequence for a given seed is
    the same on every platform and interpreter.
    """

    def __init__(self, seed: int = 0):
        self.rz = 0
        self.rw = 0
        self.seed(seed)

    def seed(self, value: int) -> None:
        value &= MASK32
        self.rz = value
        self.rw = value

    def next(self) -> int:
        self.rz = (36969 * (self.rz & 65535) + (self.rz >> 16)) & MASK32
        self.rw = (18000 * (self.rw & 65535) + (self.rw >> 16)) & MASK32
        return ((self.rz << 16) + self.rw) & MASK32

    def choose(self, candidates: Sequence[T]) -> T:
        """Pick one element with ``next() % len(candidates)``."""
        if not candidates:
            raise ValueError("Cannot choose from an empty sequence")
        return candidates[self.next() % len(candidates)]


def _atoi(text: str) -> int:
    """C ``atoi`` semantics: optional sign and leading digits, else 0."""
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def clock_seed() -> int:
    return (int(time.time()) ^ ((os.getpid() & 65535) << 16)) & MASK32


def resolve_seed(argument: str | None, environ: Mapping[str, str] | None = None) -> tuple[int, str]:
    """Pick the run seed: CLI argument, then ``SEED`` env var, then clock ^ pid.

    The argument wins only if it parses fully as a decimal integer, as
    strtol with an end-of-string check would accept it.

    Returns:
        (seed, source) where source is "argument", "environment" or "clock".
    """
    if environ is None:
        environ = os.environ

    if argument is not None:
        if re.fullmatch(r"\s*[+-]?[0-9]+", argument):
            return int(argument) & MASK32, "argument"
        logger.debug("Ignoring non-integer seed argument %r", argument)

    env_seed = environ.get(SEED_ENV_VAR)
    if env_seed is not None:
        return _atoi(env_seed) & MASK32, "environment"

    return clock_seed(), "clock"
