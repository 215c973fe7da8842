"""Random number sources: operating-system entropy and two seeded generators."""

from __future__ import annotations

import os
import random
import secrets
import threading


def _check_bits(bits: int) -> None:
    if bits < 0:
        raise ValueError("number of bits must not be negative")


class _LazyGenerator:
    """A pseudo-random generator seeded from entropy on first use."""

    def __init__(self, seed_bytes: int) -> None:
        self._seed_bytes = seed_bytes
        self._lock = threading.Lock()
        self._rng: random.Random | None = None

    def bits(self, bits: int) -> int:
        with self._lock:
            if self._rng is None:
                seed = int.from_bytes(os.urandom(self._seed_bytes), "big")
                self._rng = random.Random(seed)
            return self._rng.getrandbits(bits)


_STANDARD = _LazyGenerator(32)
_FAST = _LazyGenerator(8)


def hardware_random(bits: int = 64) -> int:
    """Return an integer of ``bits`` random bits taken from the OS entropy source."""
    _check_bits(bits)
    return secrets.randbits(bits) if bits else 0


def standard_random(bits: int = 64) -> int:
    """Return ``bits`` random bits from the shared standard generator."""
    _check_bits(bits)
    return _STANDARD.bits(bits)


def fast_random(bits: int = 64) -> int:
    """Return ``bits`` random bits from the shared fast generator."""
    _check_bits(bits)
    return _FAST.bits(bits)