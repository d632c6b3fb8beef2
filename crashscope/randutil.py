"""Cryptographically secure random numbers."""

import os

_FLOAT_MAX = 1 << 53
_FLOAT_MASK = _FLOAT_MAX - 1


def random_float() -> float:
    """Return a cryptographically secure random number in [0.0, 1.0)."""
    value = int.from_bytes(os.urandom(8), "little")
    return (value & _FLOAT_MASK) / _FLOAT_MAX