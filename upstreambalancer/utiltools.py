"""Shared random number source."""

from __future__ import annotations

import random
import threading

_lock = threading.Lock()
_generator: random.Random | None = None


def get_random_generator() -> random.Random:
    """Return the process-wide random generator, created on first use."""
    global _generator
    if _generator is None:
        with _lock:
            if _generator is None:
                _generator = random.Random()
    return _generator


def get_random(start: int, end: int) -> int:
    """Return a random integer in the closed range [start, end].

    Note that ``end`` itself can be returned.
    """
    if start > end:
        raise ValueError(f"empty range: start {start} is greater than end {end}")
    return get_random_generator().randint(start, end)