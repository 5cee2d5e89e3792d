"""Time sources for the rate limiter.

A clock is any zero-argument callable returning the current time in
milliseconds. Tests pass their own to simulate window expiry and backoff
decay without sleeping.
"""
from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    """Current Unix time in milliseconds."""
    return time.time() * 1000

