"""Retry delay calculation for remote delivery."""

from __future__ import annotations

import math
import random

BASE_DELAY_MS = 500
MAX_DELAY_MS = 30_000
JITTER_MS = 100.0


def calc_backoff(attempt: int, base: int = BASE_DELAY_MS, cap: int = MAX_DELAY_MS) -> float:
    """Return the retry delay in milliseconds for the given attempt.

    `delay = min(cap, floor(base * 2**attempt) + jitter)` with jitter drawn from
    `[0, 100)` ms so several loggers failing together do not retry in lockstep.
    `attempt` is the running fail count; it is never reset on success, so the
    delay ratchets up until it hits `cap`.
    """
    # Any exponent past 64 is already far above the cap.
    exponent = min(max(attempt, 0), 64)
    jitter = random.uniform(0.0, JITTER_MS)
    return min(float(cap), math.floor(base * (2**exponent)) + jitter)
