"""Retry delay calculation."""

import random


def get_backoff_delay(
    attempt: int,
    base: float = 0.5,
    max_seconds: float = 10.0,
    jitter: float = 0.2,
) -> float:
    """Exponential backoff delay in seconds for a zero-based attempt number.

    ``jitter`` is a fraction (0.2 = +/-20%) applied after clamping to
    ``max_seconds``.
    """
    delay = min(base * (2 ** attempt), max_seconds)
    return delay * random.uniform(1 - jitter, 1 + jitter)
