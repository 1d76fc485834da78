"""Shared exponential backoff with optional jitter.

Both the HTTP client retry loop and the sync-level fetch retry compute their
delays here so the formula lives in one place.
"""

from __future__ import annotations

import random


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    factor: float = 2.0,
    max_delay: float = 60.0,
    jitter: float = 0.0,
) -> float:
    """Return the delay in seconds to wait after a failed ``attempt``.

    Delay formula: ``min(max_delay, base_delay * factor ** (attempt - 1))``,
    scaled by ``1 + uniform(-jitter, jitter)`` when ``jitter`` is positive.

    Args:
        attempt: Number of the attempt that just failed (1-indexed).
        base_delay: Delay after the first failure, in seconds.
        factor: Multiplier applied per additional failure.
        max_delay: Upper bound before jitter, in seconds.
        jitter: Relative jitter (0.25 = plus or minus 25 percent).
    """
    delay = min(max_delay, max(0.0, base_delay * (factor ** max(0, attempt - 1))))
    if jitter > 0:
        delay *= 1.0 + random.uniform(-jitter, jitter)
    return max(0.0, delay)
