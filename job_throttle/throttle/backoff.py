"""
Reenqueue delay computation for denied jobs.
"""

import math
import random

from job_throttle.types.throttle import ThrottleSpec

_random = random.Random()


def compute_delay_range(spec: ThrottleSpec) -> tuple[float, float]:
    """
    Compute the reenqueue delay range of a spec.

    Returns:
        ``(low, high)``: ``delay * min_delay_multiplier`` and
        ``delay * max_delay_multiplier``.
    """
    return (
        spec.delay * spec.min_delay_multiplier,
        spec.delay * spec.max_delay_multiplier,
    )


def sample_delay(
    delay_range: tuple[float, float],
    rng: random.Random | None = None,
) -> float:
    """
    Pick a delay uniformly from ``[low, high)``.

    A range with ``low == high`` always yields ``low``.
    """
    low, high = delay_range
    if high <= low:
        return low

    value = low + (high - low) * (rng or _random).random()
    # Float rounding can land exactly on the open upper bound
    if value >= high:
        value = math.nextafter(high, low)
    return value
