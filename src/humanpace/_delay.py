"""
Delay primitives.

Pure functions computing randomized, jittered and exponentially backed-off
delays, plus `random_delay()`, the single place where the library sleeps.
All durations are in milliseconds.

Example:
    >>> from humanpace._delay import apply_jitter, calculate_backoff
    >>> calculate_backoff(1000, 3)
    8000
    >>> calculate_backoff(1000, 4)  # capped at 10x
    10000
    >>> 750 <= apply_jitter(1000, 25) <= 1250
    True
"""

from __future__ import annotations

import logging
import random
import time

from humanpace._config import PACE
from humanpace._profiles import DelayRange

logger = logging.getLogger(__name__)

# Backoff never exceeds this multiple of the base delay.
MAX_BACKOFF_MULTIPLIER = 10

# Jitter above this percentage is clamped.
MAX_JITTER_PERCENT = 50


def delays_disabled() -> bool:
    """Return True when DISABLE_API_DELAYS (or PACE.configure) turned sleeping off."""
    return PACE.config.throttle.disable_delays


def uniform_ms(delay_range: DelayRange, rng: random.Random | None = None) -> float:
    """Pick a uniformly random value within `delay_range`."""
    r = rng or random
    return r.uniform(delay_range.min, delay_range.max)


def random_delay(min_ms: float, max_ms: float, rng: random.Random | None = None) -> float:
    """
    Sleep for a uniformly random duration in [min_ms, max_ms].

    Returns immediately when delays are disabled or when the picked
    duration is <= 0.

    Args:
        min_ms: Lower bound in milliseconds.
        max_ms: Upper bound in milliseconds.
        rng: Optional RNG for deterministic tests.

    Returns:
        The number of milliseconds actually slept.
    """
    assert min_ms <= max_ms, f"min_ms must be <= max_ms, got {min_ms} > {max_ms}"

    if delays_disabled():
        return 0.0

    r = rng or random
    delay = r.uniform(min_ms, max_ms)
    if delay <= 0:
        return 0.0

    logger.debug(f"💤 Sleeping {delay:.0f}ms")
    time.sleep(delay / 1000.0)
    return delay


def apply_jitter(base_delay: float, jitter_percent: float, rng: random.Random | None = None) -> float:
    """
    Randomly perturb a delay by up to ±jitter_percent of its value.

    Jitter makes request timing less predictable to bot-detection systems.
    The percentage is clamped to 50 and the result is never negative.

    Args:
        base_delay: Base delay in milliseconds.
        jitter_percent: Maximum jitter percentage (0-50).
        rng: Optional RNG for deterministic tests.

    Returns:
        The jittered delay. With 25% jitter, 1000 becomes 750-1250.
    """
    if jitter_percent <= 0 or base_delay <= 0:
        return base_delay

    clamped = min(jitter_percent, MAX_JITTER_PERCENT)
    jitter_amount = base_delay * (clamped / 100.0)

    r = rng or random
    jitter = r.uniform(-jitter_amount, jitter_amount)
    return max(0.0, base_delay + jitter)


def calculate_backoff(base_delay: float, error_count: int) -> float:
    """
    Exponential backoff after consecutive errors, capped at 10x the base.

    Formula: min(base_delay * 2 ** error_count, 10 * base_delay)

    Example:
        >>> [calculate_backoff(1000, n) for n in range(5)]
        [1000, 2000, 4000, 8000, 10000]
    """
    if error_count <= 0:
        return base_delay

    # 2 ** 4 already exceeds the cap; avoids huge ints for long error streaks
    if error_count >= MAX_BACKOFF_MULTIPLIER.bit_length():
        return base_delay * MAX_BACKOFF_MULTIPLIER

    return min(base_delay * (2 ** error_count), base_delay * MAX_BACKOFF_MULTIPLIER)
