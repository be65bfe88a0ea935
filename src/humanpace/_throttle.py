"""
Global request pacing.

`ThrottleCoordinator` enforces a minimum, jittered spacing between request
starts across every caller of the process and inflates that spacing while
the target keeps failing (progressive backoff).

Example:
    >>> from humanpace._throttle import ThrottleCoordinator
    >>> coordinator = ThrottleCoordinator.get_instance()
    >>> coordinator.wait_for_next_slot()
    >>> response = transport.get(url)
    >>> coordinator.record_success()
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable
from typing import ClassVar

from humanpace._delay import apply_jitter, calculate_backoff, random_delay, uniform_ms
from humanpace._profiles import ProfileConfig, current_profile

logger = logging.getLogger(__name__)


class ThrottleCoordinator:
    """
    Shared pacing state: time of the last request start and the number of
    consecutive errors.

    Slot grants are serialized, so the spacing holds across threads: a
    second caller waits until the first one has been granted its slot.

    Args:
        clock: Monotonic clock returning seconds. Injectable for tests.
        rng: Optional RNG for deterministic delay picks.
    """

    _instance: ClassVar[ThrottleCoordinator | None] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        assert clock is not None, "clock cannot be None."

        self._clock = clock
        self._rng = rng
        self._last_request_time = 0.0
        self._consecutive_errors = 0
        self._lock = threading.Lock()
        self._slot_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Process-wide instance
    # -------------------------------------------------------------------------

    @classmethod
    def get_instance(cls) -> ThrottleCoordinator:
        """Return the process-wide coordinator, creating it on first use."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the process-wide coordinator."""
        with cls._instance_lock:
            cls._instance = None

    # -------------------------------------------------------------------------
    # Pacing
    # -------------------------------------------------------------------------

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def wait_for_next_slot(self, profile: ProfileConfig | None = None) -> float:
        """
        Block until the next request may start.

        The target spacing is a uniform pick from `profile.request_delay`
        with jitter applied, multiplied by the backoff factor while errors
        are accumulating. Only the part of it not already elapsed since the
        previous request start is slept.

        Args:
            profile: Profile to pace by (current profile by default).

        Returns:
            The target spacing in milliseconds.
        """
        p = profile or current_profile()

        with self._slot_lock:
            delay = uniform_ms(p.request_delay, self._rng)
            delay = apply_jitter(delay, p.jitter_percent, self._rng)

            errors = self.error_count
            if p.progressive_backoff and errors > 0:
                delay = calculate_backoff(delay, errors)
                logger.warning(
                    f"⚠️ Backoff active: {errors} consecutive errors, delay={delay / 1000:.1f}s"
                )

            with self._lock:
                last = self._last_request_time

            # 0 means no request has started yet
            if last > 0:
                remaining = delay - (self._now_ms() - last)
                if remaining > 0:
                    random_delay(remaining, remaining)

            with self._lock:
                self._last_request_time = self._now_ms()

        return delay

    def record_success(self) -> None:
        """Reset the consecutive error counter."""
        with self._lock:
            self._consecutive_errors = 0

    def record_error(self) -> None:
        """Increment the consecutive error counter."""
        with self._lock:
            self._consecutive_errors += 1

    @property
    def error_count(self) -> int:
        """Number of consecutive errors since the last success."""
        with self._lock:
            return self._consecutive_errors

    @property
    def last_request_time(self) -> float:
        """Clock reading (ms) of the last slot grant, 0 when none yet."""
        with self._lock:
            return self._last_request_time

    def reset(self) -> None:
        """Forget the last request time and the error streak."""
        with self._lock:
            self._last_request_time = 0.0
            self._consecutive_errors = 0

    # -------------------------------------------------------------------------
    # Retry waits
    # -------------------------------------------------------------------------

    def retry_delay(self, profile: ProfileConfig | None = None) -> float:
        """
        Compute the wait (ms) before retrying a failed attempt.

        A uniform pick from `profile.retry_delay`, backed off by the current
        error count when the profile enables progressive backoff.
        """
        p = profile or current_profile()
        delay = uniform_ms(p.retry_delay, self._rng)
        if p.progressive_backoff:
            delay = calculate_backoff(delay, self.error_count)
        return delay

    def wait_before_retry(self, profile: ProfileConfig | None = None) -> float:
        """Sleep for `retry_delay(profile)` and return the milliseconds waited."""
        delay = self.retry_delay(profile)
        logger.info(f"⏳ Waiting {delay / 1000:.1f}s before retry...")
        return random_delay(delay, delay)

    def __repr__(self) -> str:
        return (
            f"ThrottleCoordinator(errors={self._consecutive_errors}, "
            f"last_request_time={self._last_request_time:.0f})"
        )
