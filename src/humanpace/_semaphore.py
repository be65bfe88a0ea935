"""
Concurrency limiting for outgoing requests.

`RequestSemaphore` is a counting semaphore with strict FIFO hand-off:
a released slot goes directly to the longest-waiting caller instead of
being raced for. Acquisition can be bounded by a timeout, and the wait
queue can be capped, so overloaded callers fail fast rather than queue
forever.

Example:
    >>> from humanpace._semaphore import RequestSemaphore
    >>> semaphore = RequestSemaphore(max_concurrent=2)
    >>> with semaphore:
    ...     response = transport.get(url)
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import TYPE_CHECKING

from humanpace._retry import RetryableError

if TYPE_CHECKING:
    from humanpace._profiles import ProfileConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class ClientSideRateLimitError(RetryableError):
    """
    Base exception for errors raised by the local concurrency limiter.

    Extends RetryableError so these errors are retried by the Retrying
    context manager, as opposed to server-side throttling (HTTP 429).
    """

    pass


class SlotAcquisitionTimeoutError(ClientSideRateLimitError):
    """
    Raised when `acquire(timeout=...)` gives up waiting for a slot.

    The caller is removed from the wait queue before this is raised.

    Attributes:
        waited: Seconds spent waiting.
        timeout: The configured timeout in seconds.
    """

    def __init__(self, waited: float, timeout: float):
        self.waited = waited
        self.timeout = timeout
        super().__init__(
            f"Request slot timeout: waited {waited:.2f}s, timeout={timeout:.2f}s"
        )


class WaitQueueFullError(ClientSideRateLimitError):
    """
    Raised when a caller would exceed the semaphore's `max_waiting` cap.

    Attributes:
        max_waiting: The configured queue cap.
    """

    def __init__(self, max_waiting: int):
        self.max_waiting = max_waiting
        super().__init__(f"Request wait queue is full (max_waiting={max_waiting})")


# =============================================================================
# Semaphore
# =============================================================================


class RequestSemaphore:
    """
    FIFO counting semaphore bounding the number of in-flight requests.

    Invariants:
    - The active count never exceeds `max_concurrent`.
    - Waiters are served strictly in arrival order.
    - On release with waiters queued, the slot is handed over directly,
      so the active count does not drop in between.

    Always pair `acquire()` with `release()` in a `finally` block, or use
    the semaphore as a context manager.

    Args:
        max_concurrent: Maximum number of concurrent holders (>= 1).
        max_waiting: Optional cap on queued callers. None means unbounded.
    """

    def __init__(self, max_concurrent: int, max_waiting: int | None = None):
        assert max_concurrent is not None, "max_concurrent cannot be None."
        assert max_concurrent >= 1, "max_concurrent must be at least 1."
        assert max_waiting is None or max_waiting >= 0, "max_waiting must be >= 0 or None."

        self.max_concurrent = max_concurrent
        self.max_waiting = max_waiting

        self._active = 0
        self._waiters: deque[threading.Event] = deque()
        self._lock = threading.Lock()

    def acquire(self, timeout: float | None = None) -> None:
        """
        Take a slot, blocking in FIFO order while none is free.

        Args:
            timeout: Maximum seconds to wait. None waits indefinitely.

        Raises:
            WaitQueueFullError: If the wait queue is at `max_waiting`.
            SlotAcquisitionTimeoutError: If `timeout` elapses first.
        """
        with self._lock:
            if self._active < self.max_concurrent and not self._waiters:
                self._active += 1
                return

            if self.max_waiting is not None and len(self._waiters) >= self.max_waiting:
                raise WaitQueueFullError(self.max_waiting)

            waiter = threading.Event()
            self._waiters.append(waiter)

        start = time.monotonic()
        if waiter.wait(timeout):
            return

        with self._lock:
            # Slot handed over between the timeout and taking the lock
            if waiter.is_set():
                return
            self._waiters.remove(waiter)

        assert timeout is not None
        waited = time.monotonic() - start
        logger.warning(f"Gave up waiting for a request slot after {waited:.2f}s")
        raise SlotAcquisitionTimeoutError(waited=waited, timeout=timeout)

    def release(self) -> None:
        """Free a slot, handing it to the oldest waiter if there is one."""
        with self._lock:
            if self._waiters:
                self._waiters.popleft().set()
            else:
                self._active = max(0, self._active - 1)

    @property
    def active_count(self) -> int:
        """Number of current slot holders."""
        with self._lock:
            return self._active

    @property
    def waiting_count(self) -> int:
        """Number of callers blocked in `acquire()`."""
        with self._lock:
            return len(self._waiters)

    def has_available_slot(self) -> bool:
        """Return True if `acquire()` would not block right now."""
        with self._lock:
            return self._active < self.max_concurrent and not self._waiters

    def __enter__(self) -> RequestSemaphore:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> bool:
        self.release()
        return False

    def __repr__(self) -> str:
        return (
            f"RequestSemaphore(max_concurrent={self.max_concurrent}, "
            f"active={self._active}, waiting={len(self._waiters)})"
        )


# =============================================================================
# Process-wide instance
# =============================================================================

_global_semaphore: RequestSemaphore | None = None
_global_lock = threading.Lock()


def get_global_semaphore(profile: ProfileConfig | None = None) -> RequestSemaphore:
    """
    Return the process-wide semaphore, creating it on first use.

    The ceiling comes from `profile.max_parallel` (current profile by default)
    and is fixed until `reset_global_semaphore()` is called.
    """
    global _global_semaphore
    if _global_semaphore is None:
        with _global_lock:
            if _global_semaphore is None:
                from humanpace._profiles import current_profile

                p = profile or current_profile()
                _global_semaphore = RequestSemaphore(p.max_parallel)
                logger.info(f"🔀 Semaphore initialized: max {p.max_parallel} parallel requests")
    return _global_semaphore


def reset_global_semaphore() -> None:
    """Drop the process-wide semaphore (test isolation or profile change)."""
    global _global_semaphore
    with _global_lock:
        _global_semaphore = None
