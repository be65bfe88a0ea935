"""
Retry utilities with backoff.

Inspired by Tenacity's Retrying class, this module provides a context manager
for implementing retry logic with a pluggable wait strategy and a hook that
observes every retryable failure (used to feed the throttle coordinator's
error counter).

Example:
    >>> from humanpace._retry import Retrying
    >>> for attempt in Retrying(max_retries=2):
    ...     with attempt:
    ...         response = transport.get(url)
    ...         response.raise_for_status()
    ...         break
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from dataclasses import dataclass

import requests

from humanpace._delay import random_delay

logger = logging.getLogger(__name__)


def is_retryable_status(status_code: int) -> bool:
    """Return True for HTTP 429 and every 5xx status."""
    return status_code == 429 or status_code >= 500


class RetryableError(Exception):
    """
    Base class for exceptions that should trigger automatic retry.

    Exceptions extending this class are automatically retried by the Retrying
    context manager without needing explicit configuration in retry_on_exceptions.

    Example:
        >>> class MyTransientError(RetryableError):
        ...     '''Custom retryable error for my service.'''
        ...     pass
    """

    pass


class MaxRetriesExceededError(Exception):
    """
    Raised when all retry attempts are exhausted.

    This exception wraps the last exception that occurred during retry attempts,
    providing access to the original error for debugging.

    Attributes:
        message: Human-readable error message.
        last_exception: The original exception from the last retry attempt.

    Example:
        >>> try:
        ...     client.get("/api/search?q=iphone")
        ... except MaxRetriesExceededError as e:
        ...     print(f"Original error: {e.last_exception}")
    """

    def __init__(self, message: str, last_exception: Exception | None = None):
        super().__init__(message)
        self.last_exception = last_exception


@dataclass(frozen=True)
class RetryAttempt:
    """
    Represents a single retry attempt.

    Attributes:
        attempt_number: Zero-based index of the current attempt (0 = first attempt).
        max_retries: Maximum number of retry attempts configured.
    """

    attempt_number: int
    max_retries: int

    @property
    def is_first_attempt(self) -> bool:
        """Return True if this is the original (non-retry) attempt."""
        return self.attempt_number == 0

    @property
    def is_last_attempt(self) -> bool:
        """Return True if this is the last retry attempt."""
        return self.attempt_number >= self.max_retries


class Retrying:
    """
    Context manager for retry with backoff.

    Usage:
        >>> for attempt in Retrying(max_retries=2, wait=coordinator.retry_delay):
        ...     with attempt:
        ...         response = transport.get(url)
        ...         response.raise_for_status()
        ...         break

    Args:
        max_retries: Maximum number of retry attempts (default: 2).
            Use 0 to disable retries (single attempt only).
        backoff_factor: Base wait in milliseconds for the default strategy
            (default: 500). Wait = backoff_factor * (2 ** attempt_number).
        wait: Optional strategy returning the wait in milliseconds for a
            given attempt number. Replaces the default exponential strategy.
        retry_on_status: Predicate deciding whether an HTTP status code
            attached to a RequestException is retryable. Default: 429 and 5xx.
        retry_on_exceptions: Exception types that trigger retry (default: Timeout, ConnectionError).
        skip_retry_on_exceptions: Exception types that never trigger retry.
            Takes precedence over retry_on_exceptions.
        on_retryable_error: Hook called once for every retryable failure,
            including the one that exhausts the attempts.
        logger_prefix: Prefix for log messages.

    Raises:
        MaxRetriesExceededError: When all retry attempts are exhausted.
            Contains the last exception in the `last_exception` attribute.

    Note:
        - Exceptions extending RetryableError are automatically retried
        - HTTP 429 responses respect a numeric Retry-After header
        - The loop naturally exits on success (no exception raised)
        - Exceptions not matching retry conditions are re-raised immediately
    """

    # Maximum Retry-After value to respect (in seconds).
    MAX_RETRY_AFTER = 60.0

    def __init__(
        self,
        max_retries: int = 2,
        backoff_factor: float = 500.0,
        wait: Callable[[int], float] | None = None,
        retry_on_status: Callable[[int], bool] = is_retryable_status,
        retry_on_exceptions: tuple[type[Exception], ...] = (
            requests.Timeout,
            requests.ConnectionError,
        ),
        skip_retry_on_exceptions: tuple[type[Exception], ...] = (),
        on_retryable_error: Callable[[Exception], None] | None = None,
        logger_prefix: str = "",
    ):
        assert max_retries >= 0, f"max_retries must be >= 0, got {max_retries}"
        assert backoff_factor > 0, f"backoff_factor must be > 0, got {backoff_factor}"
        assert retry_on_status is not None, "retry_on_status cannot be None"
        assert retry_on_exceptions is not None, "retry_on_exceptions cannot be None"
        assert skip_retry_on_exceptions is not None, "skip_retry_on_exceptions cannot be None"

        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.wait = wait
        self.retry_on_status = retry_on_status
        self.retry_on_exceptions = retry_on_exceptions
        self.skip_retry_on_exceptions = skip_retry_on_exceptions
        self.on_retryable_error = on_retryable_error
        self.logger_prefix = logger_prefix

        self._current_attempt = 0
        self._last_exception: Exception | None = None

    def __iter__(self) -> Generator[_RetryContext, None, None]:
        """Yield retry contexts for each attempt."""
        for attempt in range(self.max_retries + 1):
            self._current_attempt = attempt
            yield _RetryContext(self, attempt)

    def _should_retry(self, exception: Exception) -> bool:
        """
        Determine if exception should trigger a retry.

        Logic:
            1. Skip retry for exceptions in skip_retry_on_exceptions
            2. For RequestException with response: ask retry_on_status
            3. Auto-retry if exception extends RetryableError
            4. Retry on configured exception types (Timeout, ConnectionError, etc.)
        """
        if isinstance(exception, self.skip_retry_on_exceptions):
            return False

        if isinstance(exception, requests.RequestException):
            response = getattr(exception, "response", None)
            if response is not None:
                return self.retry_on_status(response.status_code)

        if isinstance(exception, RetryableError):
            return True

        return isinstance(exception, self.retry_on_exceptions)

    def _notify(self, exception: Exception) -> None:
        """Invoke the on_retryable_error hook, if any."""
        if self.on_retryable_error is not None:
            self.on_retryable_error(exception)

    def _handle_retry(self, exception: Exception) -> None:
        """Log, sleep and prepare for the next attempt."""
        self._last_exception = exception
        wait_ms = self._calculate_wait_time(exception)

        prefix = f"{self.logger_prefix} | " if self.logger_prefix else ""
        logger.warning(
            f"{prefix}Attempt {self._current_attempt + 1}/{self.max_retries + 1} failed: {exception}"
        )
        logger.warning(
            f"{prefix}⏳ Retrying in {wait_ms / 1000:.1f}s..."
        )
        random_delay(wait_ms, wait_ms)

    def _calculate_wait_time(self, exception: Exception) -> float:
        """
        Calculate the wait in milliseconds before the next attempt.

        For HTTP 429 responses with a valid Retry-After header, uses the
        larger of the header value and the strategy's wait.
        """
        if self.wait is not None:
            base_wait = self.wait(self._current_attempt)
        else:
            base_wait = self.backoff_factor * (2 ** self._current_attempt)

        if isinstance(exception, requests.HTTPError):
            response: requests.Response | None = getattr(exception, "response", None)
            if response is not None and response.status_code == 429:
                retry_after = self._parse_retry_after(response)
                if retry_after is not None:
                    return float(max(retry_after * 1000.0, base_wait))

        return float(base_wait)

    def _parse_retry_after(self, response: requests.Response) -> float | None:
        """
        Parse the Retry-After header (numeric seconds only).

        Values exceeding MAX_RETRY_AFTER are ignored.
        """
        header = response.headers.get("Retry-After")
        if not header:
            return None

        try:
            seconds = float(header)
        except (TypeError, ValueError):
            # HTTP-date format is not supported
            return None

        if seconds > self.MAX_RETRY_AFTER:
            prefix = f"{self.logger_prefix} | " if self.logger_prefix else ""
            logger.warning(
                f"{prefix}Retry-After header ({seconds}s) exceeds MAX_RETRY_AFTER "
                f"({self.MAX_RETRY_AFTER}s). Using backoff instead."
            )
            return None
        return seconds

    def _handle_exhausted(self, exception: Exception) -> None:
        """
        Handle when all retries are exhausted.

        Raises:
            MaxRetriesExceededError: Always raised with the last exception.
        """
        self._last_exception = exception
        prefix = f"{self.logger_prefix} | " if self.logger_prefix else ""
        logger.error(
            f"{prefix}Max retries ({self.max_retries}) exceeded. Last error: {exception}"
        )
        raise MaxRetriesExceededError(
            message=f"Max retries exceeded. Last error: {exception}",
            last_exception=exception,
        ) from exception


class _RetryContext:
    """
    Context for a single retry attempt (internal).

    On success (no exception): exits normally, caller breaks out of the loop
    On retryable exception: suppresses exception, loop continues
    On non-retryable exception: re-raises exception, loop exits
    On exhausted retries: raises MaxRetriesExceededError
    """

    def __init__(self, retrying: Retrying, attempt: int):
        self._retrying = retrying
        self.attempt = attempt

    def __enter__(self) -> RetryAttempt:
        return RetryAttempt(
            attempt_number=self.attempt,
            max_retries=self._retrying.max_retries,
        )

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> bool:
        if exc_val is None:
            return False

        # Only handle Exception, not BaseException (KeyboardInterrupt, etc.)
        if not isinstance(exc_val, Exception):
            return False

        if not self._retrying._should_retry(exc_val):
            return False

        self._retrying._notify(exc_val)

        # Retries disabled - let the original exception propagate unwrapped
        if self._retrying.max_retries == 0:
            return False

        if self.attempt >= self._retrying.max_retries:
            self._retrying._handle_exhausted(exc_val)
            return False  # Never reached

        self._retrying._handle_retry(exc_val)
        return True
