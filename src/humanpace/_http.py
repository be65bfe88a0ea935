"""
HTTP client abstraction with human-like throttling.

Available implementations:
    - RequestsHttpClient: Plain transport on top of `requests`.
    - ThrottledHttpClient: Decorator pacing every request through a
      ThrottleContext (semaphore, coordinator, cookies, tracker, retries).

Example:
    >>> from humanpace import ThrottledHttpClient
    >>> client = ThrottledHttpClient()
    >>> response = client.get("/ro/search?q=iphone")
    >>> response.json()
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, override

import requests

from humanpace._config import PACE
from humanpace._context import ThrottleContext
from humanpace._delay import apply_jitter, random_delay
from humanpace._headers import default_headers
from humanpace._profiles import ProfileConfig
from humanpace._retry import Retrying
from humanpace._tracker import RateLimitStats
from humanpace._utils import describe_exception

logger = logging.getLogger(__name__)

# Base delay (ms) for the extra jitter pause before a request's first attempt.
FIRST_ATTEMPT_JITTER_BASE_MS = 100


# =============================================================================
# Exceptions
# =============================================================================


class ApiError(requests.HTTPError):
    """
    Raised when the server answers with a non-2xx/3xx status.

    Extends requests.HTTPError so the Retrying context manager can inspect
    the status code and decide whether to retry (429 and 5xx).

    Attributes:
        status: HTTP status code.
        endpoint: The endpoint as passed by the caller.
        response_time: Duration of the failed attempt in milliseconds.
        response: The raw HTTP response.
    """

    def __init__(
        self,
        message: str,
        status: int,
        endpoint: str,
        response_time: float,
        response: requests.Response | None = None,
    ):
        super().__init__(message, response=response)
        self.status = status
        self.endpoint = endpoint
        self.response_time = response_time


# =============================================================================
# Abstract Base Class
# =============================================================================


class HttpClient(ABC):
    """
    Abstract base class for HTTP clients.

    Implementations only provide `request()`; the verb helpers delegate to it.
    Decorators such as ThrottledHttpClient wrap another HttpClient.

    Example:
        >>> class MyHttpClient(HttpClient):
        ...     def request(self, method, url, json=None, headers=None, timeout=30):
        ...         return requests.request(method, url, json=json, headers=headers, timeout=timeout)
    """

    @abstractmethod
    def request(
        self,
        method: str,
        url: str,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 30,
    ) -> requests.Response:
        """
        Execute an HTTP request.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH).
            url: The URL to request.
            json: JSON-serializable request body, if any.
            headers: Headers to send.
            timeout: Request timeout in seconds.

        Returns:
            The HTTP response.

        Raises:
            requests.RequestException: If the HTTP request fails.
        """
        pass

    def get(self, url: str, headers: dict[str, str] | None = None) -> requests.Response:
        return self.request("GET", url, headers=headers)

    def post(
        self, url: str, data: Any | None = None, headers: dict[str, str] | None = None
    ) -> requests.Response:
        return self.request("POST", url, json=data, headers=headers)

    def put(
        self, url: str, data: Any | None = None, headers: dict[str, str] | None = None
    ) -> requests.Response:
        return self.request("PUT", url, json=data, headers=headers)

    def patch(
        self, url: str, data: Any | None = None, headers: dict[str, str] | None = None
    ) -> requests.Response:
        return self.request("PATCH", url, json=data, headers=headers)

    def delete(self, url: str, headers: dict[str, str] | None = None) -> requests.Response:
        return self.request("DELETE", url, headers=headers)


# =============================================================================
# requests Implementation
# =============================================================================


class RequestsHttpClient(HttpClient):
    """
    Transport backed by `requests`.

    Args:
        session: Optional `requests.Session` for connection pooling.
            When None, the module-level `requests.request` is used.
    """

    def __init__(self, session: requests.Session | None = None):
        self._session = session

    @override
    def request(
        self,
        method: str,
        url: str,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 30,
    ) -> requests.Response:
        assert method, "Method cannot be empty."
        assert url, "URL cannot be empty."
        assert timeout is not None, "Timeout cannot be None."
        assert timeout > 0, "Timeout must be greater than 0."

        sender = self._session or requests
        return sender.request(
            method,
            url,
            json=json,
            headers=headers,
            timeout=timeout,
        )


# =============================================================================
# Throttled Decorator
# =============================================================================


class ThrottledHttpClient(HttpClient):
    """
    HTTP client decorator that paces requests like a human visitor.

    Per request:
        1. Acquire a slot from the request semaphore (released in `finally`)
        2. Wait for the coordinator's next slot, plus a jitter pause on the
           first attempt (unless `skip_throttle`)
        3. Build default headers, merge caller headers, apply session cookies
        4. Send through the delegate with a timeout
        5. Record the response in the tracker and save its cookies
        6. 2xx/3xx: record success. 429, 5xx, connection errors and timeouts:
           record an error, wait the profile's retry delay and retry up to
           `max_attempts` total attempts. Other statuses raise ApiError.

    Args:
        delegate: Underlying transport. Defaults to RequestsHttpClient.
        context: Throttle context. Defaults to the process-wide singletons.
        base_url: Prefix for relative endpoints (default: `PACE.config.api.base_url`).
        timeout_ms: Per-attempt timeout (default: `PACE.config.api.request_timeout_ms`).
        max_attempts: Total attempts per request (default: `PACE.config.api.max_attempts`).
        log_requests: Log each attempt (default: `PACE.config.api.log_requests`).

    Raises:
        ApiError: On a non-retryable error status.
        MaxRetriesExceededError: When every attempt failed with a retryable error.
    """

    def __init__(
        self,
        delegate: HttpClient | None = None,
        context: ThrottleContext | None = None,
        base_url: str | None = None,
        timeout_ms: float | None = None,
        max_attempts: int | None = None,
        log_requests: bool | None = None,
    ):
        api = PACE.config.api

        self.delegate = delegate or RequestsHttpClient()
        self.context = context or ThrottleContext.default()
        self.base_url = base_url or api.base_url
        self.timeout_ms = timeout_ms if timeout_ms is not None else api.request_timeout_ms
        self.max_attempts = max_attempts if max_attempts is not None else api.max_attempts
        self.log_requests = log_requests if log_requests is not None else api.log_requests

        assert self.timeout_ms > 0, "timeout_ms must be greater than 0."
        assert self.max_attempts >= 1, "max_attempts must be at least 1."

        if self.log_requests:
            logger.info(f"🔌 {type(self).__name__} initialized")
            logger.info(f"   Base URL: {self.base_url}")
            logger.info(f"   Profile: {self.profile.name}")

    @property
    def profile(self) -> ProfileConfig:
        return self.context.profile

    def build_url(self, endpoint: str) -> str:
        """Return absolute URLs unchanged; join relative ones to `base_url`."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        return f"{self.base_url.rstrip('/')}{path}"

    @override
    def request(
        self,
        method: str,
        url: str,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        skip_throttle: bool = False,
    ) -> requests.Response:
        """
        Execute a throttled request.

        Args:
            method: HTTP method.
            url: Endpoint path (joined to `base_url`) or absolute URL.
            json: JSON-serializable request body, if any.
            headers: Extra headers, merged over the defaults.
            timeout: Per-attempt timeout in seconds (default: `timeout_ms`).
            skip_throttle: Bypass the coordinator and the jitter pause.

        Returns:
            The successful HTTP response.
        """
        endpoint = url
        full_url = self.build_url(endpoint)
        timeout_seconds = timeout if timeout is not None else self.timeout_ms / 1000.0
        profile = self.profile
        coordinator = self.context.coordinator
        semaphore = self.context.semaphore

        semaphore.acquire()
        try:
            for attempt in Retrying(
                max_retries=self.max_attempts - 1,
                wait=lambda _attempt: coordinator.retry_delay(profile),
                on_retryable_error=lambda exc: self._on_retryable_error(endpoint, exc),
                logger_prefix=f"{method} {endpoint}",
            ):
                with attempt as retry_attempt:
                    if not skip_throttle:
                        self._apply_throttling(profile, retry_attempt.is_first_attempt)
                    return self._send(
                        method, full_url, endpoint, json, headers,
                        timeout_seconds, retry_attempt.attempt_number + 1,
                    )
        finally:
            # reset() may swap the context semaphore; release the one acquired
            semaphore.release()

        raise RuntimeError(  # pragma: no cover
            f"Max attempts ({self.max_attempts}) exceeded for {endpoint}"
        )

    def _apply_throttling(self, profile: ProfileConfig, first_attempt: bool) -> None:
        self.context.coordinator.wait_for_next_slot(profile)

        if first_attempt and profile.jitter_percent > 0:
            jitter_delay = apply_jitter(FIRST_ATTEMPT_JITTER_BASE_MS, profile.jitter_percent)
            if jitter_delay > 0:
                random_delay(jitter_delay, jitter_delay)

    def _on_retryable_error(self, endpoint: str, exc: Exception) -> None:
        self.context.coordinator.record_error()
        logger.warning(
            f"{describe_exception(exc)} on {endpoint} "
            f"(consecutive errors: {self.context.coordinator.error_count})"
        )

    def _send(
        self,
        method: str,
        full_url: str,
        endpoint: str,
        json: Any | None,
        headers: dict[str, str] | None,
        timeout: float,
        attempt_number: int,
    ) -> requests.Response:
        request_headers = {**default_headers(has_body=json is not None), **(headers or {})}
        self.context.session.apply_cookies(request_headers)

        if self.log_requests:
            logger.info(f"🌐 {method} {endpoint} (attempt {attempt_number})")

        start = time.monotonic()
        response = self.delegate.request(
            method, full_url, json=json, headers=request_headers, timeout=timeout
        )
        response_time = (time.monotonic() - start) * 1000.0

        self.context.tracker.record_response(endpoint, response.status_code, response_time)
        self.context.session.save_cookies(response)

        if not response.ok:
            raise ApiError(
                f"API request failed: {response.status_code} {response.reason}",
                status=response.status_code,
                endpoint=endpoint,
                response_time=response_time,
                response=response,
            )

        self.context.coordinator.record_success()
        if self.log_requests:
            logger.info(f"✅ {method} {endpoint} - {response.status_code} ({response_time:.0f}ms)")
        return response

    def stats(self) -> RateLimitStats:
        """Rate-limit statistics of this client's tracker."""
        return self.context.tracker.get_stats()

    def is_throttled(self) -> bool:
        return self.context.tracker.is_throttled()
