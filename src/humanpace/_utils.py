"""
Exception classification helpers.

Internal functions shared by the HTTP clients and their callers. Exceptions
wrapped in MaxRetriesExceededError are classified by their last exception.
"""

from __future__ import annotations


def _unwrap(exc: Exception) -> Exception:
    from humanpace._retry import MaxRetriesExceededError

    while isinstance(exc, MaxRetriesExceededError) and exc.last_exception is not None:
        exc = exc.last_exception
    return exc


def is_timeout_exception(exc: Exception) -> bool:
    """
    Determine if an exception indicates a timeout condition.

    Supported timeout exceptions:
        - requests.Timeout: HTTP request timeout
        - TimeoutError: Python built-in
        - SlotAcquisitionTimeoutError: Request semaphore timeout
        - MaxRetriesExceededError: If last_exception is a timeout
    """
    # Lazy imports to avoid circular dependencies
    import requests

    from humanpace._semaphore import SlotAcquisitionTimeoutError

    return isinstance(
        _unwrap(exc),
        (requests.Timeout, SlotAcquisitionTimeoutError, TimeoutError),
    )


def is_network_exception(exc: Exception) -> bool:
    """Return True for connection failures that are not timeouts."""
    import requests

    inner = _unwrap(exc)
    return isinstance(inner, requests.ConnectionError) and not isinstance(inner, requests.Timeout)


def is_rate_limited_exception(exc: Exception) -> bool:
    """Return True for HTTP 429 errors and local concurrency-limit errors."""
    import requests

    from humanpace._semaphore import ClientSideRateLimitError

    inner = _unwrap(exc)
    if isinstance(inner, ClientSideRateLimitError):
        return True
    if isinstance(inner, requests.HTTPError):
        response = getattr(inner, "response", None)
        return response is not None and response.status_code == 429
    return False


def describe_exception(exc: Exception) -> str:
    """Short emoji-tagged label used in retry log lines."""
    if is_rate_limited_exception(exc):
        return "🚦 Rate limited"
    if is_timeout_exception(exc):
        return "⏱️ Timeout"
    if is_network_exception(exc):
        return "🔌 Network error"
    return "❌ Server error"
