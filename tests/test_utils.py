"""Tests for internal utilities."""

import random
import unittest
from unittest.mock import Mock

import requests

from humanpace._headers import (
    DEFAULT_ACCEPT_LANGUAGE,
    TABLET_USER_AGENT,
    USER_AGENTS,
    default_headers,
    random_user_agent,
    realistic_headers,
    user_agent_for_platform,
)
from humanpace._retry import MaxRetriesExceededError
from humanpace._semaphore import SlotAcquisitionTimeoutError, WaitQueueFullError
from humanpace._utils import (
    describe_exception,
    is_network_exception,
    is_rate_limited_exception,
    is_timeout_exception,
)


def http_error(status: int) -> requests.HTTPError:
    response = Mock(spec=requests.Response)
    response.status_code = status
    return requests.HTTPError(f"HTTP {status}", response=response)


class TestIsTimeoutException(unittest.TestCase):
    """Tests for is_timeout_exception()."""

    # ---- True cases ----

    def test_requests_timeout(self):
        self.assertTrue(is_timeout_exception(requests.Timeout("timed out")))

    def test_python_builtin_timeout_error(self):
        self.assertTrue(is_timeout_exception(TimeoutError("polling timeout")))

    def test_slot_acquisition_timeout_error(self):
        self.assertTrue(is_timeout_exception(SlotAcquisitionTimeoutError(waited=5.0, timeout=3.0)))

    def test_max_retries_exceeded_wrapping_timeout(self):
        exc = MaxRetriesExceededError("Max retries exceeded", last_exception=requests.Timeout("slow"))
        self.assertTrue(is_timeout_exception(exc))

    # ---- False cases ----

    def test_generic_exception(self):
        self.assertFalse(is_timeout_exception(Exception("boom")))

    def test_http_error(self):
        self.assertFalse(is_timeout_exception(http_error(504)))

    def test_max_retries_exceeded_without_last_exception(self):
        self.assertFalse(is_timeout_exception(MaxRetriesExceededError("exhausted")))


class TestIsNetworkException(unittest.TestCase):
    """Tests for is_network_exception()."""

    def test_connection_error(self):
        self.assertTrue(is_network_exception(requests.ConnectionError("reset")))

    def test_connect_timeout_is_a_timeout_not_a_network_error(self):
        self.assertFalse(is_network_exception(requests.ConnectTimeout("slow connect")))

    def test_wrapped_connection_error(self):
        exc = MaxRetriesExceededError("exhausted", last_exception=requests.ConnectionError("down"))
        self.assertTrue(is_network_exception(exc))

    def test_other_errors(self):
        self.assertFalse(is_network_exception(ValueError("bad")))


class TestIsRateLimitedException(unittest.TestCase):
    """Tests for is_rate_limited_exception()."""

    def test_http_429(self):
        self.assertTrue(is_rate_limited_exception(http_error(429)))

    def test_other_http_status(self):
        self.assertFalse(is_rate_limited_exception(http_error(503)))

    def test_http_error_without_response(self):
        self.assertFalse(is_rate_limited_exception(requests.HTTPError("no response")))

    def test_local_limiter_errors(self):
        self.assertTrue(is_rate_limited_exception(WaitQueueFullError(max_waiting=0)))
        self.assertTrue(is_rate_limited_exception(SlotAcquisitionTimeoutError(waited=1.0, timeout=1.0)))

    def test_wrapped_429(self):
        exc = MaxRetriesExceededError("exhausted", last_exception=http_error(429))
        self.assertTrue(is_rate_limited_exception(exc))


class TestDescribeException(unittest.TestCase):
    """Tests for describe_exception()."""

    def test_labels(self):
        self.assertEqual(describe_exception(http_error(429)), "🚦 Rate limited")
        self.assertEqual(describe_exception(requests.Timeout("slow")), "⏱️ Timeout")
        self.assertEqual(describe_exception(requests.ConnectionError("reset")), "🔌 Network error")
        self.assertEqual(describe_exception(http_error(500)), "❌ Server error")


class TestHeaders(unittest.TestCase):
    """Tests for browser-like headers."""

    def test_random_user_agent_comes_from_pool(self):
        rng = random.Random(11)
        for _ in range(20):
            self.assertIn(random_user_agent(rng), USER_AGENTS)

    def test_user_agent_for_platform(self):
        self.assertNotIn("Mobile", user_agent_for_platform("desktop"))
        self.assertIn("Mobile", user_agent_for_platform("mobile"))
        self.assertEqual(user_agent_for_platform("tablet"), TABLET_USER_AGENT)

    def test_realistic_headers_russian(self):
        headers = realistic_headers("ru", rng=random.Random(1))

        self.assertTrue(headers["Accept-Language"].startswith("ru-RU"))
        self.assertIn(headers["User-Agent"], USER_AGENTS)
        self.assertEqual(headers["Sec-Fetch-Mode"], "cors")

    def test_realistic_headers_romanian(self):
        headers = realistic_headers("ro")

        self.assertTrue(headers["Accept-Language"].startswith("ro-RO"))

    def test_default_headers(self):
        self.assertEqual(
            default_headers(),
            {
                "Accept": "application/json",
                "Accept-Language": DEFAULT_ACCEPT_LANGUAGE,
                "Cache-Control": "no-cache",
            },
        )
        self.assertEqual(default_headers(has_body=True)["Content-Type"], "application/json")
