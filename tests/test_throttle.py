"""Tests for the throttle coordinator."""

import threading
import unittest
from dataclasses import replace
from unittest.mock import MagicMock, patch

from humanpace._config import PACE
from humanpace._profiles import FAST_PROFILE, DelayRange
from humanpace._throttle import ThrottleCoordinator

FIXED_100MS = replace(
    FAST_PROFILE,
    name="fixed",
    request_delay=DelayRange(100, 100),
    jitter_percent=0,
    progressive_backoff=False,
)

BACKOFF_200MS = replace(
    FIXED_100MS,
    name="backoff",
    request_delay=DelayRange(200, 200),
    retry_delay=DelayRange(200, 200),
    progressive_backoff=True,
)


class FakeClock:
    """Monotonic clock in seconds that only moves when slept on."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self.now += seconds

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


class ThrottleTestCase(unittest.TestCase):

    def setUp(self):
        PACE.configure(throttle={"disable_delays": False}, allow_env_override=False)
        self.clock = FakeClock()
        self.sleep_patch = patch("humanpace._delay.time.sleep", side_effect=self.clock.sleep)
        self.mock_sleep: MagicMock = self.sleep_patch.start()
        self.coordinator = ThrottleCoordinator(clock=self.clock)

    def tearDown(self):
        self.sleep_patch.stop()
        PACE.reset()


class TestWaitForNextSlot(ThrottleTestCase):

    def test_first_request_does_not_wait(self):
        delay = self.coordinator.wait_for_next_slot(FIXED_100MS)

        self.assertEqual(delay, 100)
        self.mock_sleep.assert_not_called()
        self.assertEqual(self.coordinator.last_request_time, 1000.0 * 1000)

    def test_back_to_back_requests_are_spaced(self):
        self.coordinator.wait_for_next_slot(FIXED_100MS)
        first = self.coordinator.last_request_time

        self.coordinator.wait_for_next_slot(FIXED_100MS)
        second = self.coordinator.last_request_time

        self.assertGreaterEqual(second - first, 100)
        self.assertEqual(self.clock.sleeps, [0.1])

    def test_only_remaining_time_is_waited(self):
        self.coordinator.wait_for_next_slot(FIXED_100MS)
        self.clock.advance(0.06)

        self.coordinator.wait_for_next_slot(FIXED_100MS)

        self.assertEqual(len(self.clock.sleeps), 1)
        self.assertAlmostEqual(self.clock.sleeps[0], 0.04, places=6)

    def test_no_wait_when_enough_time_elapsed(self):
        self.coordinator.wait_for_next_slot(FIXED_100MS)
        self.clock.advance(0.5)

        self.coordinator.wait_for_next_slot(FIXED_100MS)

        self.mock_sleep.assert_not_called()

    def test_backoff_inflates_spacing(self):
        for _ in range(3):
            self.coordinator.record_error()

        self.coordinator.wait_for_next_slot(BACKOFF_200MS)
        with self.assertLogs("humanpace._throttle", level="WARNING") as logs:
            delay = self.coordinator.wait_for_next_slot(BACKOFF_200MS)

        self.assertEqual(delay, 1600)
        self.assertAlmostEqual(self.clock.sleeps[-1], 1.6, places=6)
        self.assertIn("Backoff active", logs.output[0])

    def test_backoff_ignored_when_profile_disables_it(self):
        for _ in range(3):
            self.coordinator.record_error()

        delay = self.coordinator.wait_for_next_slot(FIXED_100MS)

        self.assertEqual(delay, 100)

    def test_spacing_is_global_across_threads(self):
        start = self.clock()
        threads = [
            threading.Thread(target=self.coordinator.wait_for_next_slot, args=(FIXED_100MS,))
            for _ in range(5)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        # First grant is free, the four others wait a full gap each
        self.assertEqual(len(self.clock.sleeps), 4)
        self.assertGreaterEqual(self.clock() - start, 0.4 - 1e-9)

    def test_disabled_delays_skip_sleeping(self):
        PACE.configure(throttle={"disable_delays": True}, allow_env_override=False)

        self.coordinator.wait_for_next_slot(FIXED_100MS)
        self.coordinator.wait_for_next_slot(FIXED_100MS)

        self.mock_sleep.assert_not_called()


class TestErrorCounter(ThrottleTestCase):

    def test_record_error_increments(self):
        self.coordinator.record_error()
        self.coordinator.record_error()
        self.assertEqual(self.coordinator.error_count, 2)

    def test_record_success_resets(self):
        self.coordinator.record_error()
        self.coordinator.record_success()
        self.assertEqual(self.coordinator.error_count, 0)

    def test_concurrent_errors_are_all_counted(self):
        def worker() -> None:
            for _ in range(100):
                self.coordinator.record_error()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        self.assertEqual(self.coordinator.error_count, 800)

    def test_reset_is_idempotent(self):
        self.coordinator.wait_for_next_slot(FIXED_100MS)
        self.coordinator.record_error()

        self.coordinator.reset()
        self.coordinator.reset()

        self.assertEqual(self.coordinator.error_count, 0)
        self.assertEqual(self.coordinator.last_request_time, 0)

    def test_first_request_after_reset_does_not_wait(self):
        self.coordinator.wait_for_next_slot(FIXED_100MS)
        self.coordinator.reset()

        self.coordinator.wait_for_next_slot(FIXED_100MS)

        self.mock_sleep.assert_not_called()


class TestRetryDelay(ThrottleTestCase):

    def test_retry_delay_backs_off_by_error_count(self):
        for _ in range(3):
            self.coordinator.record_error()

        self.assertEqual(self.coordinator.retry_delay(BACKOFF_200MS), 1600)

    def test_retry_delay_without_progressive_backoff(self):
        profile = replace(FIXED_100MS, retry_delay=DelayRange(300, 300))
        self.coordinator.record_error()

        self.assertEqual(self.coordinator.retry_delay(profile), 300)

    def test_wait_before_retry_sleeps(self):
        self.coordinator.record_error()

        waited = self.coordinator.wait_before_retry(BACKOFF_200MS)

        self.assertEqual(waited, 400)
        self.assertEqual(self.clock.sleeps, [0.4])


class TestSingleton(unittest.TestCase):

    def tearDown(self):
        ThrottleCoordinator.reset_instance()

    def test_get_instance_returns_same_object(self):
        self.assertIs(ThrottleCoordinator.get_instance(), ThrottleCoordinator.get_instance())

    def test_reset_instance_creates_fresh_state(self):
        first = ThrottleCoordinator.get_instance()
        first.record_error()

        ThrottleCoordinator.reset_instance()
        second = ThrottleCoordinator.get_instance()

        self.assertIsNot(first, second)
        self.assertEqual(second.error_count, 0)
