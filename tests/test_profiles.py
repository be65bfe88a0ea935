"""Tests for throttling profiles and the legacy options adapter."""

import os
import unittest
from dataclasses import replace
from unittest.mock import patch

import pytest

from humanpace._config import PACE, ConfigValidationError
from humanpace._profiles import (
    BURST_PROFILE,
    FAST_PROFILE,
    NORMAL_PROFILE,
    PROFILES,
    STEALTH_PROFILE,
    DelayRange,
    adapt_legacy_options,
    current_profile,
    explain_profile,
    get_profile,
    is_mock_mode,
    is_parallel_enabled,
)


class TestBuiltInProfiles:

    @pytest.mark.parametrize("profile", list(PROFILES.values()), ids=list(PROFILES))
    def test_every_built_in_profile_is_valid(self, profile):
        assert profile.validate() is profile

    def test_stealth_is_sequential_with_backoff(self):
        assert STEALTH_PROFILE.request_delay == DelayRange(2000, 5000)
        assert STEALTH_PROFILE.session_gap == DelayRange(10000, 30000)
        assert STEALTH_PROFILE.jitter_percent == 40
        assert STEALTH_PROFILE.max_parallel == 1
        assert STEALTH_PROFILE.retry_delay == DelayRange(5000, 15000)
        assert STEALTH_PROFILE.progressive_backoff
        assert STEALTH_PROFILE.cookie_persistence

    def test_normal_values(self):
        assert NORMAL_PROFILE.request_delay == DelayRange(500, 1500)
        assert NORMAL_PROFILE.max_parallel == 2
        assert NORMAL_PROFILE.jitter_percent == 25

    def test_fast_has_no_backoff_or_cookies(self):
        assert FAST_PROFILE.request_delay == DelayRange(0, 100)
        assert FAST_PROFILE.max_parallel == 10
        assert not FAST_PROFILE.progressive_backoff
        assert not FAST_PROFILE.cookie_persistence

    def test_burst_has_no_delays_and_uses_mocks(self):
        assert BURST_PROFILE.request_delay == DelayRange(0, 0)
        assert BURST_PROFILE.session_gap == DelayRange(0, 0)
        assert BURST_PROFILE.jitter_percent == 0
        assert BURST_PROFILE.max_parallel == 20
        assert BURST_PROFILE.use_mocks


class TestValidation:

    def test_min_greater_than_max_is_rejected(self):
        broken = replace(NORMAL_PROFILE, request_delay=DelayRange(200, 100))
        with pytest.raises(ConfigValidationError, match="min must be <= max"):
            broken.validate()

    def test_negative_bounds_are_rejected(self):
        broken = replace(NORMAL_PROFILE, retry_delay=DelayRange(-1, 100))
        with pytest.raises(ConfigValidationError):
            broken.validate()

    def test_zero_parallel_is_rejected(self):
        broken = replace(NORMAL_PROFILE, max_parallel=0)
        with pytest.raises(ConfigValidationError, match="max_parallel"):
            broken.validate()

    def test_jitter_above_fifty_is_rejected(self):
        broken = replace(NORMAL_PROFILE, jitter_percent=60)
        with pytest.raises(ConfigValidationError, match="jitter_percent"):
            broken.validate()


class TestLookup(unittest.TestCase):

    def tearDown(self):
        PACE.reset()

    def test_get_profile_is_case_insensitive(self):
        self.assertIs(get_profile("NORMAL"), NORMAL_PROFILE)

    def test_get_profile_unknown_name_raises(self):
        with self.assertRaises(ConfigValidationError):
            get_profile("turbo")

    def test_current_profile_follows_configuration(self):
        PACE.configure(throttle={"profile": "fast"}, allow_env_override=False)
        self.assertIs(current_profile(), FAST_PROFILE)
        self.assertTrue(is_parallel_enabled())
        self.assertFalse(is_mock_mode())

    def test_stealth_is_not_parallel(self):
        PACE.configure(throttle={"profile": "stealth"}, allow_env_override=False)
        self.assertFalse(is_parallel_enabled())

    @patch.dict(os.environ, {"API_PROFILE": "burst", "HUMAN_BEHAVIOR": "", "HUMAN_SPEED": ""})
    def test_current_profile_from_env(self):
        PACE.reset()
        self.assertIs(current_profile(), BURST_PROFILE)
        self.assertTrue(is_mock_mode())


class TestLegacyAdapter(unittest.TestCase):

    def setUp(self):
        self.notice = patch("humanpace._profiles._legacy_notice_emitted", False)
        self.notice.start()

    def tearDown(self):
        self.notice.stop()
        PACE.reset()

    def test_no_legacy_options_returns_same_profile(self):
        self.assertIs(adapt_legacy_options(NORMAL_PROFILE), NORMAL_PROFILE)

    def test_human_like_false_strips_delays(self):
        adapted = adapt_legacy_options(STEALTH_PROFILE, human_like=False)
        self.assertEqual(adapted.request_delay, DelayRange(0, 0))
        self.assertEqual(adapted.session_gap, DelayRange(0, 0))
        self.assertEqual(adapted.jitter_percent, 0)
        # Concurrency and retry behavior are untouched
        self.assertEqual(adapted.max_parallel, STEALTH_PROFILE.max_parallel)
        self.assertEqual(adapted.retry_delay, STEALTH_PROFILE.retry_delay)

    def test_human_speed_scales_every_range(self):
        adapted = adapt_legacy_options(NORMAL_PROFILE, human_speed=2.0)
        self.assertEqual(adapted.request_delay, DelayRange(1000, 3000))
        self.assertEqual(adapted.session_gap, DelayRange(4000, 10000))
        self.assertEqual(adapted.retry_delay, DelayRange(4000, 10000))
        self.assertEqual(adapted.name, "normal")

    def test_deprecation_notice_is_logged_once(self):
        with self.assertLogs("humanpace._profiles", level="WARNING") as logs:
            adapt_legacy_options(NORMAL_PROFILE, human_like=True)
            adapt_legacy_options(NORMAL_PROFILE, human_speed=0.5)
            adapt_legacy_options(FAST_PROFILE, human_like=False)

        notices = [r for r in logs.records if "deprecated" in r.getMessage()]
        self.assertEqual(len(notices), 1)

    def test_configured_legacy_options_apply_to_current_profile(self):
        PACE.configure(
            throttle={"profile": "normal", "human_speed": 0.5},
            allow_env_override=False,
        )
        self.assertEqual(current_profile().request_delay, DelayRange(250, 750))


class TestExplainProfile:

    def test_explain_lists_parameters(self):
        lines: list[str] = []
        explain_profile(NORMAL_PROFILE, output=lines.append)

        assert lines[0] == "🎭 API Profile: NORMAL"
        text = "\n".join(lines)
        assert "500-1500ms" in text
        assert "Max parallel:  2" in text
        assert "persistent" in text
