"""Tests for global configuration."""

import os
import unittest
from unittest.mock import patch

import pytest

from humanpace._config import (
    PACE,
    ApiConfig,
    ConfigEnvVarError,
    ConfigValidationError,
    EnvVars,
    PaceConfig,
    ThrottleConfig,
    parse_bool,
)

# Empty values are treated as unset, so this masks the developer's shell.
BLANK_ENV = {
    "API_PROFILE": "",
    "DISABLE_API_DELAYS": "",
    "HUMAN_BEHAVIOR": "",
    "HUMAN_SPEED": "",
    "API_BASE_URL": "",
    "API_REQUEST_TIMEOUT": "",
    "API_MAX_RETRIES": "",
    "API_LOG_REQUESTS": "",
}


class TestDefaults(unittest.TestCase):
    """Tests for hardcoded defaults."""

    def setUp(self):
        self.env = patch.dict(os.environ, BLANK_ENV)
        self.env.start()
        PACE.reset()

    def tearDown(self):
        self.env.stop()
        PACE.reset()

    def test_api_defaults(self):
        api = PACE.config.api
        self.assertEqual(api.base_url, "https://smart.md")
        self.assertEqual(api.request_timeout_ms, 30000)
        self.assertEqual(api.max_attempts, 3)
        self.assertFalse(api.log_requests)

    def test_throttle_defaults(self):
        throttle = PACE.config.throttle
        self.assertEqual(throttle.profile, "stealth")
        self.assertFalse(throttle.disable_delays)
        self.assertIsNone(throttle.human_like)
        self.assertIsNone(throttle.human_speed)

    def test_default_profile_resolves_to_stealth(self):
        self.assertEqual(PACE.config.throttle.resolve_profile().name, "stealth")


class TestEnvVars(unittest.TestCase):
    """Tests for environment variable loading."""

    def setUp(self):
        self.env = patch.dict(os.environ, BLANK_ENV)
        self.env.start()

    def tearDown(self):
        self.env.stop()
        PACE.reset()

    def test_all_env_vars_are_applied(self):
        with patch.dict(os.environ, {
            "API_PROFILE": "normal",
            "DISABLE_API_DELAYS": "true",
            "HUMAN_BEHAVIOR": "false",
            "HUMAN_SPEED": "0.5",
            "API_BASE_URL": "https://staging.smart.md",
            "API_REQUEST_TIMEOUT": "5000",
            "API_MAX_RETRIES": "5",
            "API_LOG_REQUESTS": "true",
        }):
            config = PACE.reset()

        self.assertEqual(config.throttle.profile, "normal")
        self.assertTrue(config.throttle.disable_delays)
        self.assertFalse(config.throttle.human_like)
        self.assertEqual(config.throttle.human_speed, 0.5)
        self.assertEqual(config.api.base_url, "https://staging.smart.md")
        self.assertEqual(config.api.request_timeout_ms, 5000)
        self.assertEqual(config.api.max_attempts, 5)
        self.assertTrue(config.api.log_requests)

    @patch.dict(os.environ, {"API_REQUEST_TIMEOUT": "soon"})
    def test_invalid_int_raises_env_var_error(self):
        with self.assertRaises(ConfigEnvVarError) as ctx:
            ApiConfig().with_env_vars()
        self.assertEqual(ctx.exception.env_var, "API_REQUEST_TIMEOUT")
        self.assertIn("soon", str(ctx.exception))

    @patch.dict(os.environ, {"HUMAN_SPEED": "fast"})
    def test_invalid_float_raises_env_var_error(self):
        with self.assertRaises(ConfigEnvVarError):
            ThrottleConfig().with_env_vars()

    @patch.dict(os.environ, {"API_PROFILE": "turbo"})
    def test_unknown_profile_from_env_fails_validation(self):
        with self.assertRaises(ConfigValidationError):
            PACE.reset()

    def test_env_get_returns_none_for_unset(self):
        self.assertIsNone(EnvVars.get("API_PROFILE"))


class TestConfigure(unittest.TestCase):
    """Tests for PACE.configure()."""

    def setUp(self):
        self.env = patch.dict(os.environ, BLANK_ENV)
        self.env.start()

    def tearDown(self):
        self.env.stop()
        PACE.reset()

    def test_configure_overrides_fields(self):
        PACE.configure(
            api={"max_attempts": 1},
            throttle={"profile": "burst", "disable_delays": True},
        )
        self.assertEqual(PACE.config.api.max_attempts, 1)
        self.assertEqual(PACE.config.api.base_url, "https://smart.md")
        self.assertEqual(PACE.config.throttle.resolve_profile().name, "burst")
        self.assertTrue(PACE.config.throttle.disable_delays)

    def test_configure_wins_over_env(self):
        with patch.dict(os.environ, {"API_PROFILE": "fast"}):
            PACE.configure(throttle={"profile": "normal"})
        self.assertEqual(PACE.config.throttle.profile, "normal")

    def test_env_is_fallback_for_fields_not_configured(self):
        with patch.dict(os.environ, {"API_MAX_RETRIES": "4"}):
            PACE.configure(throttle={"profile": "normal"})
        self.assertEqual(PACE.config.api.max_attempts, 4)

    def test_allow_env_override_false_ignores_env(self):
        with patch.dict(os.environ, {"API_MAX_RETRIES": "4"}):
            PACE.configure(throttle={"profile": "normal"}, allow_env_override=False)
        self.assertEqual(PACE.config.api.max_attempts, 3)

    def test_unknown_field_raises_value_error(self):
        with self.assertRaises(ValueError):
            PACE.configure(throttle={"speed": 2})

    def test_invalid_values_raise_validation_error(self):
        with self.assertRaises(ConfigValidationError):
            PACE.configure(api={"base_url": "ftp://smart.md"})
        with self.assertRaises(ConfigValidationError):
            PACE.configure(api={"request_timeout_ms": 0})
        with self.assertRaises(ConfigValidationError):
            PACE.configure(api={"max_attempts": 0})
        with self.assertRaises(ConfigValidationError):
            PACE.configure(throttle={"human_speed": -1.0})

    def test_reset_restores_defaults(self):
        PACE.configure(throttle={"profile": "fast"})
        PACE.reset()
        self.assertEqual(PACE.config.throttle.profile, "stealth")


class TestExplain:
    """Tests for PACE.explain()."""

    def teardown_method(self):
        PACE.reset()

    def test_sources_are_reported(self):
        with patch.dict(os.environ, {**BLANK_ENV, "API_BASE_URL": "https://env.smart.md"}):
            PACE.configure(throttle={"profile": "normal"})
            data = PACE.explain_data()

        api = {e.name: e for e in data["api"]}
        throttle = {e.name: e for e in data["throttle"]}
        assert api["base_url"].source == "env:API_BASE_URL"
        assert api["max_attempts"].source == "default"
        assert throttle["profile"].source == "configure"

    def test_explain_writes_every_field(self):
        lines: list[str] = []
        with patch.dict(os.environ, BLANK_ENV):
            PACE.reset()
            PACE.explain(output=lines.append)

        text = "\n".join(lines)
        for name in ("base_url", "request_timeout_ms", "max_attempts", "profile", "disable_delays"):
            assert name in text


class TestDataclasses:

    def test_configs_are_frozen(self):
        config = PaceConfig()
        with pytest.raises(AttributeError):
            config.api.max_attempts = 9  # type: ignore

    def test_with_overrides_ignores_none(self):
        config = ApiConfig().with_overrides({"max_attempts": None})
        assert config.max_attempts == 3

    def test_with_overrides_allows_explicit_none(self):
        config = ThrottleConfig(human_speed=2.0).with_overrides(
            {"human_speed": None}, allow_none_fields={"human_speed"}
        )
        assert config.human_speed is None

    @pytest.mark.parametrize("raw, expected", [
        ("true", True), ("TRUE", True), ("1", True), ("yes", True),
        ("false", False), ("0", False), ("no", False),
    ])
    def test_parse_bool(self, raw, expected):
        assert parse_bool(raw) is expected
