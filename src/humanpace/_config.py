"""
Global configuration for the humanpace library.

Settings follow Convention over Configuration (CoC): every field has a
sensible default, environment variables are applied on top, and test
harnesses can call PACE.configure() at startup to pin values explicitly.

Hierarchy of precedence (highest to lowest):
1. Values passed to client/context constructors (e.g. an explicit profile)
2. Values set via PACE.configure()
3. Environment variables (API_*, DISABLE_API_DELAYS, HUMAN_*)
4. Hardcoded defaults (in dataclass fields)

Example:
    >>> from humanpace import PACE
    >>>
    >>> # Pre-loaded with defaults + env vars
    >>> PACE.config.throttle.profile
    'stealth'
    >>>
    >>> # Fast local runs
    >>> PACE.configure(
    ...     throttle={"profile": "burst", "disable_delays": True},
    ...     api={"max_attempts": 1},
    ... )
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from humanpace._profiles import ProfileConfig


# =============================================================================
# Exceptions
# =============================================================================


class ConfigEnvVarError(ValueError):
    """Raised when an environment variable has an invalid value."""

    def __init__(
        self,
        env_var: str,
        value: str,
        expected_type: str,
        cause: Exception | None = None,
    ):
        self.env_var = env_var
        self.value = value
        self.expected_type = expected_type
        super().__init__(f"Invalid value for {env_var}: '{value}' (expected {expected_type})")
        self.__cause__ = cause


class ConfigValidationError(ValueError):
    """Raised when a configuration value fails validation."""

    def __init__(
        self,
        field: str,
        value: Any,
        message: str,
        section: str | None = None,
    ):
        self.field = field
        self.value = value
        self.section = section
        prefix = f"[{section}] " if section else ""
        super().__init__(f"{prefix}Invalid value for '{field}': {value!r}. {message}")


# =============================================================================
# Environment Variables
# =============================================================================


def parse_bool(value: str) -> bool:
    """Interpret common truthy strings ("true", "1", "yes") as True."""
    return value.strip().lower() in ("true", "1", "yes")


class EnvVars:
    """
    Utility class for reading environment variables with type conversion.

    Example:
        >>> EnvVars.get("API_REQUEST_TIMEOUT", type_hint=int)
        30000
        >>> EnvVars.get("API_PROFILE")
        'normal'
        >>> EnvVars.get("UNDEFINED_VAR")
        None
    """

    @staticmethod
    def get(
        var_name: str,
        type_hint: Any = str,
        converter: Callable[[str], Any] | None = None,
    ) -> Any:
        """
        Read an environment variable with optional type conversion.

        Args:
            var_name: The environment variable name.
            type_hint: Type hint used to infer the converter (ignored if converter is provided).
            converter: Custom converter function (takes precedence over type_hint).

        Returns:
            The converted value, or None if env var is not set/empty.

        Raises:
            ConfigEnvVarError: If the value cannot be converted.
        """
        raw_value = os.environ.get(var_name)
        if not raw_value:  # None or empty string
            return None

        actual_converter = converter or EnvVars._infer_converter(type_hint)
        try:
            return actual_converter(raw_value)
        except (ValueError, TypeError) as e:
            raise ConfigEnvVarError(
                env_var=var_name,
                value=raw_value,
                expected_type=type_hint.__name__ if hasattr(type_hint, "__name__") else str(type_hint),
                cause=e,
            ) from e

    @staticmethod
    def _infer_converter(type_hint: Any) -> Callable[[str], Any]:
        """
        Infer converter function from type hint.

        Handles both actual types and string annotations (PEP 563).
        """
        type_str = str(type_hint)

        if type_hint is int or type_str == "int":
            return int
        if type_hint is float or type_str == "float":
            return float
        if type_hint is bool or type_str == "bool":
            return parse_bool
        return str


# =============================================================================
# Base Class
# =============================================================================


@dataclass(frozen=True)
class OverridableConfig:
    """
    Base class for immutable configuration dataclasses.

    Provides `.with_overrides()` for creating new instances with partial
    field updates and `.with_env_vars()` for applying the environment
    variables declared in field metadata.

    Example:
        >>> config = ApiConfig()
        >>> custom = config.with_overrides({"request_timeout_ms": 5000})
        >>> custom.request_timeout_ms
        5000
    """

    def with_overrides(
        self,
        overrides: dict[str, Any],
        allow_none_fields: set[str] | None = None,
    ) -> Self:
        """
        Return a new instance with specified fields overridden.

        Args:
            overrides: Dict of field names to new values.
                       Only existing fields are allowed.
            allow_none_fields: Set of field names that accept None as a valid value.
                       By default, None values are filtered out.

        Returns:
            New instance with updated values.

        Raises:
            ValueError: If overrides contains unknown field names.
        """
        if not overrides:
            return self

        valid_fields = {f.name for f in fields(self)}
        invalid_fields = set(overrides.keys()) - valid_fields

        if invalid_fields:
            raise ValueError(
                f"Unknown config fields: {invalid_fields}. "
                f"Valid fields are: {valid_fields}"
            )

        allow_none = allow_none_fields or set()
        filtered = {k: v for k, v in overrides.items() if v is not None or k in allow_none}
        return replace(self, **filtered) if filtered else self

    def with_env_vars(self) -> Self:
        """
        Return new instance with environment variables applied.

        Reads env vars declared in field metadata and applies them as overrides.

        Raises:
            ConfigEnvVarError: If an env var has an invalid value.
        """
        overrides: dict[str, Any] = {}
        for f in fields(self):
            env_var = f.metadata.get("env")
            if env_var:
                value = EnvVars.get(
                    var_name=env_var,
                    type_hint=f.type,
                    converter=f.metadata.get("converter"),
                )
                if value is not None:
                    overrides[f.name] = value
        return self.with_overrides(overrides)


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass(frozen=True)
class ApiConfig(OverridableConfig):
    """
    Transport settings for throttled API clients.

    Attributes:
        base_url: Base URL prepended to relative endpoints.
            Env var: API_BASE_URL

        request_timeout_ms: Per-attempt timeout in milliseconds.
            Env var: API_REQUEST_TIMEOUT

        max_attempts: Total attempts per request (1 original + retries).
            Use 1 to disable retries.
            Env var: API_MAX_RETRIES

        log_requests: Log every request/response at INFO level.
            Env var: API_LOG_REQUESTS

    Example:
        >>> from humanpace import PACE
        >>> PACE.config.api.request_timeout_ms
        30000
    """

    base_url: str = field(default="https://smart.md", metadata={"env": "API_BASE_URL"})
    request_timeout_ms: int = field(default=30000, metadata={"env": "API_REQUEST_TIMEOUT"})
    max_attempts: int = field(default=3, metadata={"env": "API_MAX_RETRIES"})
    log_requests: bool = field(default=False, metadata={"env": "API_LOG_REQUESTS"})

    def validate(self) -> Self:
        """Validate API configuration fields."""
        if self.base_url and not (self.base_url.startswith("http://") or self.base_url.startswith("https://")):
            raise ConfigValidationError(
                "base_url", self.base_url,
                "Must start with 'http://' or 'https://'.", section="api"
            )
        if self.request_timeout_ms <= 0:
            raise ConfigValidationError(
                "request_timeout_ms", self.request_timeout_ms,
                "Must be greater than 0.", section="api"
            )
        if self.max_attempts < 1:
            raise ConfigValidationError(
                "max_attempts", self.max_attempts,
                "Must be >= 1.", section="api"
            )
        return self


@dataclass(frozen=True)
class ThrottleConfig(OverridableConfig):
    """
    Throttling profile selection.

    Attributes:
        profile: Name of the built-in profile (stealth, normal, fast, burst).
            Env var: API_PROFILE

        disable_delays: Skip every sleep issued by the delay primitives.
            Meant for unit tests and mock-backed CI runs.
            Env var: DISABLE_API_DELAYS

        human_like: Deprecated. False removes request delays and session gaps.
            Env var: HUMAN_BEHAVIOR

        human_speed: Deprecated. Multiplier applied to every delay range.
            Env var: HUMAN_SPEED

    Example:
        >>> from humanpace import PACE
        >>> PACE.config.throttle.resolve_profile().name
        'stealth'
    """

    profile: str = field(default="stealth", metadata={"env": "API_PROFILE"})
    disable_delays: bool = field(default=False, metadata={"env": "DISABLE_API_DELAYS"})
    human_like: bool | None = field(default=None, metadata={"env": "HUMAN_BEHAVIOR", "converter": parse_bool})
    human_speed: float | None = field(default=None, metadata={"env": "HUMAN_SPEED", "converter": float})

    def resolve_profile(self) -> ProfileConfig:
        """
        Return the selected profile with legacy options applied.

        Raises:
            ConfigValidationError: If the profile name is unknown.
        """
        from humanpace._profiles import adapt_legacy_options, get_profile

        return adapt_legacy_options(
            get_profile(self.profile),
            human_like=self.human_like,
            human_speed=self.human_speed,
        )

    def validate(self) -> Self:
        """Validate throttle configuration fields."""
        from humanpace._profiles import PROFILES

        if self.profile.lower() not in PROFILES:
            raise ConfigValidationError(
                "profile", self.profile,
                f"Must be one of: {tuple(PROFILES)}.", section="throttle"
            )
        if self.human_speed is not None and self.human_speed <= 0:
            raise ConfigValidationError(
                "human_speed", self.human_speed,
                "Must be greater than 0.", section="throttle"
            )
        return self


@dataclass(frozen=True)
class ConfigEntry:
    """
    A configuration field with its resolved value and source.

    Attributes:
        name: The field name (e.g., "request_timeout_ms").
        value: The resolved value.
        source: "default", "env:VAR_NAME" or "configure".
    """

    name: str
    value: Any
    source: str

    @property
    def formatted_value(self) -> str:
        """Return value formatted for display, truncating long strings."""
        if self.value is None:
            return "None"

        str_value = str(self.value)
        max_length = 50
        if len(str_value) > max_length:
            return str_value[: max_length - 3] + "..."
        return str_value


@dataclass(frozen=True)
class PaceConfig:
    """
    Root configuration aggregating the `api` and `throttle` sections.

    Access via the global `PACE.config` property.
    """

    api: ApiConfig = field(default_factory=ApiConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)

    def with_env_vars(self) -> PaceConfig:
        """Return a new config with environment variables applied on top."""
        return PaceConfig(
            api=self.api.with_env_vars(),
            throttle=self.throttle.with_env_vars(),
        )

    def with_section_overrides(
        self,
        *,
        api: dict[str, Any] | None = None,
        throttle: dict[str, Any] | None = None,
    ) -> PaceConfig:
        """Return a new config with overrides applied to nested sections."""
        return PaceConfig(
            api=self.api.with_overrides(api or {}),
            throttle=self.throttle.with_overrides(throttle or {}),
        )


# =============================================================================
# Global Configuration Singleton
# =============================================================================


class _Pace:
    """
    Singleton holding the process-wide configuration.

    Use `PACE.configure()` to customize settings, `PACE.config` to read
    them and `PACE.reset()` between independent test suites.

    Example:
        >>> from humanpace import PACE
        >>> PACE.configure(throttle={"profile": "normal"})
        >>> PACE.config.throttle.resolve_profile().max_parallel
        2
    """

    def __init__(self) -> None:
        """Initialize with defaults and environment variables."""
        self._config: PaceConfig = PaceConfig().with_env_vars()
        self._overrides: dict[str, dict[str, Any]] = {}
        self._env_applied = True

    def configure(
        self,
        *,
        api: dict[str, Any] | None = None,
        throttle: dict[str, Any] | None = None,
        allow_env_override: bool = True,
    ) -> PaceConfig:
        """
        Configure library settings.

        Args:
            api: Transport config overrides (base_url, request_timeout_ms, ...).
            throttle: Throttle config overrides (profile, disable_delays, ...).
            allow_env_override: If True (default), env vars are used as fallback
                for fields NOT provided. If False, ignores env vars entirely.

        Returns:
            The configured PaceConfig instance.

        Raises:
            ValueError: If any dict contains unknown field names.
            ConfigValidationError: If any config value fails validation.
        """
        base = PaceConfig()
        if allow_env_override:
            base = base.with_env_vars()

        self._config = base.with_section_overrides(api=api, throttle=throttle)
        self._overrides = {"api": dict(api or {}), "throttle": dict(throttle or {})}
        self._env_applied = allow_env_override

        return self.validate()

    @property
    def config(self) -> PaceConfig:
        """Access current configuration (read-only)."""
        return self._config

    def reset(self) -> PaceConfig:
        """
        Reset configuration to defaults + env vars.

        Useful for testing to ensure clean state between tests.

        Raises:
            ConfigValidationError: If any config value is invalid.
        """
        self._config = PaceConfig().with_env_vars()
        self._overrides = {}
        self._env_applied = True
        return self.validate()

    def validate(self) -> PaceConfig:
        """
        Validate current configuration.

        Raises:
            ConfigValidationError: If any config value is invalid.
        """
        self._config.api.validate()
        self._config.throttle.validate()
        return self._config

    def explain_data(self) -> dict[str, list[ConfigEntry]]:
        """Return each section's fields with their value and source."""
        result: dict[str, list[ConfigEntry]] = {}
        for section_name in ("api", "throttle"):
            section_config = getattr(self._config, section_name)
            section_overrides = self._overrides.get(section_name, {})
            entries = []
            for f in fields(section_config):
                env_var = f.metadata.get("env")
                if f.name in section_overrides:
                    source = "configure"
                elif self._env_applied and env_var and os.environ.get(env_var):
                    source = f"env:{env_var}"
                else:
                    source = "default"
                entries.append(ConfigEntry(name=f.name, value=getattr(section_config, f.name), source=source))
            result[section_name] = entries
        return result

    def explain(
        self,
        output: Callable[[str], None] = print,
    ) -> None:
        """
        Print current configuration with sources.

        Args:
            output: Callable to output each line. Defaults to print.
                    Can be used with logging: `PACE.explain(logger.info)`
        """
        name_width = 22

        output("humanpace configuration:")
        output("=" * 72)
        for section_name, entries in self.explain_data().items():
            output(f"[{section_name}]")
            for entry in entries:
                dots = "." * (name_width - len(entry.name))
                marker = "✎" if entry.source != "default" else " "
                output(f"  {entry.name} {dots} {entry.formatted_value:<30} {marker} {entry.source}")
        output("=" * 72)

    def __repr__(self) -> str:
        return f"PACE(config={self._config!r})"


# Global singleton instance - always reflects current configuration
PACE: _Pace = _Pace()
PACE.validate()  # Validate defaults + env vars on module load
