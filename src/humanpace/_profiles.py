"""
Throttling profiles.

A profile is a named, immutable bundle of timing and concurrency parameters
controlling how aggressively requests are paced. All durations are in
milliseconds.

Available profiles:
    - stealth: Slow, sequential traffic for protected production sites.
    - normal: Moderate delays for staging environments.
    - fast: Minimal delays for internal, unprotected APIs.
    - burst: No delays at all, meant for mock-backed CI runs.

Example:
    >>> from humanpace import get_profile
    >>> profile = get_profile("normal")
    >>> profile.request_delay
    DelayRange(min=500, max=1500)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace

from humanpace._config import ConfigValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DelayRange:
    """Inclusive delay bounds in milliseconds."""

    min: float
    max: float

    def scaled(self, factor: float) -> DelayRange:
        """Return a new range with both bounds multiplied by `factor`."""
        return DelayRange(min=self.min * factor, max=self.max * factor)


@dataclass(frozen=True)
class ProfileConfig:
    """
    Timing and concurrency parameters for one throttling profile.

    Attributes:
        name: Profile identifier.
        request_delay: Base delay between two request starts.
        session_gap: Pause between independent test suites.
        jitter_percent: Randomization applied to each delay (0-50).
        max_parallel: Concurrency ceiling enforced by the request semaphore.
        retry_delay: Wait before retrying a failed attempt.
        progressive_backoff: Whether consecutive errors inflate delays.
        cookie_persistence: Whether session cookies are tracked and re-sent.
        use_mocks: Whether the suite should target a mock server.
    """

    name: str
    request_delay: DelayRange
    session_gap: DelayRange
    jitter_percent: float
    max_parallel: int
    retry_delay: DelayRange
    progressive_backoff: bool
    cookie_persistence: bool
    use_mocks: bool = False

    def validate(self) -> ProfileConfig:
        """
        Check range and concurrency invariants.

        Raises:
            ConfigValidationError: If any invariant is violated.
        """
        section = f"profile:{self.name}"
        for field_name in ("request_delay", "session_gap", "retry_delay"):
            delay_range: DelayRange = getattr(self, field_name)
            if delay_range.min < 0 or delay_range.max < 0:
                raise ConfigValidationError(
                    field_name, delay_range,
                    "Bounds must be >= 0.", section=section
                )
            if delay_range.min > delay_range.max:
                raise ConfigValidationError(
                    field_name, delay_range,
                    "min must be <= max.", section=section
                )
        if not 0 <= self.jitter_percent <= 50:
            raise ConfigValidationError(
                "jitter_percent", self.jitter_percent,
                "Must be between 0 and 50.", section=section
            )
        if self.max_parallel < 1:
            raise ConfigValidationError(
                "max_parallel", self.max_parallel,
                "Must be >= 1.", section=section
            )
        return self

    def with_speed(self, multiplier: float) -> ProfileConfig:
        """Return a copy with every delay range scaled by `multiplier`."""
        return replace(
            self,
            request_delay=self.request_delay.scaled(multiplier),
            session_gap=self.session_gap.scaled(multiplier),
            retry_delay=self.retry_delay.scaled(multiplier),
        )

    def without_delays(self) -> ProfileConfig:
        """Return a copy with request delays, session gaps and jitter removed."""
        return replace(
            self,
            request_delay=DelayRange(0, 0),
            session_gap=DelayRange(0, 0),
            jitter_percent=0,
        )


STEALTH_PROFILE = ProfileConfig(
    name="stealth",
    request_delay=DelayRange(2000, 5000),
    session_gap=DelayRange(10000, 30000),
    jitter_percent=40,
    max_parallel=1,
    retry_delay=DelayRange(5000, 15000),
    progressive_backoff=True,
    cookie_persistence=True,
    use_mocks=False,
)

NORMAL_PROFILE = ProfileConfig(
    name="normal",
    request_delay=DelayRange(500, 1500),
    session_gap=DelayRange(2000, 5000),
    jitter_percent=25,
    max_parallel=2,
    retry_delay=DelayRange(2000, 5000),
    progressive_backoff=True,
    cookie_persistence=True,
    use_mocks=False,
)

FAST_PROFILE = ProfileConfig(
    name="fast",
    request_delay=DelayRange(0, 100),
    session_gap=DelayRange(0, 0),
    jitter_percent=10,
    max_parallel=10,
    retry_delay=DelayRange(500, 1000),
    progressive_backoff=False,
    cookie_persistence=False,
    use_mocks=False,
)

BURST_PROFILE = ProfileConfig(
    name="burst",
    request_delay=DelayRange(0, 0),
    session_gap=DelayRange(0, 0),
    jitter_percent=0,
    max_parallel=20,
    retry_delay=DelayRange(100, 300),
    progressive_backoff=False,
    cookie_persistence=False,
    use_mocks=True,
)

PROFILES: dict[str, ProfileConfig] = {
    "stealth": STEALTH_PROFILE,
    "normal": NORMAL_PROFILE,
    "fast": FAST_PROFILE,
    "burst": BURST_PROFILE,
}


def get_profile(name: str) -> ProfileConfig:
    """
    Look up a built-in profile by name (case-insensitive).

    Raises:
        ConfigValidationError: If the name is not a known profile.
    """
    profile = PROFILES.get(name.lower())
    if profile is None:
        raise ConfigValidationError(
            "profile", name,
            f"Valid options: {', '.join(PROFILES)}.", section="throttle"
        )
    return profile


def current_profile() -> ProfileConfig:
    """Return the profile selected by `PACE.config.throttle` (API_PROFILE, default stealth)."""
    from humanpace._config import PACE

    return PACE.config.throttle.resolve_profile()


def is_parallel_enabled() -> bool:
    """Return True when the current profile allows more than one in-flight request."""
    return current_profile().max_parallel > 1


def is_mock_mode() -> bool:
    """Return True when the current profile targets a mock server."""
    return current_profile().use_mocks


# =============================================================================
# Legacy options
# =============================================================================

_legacy_notice_lock = threading.Lock()
_legacy_notice_emitted = False


def adapt_legacy_options(
    profile: ProfileConfig,
    human_like: bool | None = None,
    human_speed: float | None = None,
) -> ProfileConfig:
    """
    Map the deprecated human-like options onto a profile.

    `human_like=False` strips request delays, session gaps and jitter;
    `human_speed` scales every delay range. A deprecation notice is logged
    the first time either option is seen in this process.

    Args:
        profile: The canonical profile to adapt.
        human_like: Legacy on/off switch for human-like pacing.
        human_speed: Legacy delay multiplier (1.0 = unchanged).

    Returns:
        The adapted profile, or `profile` itself when no legacy option is set.
    """
    if human_like is None and human_speed is None:
        return profile

    global _legacy_notice_emitted
    with _legacy_notice_lock:
        if not _legacy_notice_emitted:
            _legacy_notice_emitted = True
            logger.warning(
                "⚠️ human_like/human_speed options are deprecated. "
                f"Select a profile via API_PROFILE instead (current: {profile.name})."
            )

    adapted = profile
    if human_like is False:
        adapted = adapted.without_delays()
    if human_speed is not None and human_speed != 1.0:
        adapted = adapted.with_speed(human_speed)
    return adapted


def explain_profile(
    profile: ProfileConfig | None = None,
    output: Callable[[str], None] = print,
) -> None:
    """
    Print a profile's settings, one line per parameter.

    Args:
        profile: Profile to describe (defaults to the current one).
        output: Callable receiving each line. Defaults to print.
    """
    p = profile or current_profile()

    output(f"🎭 API Profile: {p.name.upper()}")
    output(f"   Request delay: {p.request_delay.min:g}-{p.request_delay.max:g}ms")
    output(f"   Session gap:   {p.session_gap.min:g}-{p.session_gap.max:g}ms")
    output(f"   Jitter:        {p.jitter_percent:g}%")
    output(f"   Max parallel:  {p.max_parallel}")
    output(f"   Retry delay:   {p.retry_delay.min:g}-{p.retry_delay.max:g}ms")
    output(f"   Mocks:         {'enabled' if p.use_mocks else 'disabled'}")
    output(f"   Cookies:       {'persistent' if p.cookie_persistence else 'ephemeral'}")
