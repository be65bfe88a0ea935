"""
Throttle context: the bundle of pacing components a client works with.

`ThrottleContext.default()` follows the process-wide singletons, while
`ThrottleContext.isolated(profile)` builds private instances, which keeps
tests independent from each other.

Example:
    >>> from humanpace import ThrottleContext, ThrottledHttpClient, get_profile
    >>> context = ThrottleContext.isolated(get_profile("fast"))
    >>> client = ThrottledHttpClient(context=context)
    >>> with context.suite():
    ...     client.get("/ru/catalog")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from humanpace._config import PACE
from humanpace._profiles import ProfileConfig, current_profile, explain_profile
from humanpace._semaphore import RequestSemaphore, get_global_semaphore, reset_global_semaphore
from humanpace._session import SessionManager, SessionStats
from humanpace._throttle import ThrottleCoordinator
from humanpace._tracker import RateLimitStats, RateLimitTracker

logger = logging.getLogger(__name__)

_RULE = "═" * 59
_THIN_RULE = "─" * 59

_profile_logged = False
_profile_logged_lock = threading.Lock()


@dataclass(frozen=True)
class ApiStats:
    """Combined snapshot of session, rate-limit telemetry and active profile."""

    session: SessionStats
    rate_limit: RateLimitStats
    profile: ProfileConfig


class ThrottleContext:
    """
    Profile, coordinator, semaphore, session and tracker used by a client.

    Components left as None resolve to the process-wide singletons at each
    access, so a default context keeps working across `reset()`.

    Args:
        profile: Fixed profile. None follows the current profile.
        coordinator: Pacing state.
        semaphore: Concurrency limiter.
        session: Cookie jar and suite pacing.
        tracker: Response telemetry.
    """

    def __init__(
        self,
        profile: ProfileConfig | None = None,
        coordinator: ThrottleCoordinator | None = None,
        semaphore: RequestSemaphore | None = None,
        session: SessionManager | None = None,
        tracker: RateLimitTracker | None = None,
    ):
        self._profile = profile
        self._coordinator = coordinator
        self._semaphore = semaphore
        self._session = session
        self._tracker = tracker

    @classmethod
    def default(cls) -> ThrottleContext:
        """Context backed by the process-wide singletons."""
        return cls()

    @classmethod
    def isolated(cls, profile: ProfileConfig | None = None) -> ThrottleContext:
        """Context with private instances of every component, pinned to `profile`."""
        p = profile or current_profile()
        return cls(
            profile=p,
            coordinator=ThrottleCoordinator(),
            semaphore=RequestSemaphore(p.max_parallel),
            session=SessionManager(profile=p),
            tracker=RateLimitTracker(),
        )

    @property
    def profile(self) -> ProfileConfig:
        return self._profile or current_profile()

    @property
    def coordinator(self) -> ThrottleCoordinator:
        return self._coordinator or ThrottleCoordinator.get_instance()

    @property
    def semaphore(self) -> RequestSemaphore:
        return self._semaphore or get_global_semaphore(self._profile)

    @property
    def session(self) -> SessionManager:
        return self._session or SessionManager.get_instance()

    @property
    def tracker(self) -> RateLimitTracker:
        return self._tracker or RateLimitTracker.get_instance()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """
        Return every component to a fresh state.

        Singleton-backed components are dropped and recreated on next use;
        injected ones are reset in place. Safe to call repeatedly.
        """
        global _profile_logged
        logger.info("🔄 Resetting API test state...")

        if self._session is None:
            SessionManager.reset_instance()
        else:
            self._session.reset()

        if self._tracker is None:
            RateLimitTracker.reset_instance()
        else:
            self._tracker.clear()

        if self._coordinator is None:
            ThrottleCoordinator.reset_instance()
        else:
            self._coordinator.reset()

        if self._semaphore is None:
            reset_global_semaphore()
        else:
            self._semaphore = RequestSemaphore(
                self._semaphore.max_concurrent, self._semaphore.max_waiting
            )

        with _profile_logged_lock:
            _profile_logged = False

        logger.info("✅ API state reset complete")

    def stats(self) -> ApiStats:
        return ApiStats(
            session=self.session.get_stats(),
            rate_limit=self.tracker.get_stats(),
            profile=self.profile,
        )

    def is_throttled(self, window_ms: float | None = None) -> bool:
        """Return True if the tracker saw a 429 within the window (default 60s)."""
        if window_ms is None:
            return self.tracker.is_throttled()
        return self.tracker.is_throttled(window_ms)

    def clear_session(self) -> None:
        """Drop session cookies and start a new session id."""
        self.session.clear_session()

    # -------------------------------------------------------------------------
    # Suite lifecycle
    # -------------------------------------------------------------------------

    def log_profile_once(self, output: Callable[[str], None] = print) -> bool:
        """
        Print the throttling banner, at most once per process (until `reset()`).

        Returns:
            True if the banner was printed by this call.
        """
        global _profile_logged
        with _profile_logged_lock:
            if _profile_logged:
                return False
            _profile_logged = True

        api = PACE.config.api
        output("")
        output(_RULE)
        output("              🎭 API THROTTLING INITIALIZED")
        output(_RULE)
        explain_profile(self.profile, output=output)
        output("🔧 CONFIGURATION")
        output(_THIN_RULE)
        output(f"   Base URL:    {api.base_url}")
        output(f"   Timeout:     {api.request_timeout_ms}ms")
        output(f"   Max Retries: {api.max_attempts}")
        output(f"   Logging:     {'enabled' if api.log_requests else 'disabled'}")
        output("")
        return True

    def before_each(self) -> float:
        """Per-test hook: wait out the profile's session gap."""
        return self.session.wait_for_session_gap()

    def after_all(self, output: Callable[[str], None] = print) -> None:
        """End-of-suite hook: print the report and session summary, mark the suite end."""
        self.tracker.print_report(output=output)

        stats = self.session.get_stats()
        output("🍪 SESSION SUMMARY")
        output(_THIN_RULE)
        output(f"   Session ID:   {stats.session_id}")
        output(f"   Cookies:      {stats.cookie_count}")
        output(f"   Suite Count:  {stats.suite_count}")
        output("")

        self.session.mark_suite_end()

    @contextmanager
    def suite(self, output: Callable[[str], None] = print) -> Iterator[ThrottleContext]:
        """
        Wrap a test suite.

        On entry the profile banner is printed (once per process) and the
        session gap is honored; on exit the report and session summary are
        printed and the suite boundary is recorded, even if the suite failed.
        """
        self.log_profile_once(output=output)
        self.before_each()
        try:
            yield self
        finally:
            self.after_all(output=output)

    def __repr__(self) -> str:
        return f"ThrottleContext(profile={self.profile.name!r})"
