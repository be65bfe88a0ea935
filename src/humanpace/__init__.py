"""
humanpace: human-like request pacing for API test suites.

Makes automated API traffic look like a human visitor: profile-driven
delays with jitter and progressive backoff, a FIFO concurrency limiter,
cookie/session continuity and rate-limit telemetry.

Quick Start:
    >>> from humanpace import ThrottledHttpClient
    >>> client = ThrottledHttpClient()
    >>> response = client.get("/ru/search?q=iphone")
    >>> client.stats().success_rate
    100

Test Isolation:
    >>> from humanpace import ThrottleContext, get_profile
    >>> context = ThrottleContext.isolated(get_profile("burst"))
    >>> client = ThrottledHttpClient(context=context)
    >>> with context.suite():
    ...     client.get("/ru/catalog")

Global Configuration:
    >>> from humanpace import PACE
    >>>
    >>> # Pre-loaded with defaults + env vars (API_PROFILE, DISABLE_API_DELAYS, ...)
    >>> PACE.config.throttle.profile
    'stealth'
    >>>
    >>> # Custom configuration
    >>> PACE.configure(
    ...     api={"base_url": "https://staging.smart.md", "max_attempts": 5},
    ...     throttle={"profile": "normal"},
    ... )

Profiles:
    - ProfileConfig, DelayRange: Profile data types.
    - get_profile, current_profile, PROFILES: Lookup.
    - adapt_legacy_options: Maps the deprecated human_like/human_speed options.

Pacing:
    - ThrottleCoordinator: Global spacing between requests and backoff state.
    - RequestSemaphore: FIFO concurrency limiter.
    - SessionManager: Cookie jar and session gaps.
    - RateLimitTracker: Response telemetry and throttle detection.
    - ThrottleContext: Injectable bundle of the above, with suite hooks.

HTTP Client:
    - HttpClient: Abstract base class for HTTP clients.
    - RequestsHttpClient: Transport using `requests`.
    - ThrottledHttpClient: Decorator applying the full pacing flow.
    - ApiError: Raised on non-retryable error responses.

Retry:
    - Retrying: Context manager for retry with backoff.
    - RetryableError: Base class for exceptions that trigger automatic retry.
    - MaxRetriesExceededError: Exception raised when all retry attempts are exhausted.
"""

from importlib.metadata import version as _get_version

__version__ = _get_version("humanpace")

from humanpace._config import (
    PACE,
    ApiConfig,
    ConfigEntry,
    ConfigEnvVarError,
    ConfigValidationError,
    PaceConfig,
    ThrottleConfig,
)
from humanpace._context import ApiStats, ThrottleContext
from humanpace._delay import (
    apply_jitter,
    calculate_backoff,
    random_delay,
)
from humanpace._headers import (
    random_user_agent,
    realistic_headers,
    user_agent_for_platform,
)
from humanpace._http import (
    ApiError,
    HttpClient,
    RequestsHttpClient,
    ThrottledHttpClient,
)
from humanpace._profiles import (
    BURST_PROFILE,
    FAST_PROFILE,
    NORMAL_PROFILE,
    PROFILES,
    STEALTH_PROFILE,
    DelayRange,
    ProfileConfig,
    adapt_legacy_options,
    current_profile,
    explain_profile,
    get_profile,
    is_mock_mode,
    is_parallel_enabled,
)
from humanpace._retry import (
    MaxRetriesExceededError,
    RetryableError,
    Retrying,
)
from humanpace._semaphore import (
    ClientSideRateLimitError,
    RequestSemaphore,
    SlotAcquisitionTimeoutError,
    WaitQueueFullError,
    get_global_semaphore,
    reset_global_semaphore,
)
from humanpace._session import Cookie, SessionManager, SessionStats
from humanpace._throttle import ThrottleCoordinator
from humanpace._tracker import (
    EndpointStats,
    RateLimitStats,
    RateLimitTracker,
    ResponseRecord,
)

__all__ = [
    "__version__",
    # Configuration
    "PACE",
    "PaceConfig",
    "ApiConfig",
    "ThrottleConfig",
    "ConfigEntry",
    "ConfigEnvVarError",
    "ConfigValidationError",
    # Profiles
    "ProfileConfig",
    "DelayRange",
    "PROFILES",
    "STEALTH_PROFILE",
    "NORMAL_PROFILE",
    "FAST_PROFILE",
    "BURST_PROFILE",
    "get_profile",
    "current_profile",
    "is_parallel_enabled",
    "is_mock_mode",
    "adapt_legacy_options",
    "explain_profile",
    # Delays
    "random_delay",
    "apply_jitter",
    "calculate_backoff",
    # Pacing
    "ThrottleCoordinator",
    "RequestSemaphore",
    "get_global_semaphore",
    "reset_global_semaphore",
    "ClientSideRateLimitError",
    "SlotAcquisitionTimeoutError",
    "WaitQueueFullError",
    "SessionManager",
    "SessionStats",
    "Cookie",
    "RateLimitTracker",
    "RateLimitStats",
    "EndpointStats",
    "ResponseRecord",
    "ThrottleContext",
    "ApiStats",
    # Headers
    "random_user_agent",
    "user_agent_for_platform",
    "realistic_headers",
    # HTTP Client
    "HttpClient",
    "RequestsHttpClient",
    "ThrottledHttpClient",
    "ApiError",
    # Retry
    "Retrying",
    "RetryableError",
    "MaxRetriesExceededError",
]
