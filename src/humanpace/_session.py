"""
Session continuity for throttled API traffic.

`SessionManager` keeps a cookie jar fed by `Set-Cookie` response headers,
re-sends the cookies on later requests, and spaces independent test suites
apart by the current profile's session gap.

Example:
    >>> from humanpace._session import SessionManager
    >>> session = SessionManager.get_instance()
    >>> session.save_cookies(response)
    >>> headers = session.apply_cookies({"Accept": "application/json"})
    >>> session.wait_for_session_gap()
"""

from __future__ import annotations

import logging
import random
import string
import threading
import time
from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, ClassVar, TypeVar

import requests

from humanpace._delay import random_delay
from humanpace._profiles import ProfileConfig, current_profile

logger = logging.getLogger(__name__)

_H = TypeVar("_H")


@dataclass
class Cookie:
    """A stored cookie. Only `expires` is ever evaluated."""

    value: str
    expires: datetime | None = None
    path: str | None = None
    domain: str | None = None
    secure: bool = False
    http_only: bool = False

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True if the cookie carries an expiry that has passed."""
        if self.expires is None:
            return False
        return self.expires < (now or datetime.now(timezone.utc))


@dataclass(frozen=True)
class SessionStats:
    """Snapshot of the session state."""

    session_id: str
    cookie_count: int
    suite_count: int


# =============================================================================
# Set-Cookie parsing
# =============================================================================


def _parse_expires(value: str | bool | None) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        expires = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        # Unparseable dates behave like session cookies
        return None
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires


def parse_set_cookie(header: str) -> tuple[str, Cookie] | None:
    """
    Parse one `Set-Cookie` directive.

    The first `name=value` pair is the cookie; the remaining `;`-separated
    segments are attributes, lower-cased, either `attr=value` or bare flags.

    Returns:
        `(name, cookie)`, or None when the directive has no `=` in its first
        segment.
    """
    name_value, *attribute_parts = [part.strip() for part in header.split(";")]
    if "=" not in name_value:
        return None

    name, _, value = name_value.partition("=")
    attributes: dict[str, str | bool] = {}
    for attr in attribute_parts:
        if not attr:
            continue
        if "=" in attr:
            attr_name, _, attr_value = attr.partition("=")
            attributes[attr_name.strip().lower()] = attr_value.strip()
        else:
            attributes[attr.lower()] = True

    path = attributes.get("path")
    domain = attributes.get("domain")
    return name.strip(), Cookie(
        value=value.strip(),
        expires=_parse_expires(attributes.get("expires")),
        path=path if isinstance(path, str) else None,
        domain=domain if isinstance(domain, str) else None,
        secure=bool(attributes.get("secure")),
        http_only=bool(attributes.get("httponly")),
    )


def _values_from_mapping(headers: Mapping[str, Any]) -> list[str]:
    # urllib3 HTTPHeaderDict keeps repeated headers apart
    getlist = getattr(headers, "getlist", None)
    if callable(getlist):
        values = getlist("Set-Cookie")
        if isinstance(values, list):
            return [str(v) for v in values]

    for key, value in headers.items():
        if key.lower() == "set-cookie":
            return extract_set_cookie_headers(value)
    return []


def extract_set_cookie_headers(source: Any) -> list[str]:
    """
    Normalize every supported response shape to a list of `Set-Cookie` values.

    Accepted shapes: a `requests.Response`, a header mapping (including
    multi-valued ones), any object with a `headers` attribute, a single
    header string, or a list of them.
    """
    if source is None:
        return []
    if isinstance(source, str):
        return [source] if source else []
    if isinstance(source, list | tuple):
        return [str(v) for v in source if v]
    if isinstance(source, requests.Response):
        raw_headers = getattr(source.raw, "headers", None)
        if raw_headers is not None:
            values = _values_from_mapping(raw_headers)
            if values:
                return values
        return _values_from_mapping(source.headers)
    if isinstance(source, Mapping):
        return _values_from_mapping(source)
    headers = getattr(source, "headers", None)
    if headers is not None:
        return extract_set_cookie_headers(headers)
    return []


def _base36(number: int) -> str:
    alphabet = string.digits + string.ascii_lowercase
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(alphabet[remainder])
    return "".join(reversed(digits))


def generate_session_id() -> str:
    """Return a new id of the form `sess_<base36 ms timestamp>_<6 random chars>`."""
    suffix = "".join(random.choices(string.digits + string.ascii_lowercase, k=6))
    return f"sess_{_base36(int(time.time() * 1000))}_{suffix}"


# =============================================================================
# Session manager
# =============================================================================


class SessionManager:
    """
    Cookie jar plus suite pacing.

    Cookies are only stored and applied when the profile enables
    `cookie_persistence`. Writes are last-write-wins per cookie name, and
    expired cookies are evicted lazily when cookies are applied.

    Args:
        profile: Fixed profile. None follows the current profile.
        clock: Monotonic clock returning seconds, used for session gaps.
        rng: Optional RNG for the random part of session gaps.
    """

    _instance: ClassVar[SessionManager | None] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        profile: ProfileConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        self._profile = profile
        self._clock = clock
        self._rng = rng or random.Random()
        self._cookies: dict[str, Cookie] = {}
        self._last_suite_end = 0.0
        self._suite_count = 0
        self._session_id = generate_session_id()
        self._lock = threading.Lock()
        logger.info(f"🍪 Session initialized: {self._session_id}")

    @classmethod
    def get_instance(cls) -> SessionManager:
        """Return the process-wide session manager, creating it on first use."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the process-wide session manager."""
        with cls._instance_lock:
            cls._instance = None

    @property
    def profile(self) -> ProfileConfig:
        return self._profile or current_profile()

    @property
    def session_id(self) -> str:
        with self._lock:
            return self._session_id

    # -------------------------------------------------------------------------
    # Cookies
    # -------------------------------------------------------------------------

    def save_cookies(self, response: Any) -> None:
        """
        Store every cookie set by `response`.

        See `extract_set_cookie_headers()` for the accepted shapes.
        Directives that cannot be parsed are skipped.
        """
        if not self.profile.cookie_persistence:
            return

        for header in extract_set_cookie_headers(response):
            parsed = parse_set_cookie(header)
            if parsed is None:
                logger.debug(f"Ignoring malformed Set-Cookie header: {header!r}")
                continue
            name, cookie = parsed
            with self._lock:
                self._cookies[name] = cookie
            logger.debug(f"🍪 Cookie saved: {name}")

    def apply_cookies(self, headers: _H) -> _H:
        """
        Set a single `Cookie` header built from the non-expired stored cookies.

        Accepts a mutable header mapping or an object carrying one in its
        `headers` attribute, and returns the same object. Nothing is set when
        no cookie remains.
        """
        if not self.profile.cookie_persistence:
            return headers

        now = datetime.now(timezone.utc)
        with self._lock:
            for name in [n for n, c in self._cookies.items() if c.is_expired(now)]:
                del self._cookies[name]
            parts = [f"{name}={cookie.value}" for name, cookie in self._cookies.items()]

        if not parts:
            return headers

        target = headers if isinstance(headers, MutableMapping) else getattr(headers, "headers")
        target["Cookie"] = "; ".join(parts)
        return headers

    def cookie_string(self) -> str:
        """Return all stored cookies as `a=1; b=2`, expired ones included."""
        with self._lock:
            return "; ".join(f"{name}={cookie.value}" for name, cookie in self._cookies.items())

    def cookies(self) -> dict[str, Cookie]:
        """Return a copy of the cookie jar."""
        with self._lock:
            return dict(self._cookies)

    def has_cookie(self, name: str) -> bool:
        with self._lock:
            return name in self._cookies

    def get_cookie(self, name: str) -> str | None:
        """Return a cookie's value, or None if it is not stored."""
        with self._lock:
            cookie = self._cookies.get(name)
        return cookie.value if cookie else None

    def clear_session(self) -> None:
        """Drop every cookie and start a new session id."""
        with self._lock:
            self._cookies = {}
            self._session_id = generate_session_id()
            session_id = self._session_id
        logger.info(f"🧹 Session cleared, new ID: {session_id}")

    def reset(self) -> None:
        """Clear the session and forget suite boundaries and counts."""
        self.clear_session()
        with self._lock:
            self._last_suite_end = 0.0
            self._suite_count = 0

    # -------------------------------------------------------------------------
    # Suite pacing
    # -------------------------------------------------------------------------

    def wait_for_session_gap(self) -> float:
        """
        Pause between test suites.

        No-op when the profile's session gap max is <= 0. When at least
        `session_gap.min` has elapsed since the last suite boundary the call
        returns at once; otherwise it waits out the deficit plus a random
        extra in `[0, max - min)`.

        Returns:
            The milliseconds waited.
        """
        gap = self.profile.session_gap
        if gap.max <= 0:
            return 0.0

        now = self._clock() * 1000.0
        with self._lock:
            last = self._last_suite_end

        since_last = float("inf") if last <= 0 else now - last
        if since_last >= gap.min:
            self.mark_suite_end()
            return 0.0

        remaining = gap.min - since_last
        extra = int(self._rng.random() * (gap.max - gap.min))
        total = remaining + extra

        waited = 0.0
        if total > 0:
            with self._lock:
                self._suite_count += 1
                suite = self._suite_count
            logger.info(f"☕ Session gap: waiting {total / 1000:.1f}s (suite #{suite})")
            waited = random_delay(total, total)

        self.mark_suite_end()
        return waited

    def mark_suite_end(self) -> None:
        """Record the current time as the last suite boundary."""
        now = self._clock() * 1000.0
        with self._lock:
            self._last_suite_end = now

    def get_stats(self) -> SessionStats:
        with self._lock:
            return SessionStats(
                session_id=self._session_id,
                cookie_count=len(self._cookies),
                suite_count=self._suite_count,
            )

    def __repr__(self) -> str:
        return f"SessionManager(session_id={self._session_id!r}, cookies={len(self._cookies)})"
