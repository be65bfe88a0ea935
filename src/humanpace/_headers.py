"""
Browser-like request headers.

User-agent rotation and header sets resembling what a real browser sends
to the storefront, in Russian or Romanian locale.
"""

from __future__ import annotations

import random
from typing import Literal

Language = Literal["ru", "ro"]
Platform = Literal["desktop", "mobile", "tablet"]

USER_AGENTS: tuple[str, ...] = (
    # Chrome Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    # Chrome Mac
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Firefox Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    # Firefox Mac
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
    # Safari Mac
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    # Edge Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
    # Chrome Android
    "Mozilla/5.0 (Linux; Android 10; SM-G981B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
    # Safari iOS
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1",
)

TABLET_USER_AGENT = (
    "Mozilla/5.0 (iPad; CPU OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)

_ACCEPT_LANGUAGE: dict[str, str] = {
    "ru": "ru-RU,ru;q=0.9,ro;q=0.8,en;q=0.7",
    "ro": "ro-RO,ro;q=0.9,ru;q=0.8,en;q=0.7",
}

# Sent by ThrottledHttpClient on every request unless overridden.
DEFAULT_ACCEPT_LANGUAGE = "ru,ro;q=0.9,en;q=0.8"


def random_user_agent(rng: random.Random | None = None) -> str:
    return (rng or random).choice(USER_AGENTS)


def user_agent_for_platform(platform: Platform) -> str:
    """Return a fixed, representative user agent for `platform`."""
    if platform == "tablet":
        return TABLET_USER_AGENT
    if platform == "mobile":
        return next(ua for ua in USER_AGENTS if "Mobile" in ua)
    return next(ua for ua in USER_AGENTS if "Mobile" not in ua)


def realistic_headers(language: Language = "ru", rng: random.Random | None = None) -> dict[str, str]:
    """
    Build a full browser-like header set with a rotated user agent.

    Args:
        language: Preferred locale, "ru" or "ro".
        rng: Optional RNG for deterministic user-agent picks.
    """
    return {
        "User-Agent": random_user_agent(rng),
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": _ACCEPT_LANGUAGE[language],
        "Accept-Encoding": "gzip, deflate, br",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Site": "same-origin",
    }


def default_headers(has_body: bool = False) -> dict[str, str]:
    """Minimal JSON API headers; adds Content-Type when a body is sent."""
    headers = {
        "Accept": "application/json",
        "Accept-Language": DEFAULT_ACCEPT_LANGUAGE,
        "Cache-Control": "no-cache",
    }
    if has_body:
        headers["Content-Type"] = "application/json"
    return headers
