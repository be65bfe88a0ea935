"""
Response telemetry and rate-limit detection.

`RateLimitTracker` records the outcome of every request, detects recent
server-side throttling (HTTP 429) over a sliding window, aggregates
performance statistics and renders an end-of-run report.

Example:
    >>> from humanpace._tracker import RateLimitTracker
    >>> tracker = RateLimitTracker.get_instance()
    >>> tracker.record_response("/api/search?q=phone", 200, 150)
    >>> tracker.is_throttled()
    False
    >>> tracker.print_report()
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import ClassVar

logger = logging.getLogger(__name__)

# Default sliding window for throttle detection (ms).
THROTTLE_WINDOW_MS = 60_000

# Responses slower than this (ms) are logged.
SLOW_RESPONSE_MS = 5_000

_RULE = "═" * 59
_THIN_RULE = "─" * 59


@dataclass(frozen=True)
class ResponseRecord:
    """One observed response. Times are in milliseconds."""

    endpoint: str
    status: int
    response_time: float
    timestamp: float


@dataclass(frozen=True)
class EndpointStats:
    count: int
    avg_time: int


@dataclass(frozen=True)
class RateLimitStats:
    """
    Aggregate view over every recorded response.

    Attributes:
        total_requests: Number of recorded responses.
        success_rate: Percentage of 2xx responses, rounded.
        avg_response_time: Mean response time (ms), rounded.
        throttled_count: Number of 429 responses.
        error_count: Number of 5xx responses.
        client_error_count: Number of 4xx responses other than 429.
        min_response_time: Fastest response (ms), 0 without records.
        max_response_time: Slowest response (ms), 0 without records.
        endpoint_stats: Per normalized endpoint count and rounded mean time.
    """

    total_requests: int = 0
    success_rate: int = 100
    avg_response_time: int = 0
    throttled_count: int = 0
    error_count: int = 0
    client_error_count: int = 0
    min_response_time: float = 0
    max_response_time: float = 0
    endpoint_stats: dict[str, EndpointStats] = field(default_factory=dict)

    @property
    def successful_count(self) -> int:
        return (
            self.total_requests
            - self.throttled_count
            - self.error_count
            - self.client_error_count
        )


def normalize_endpoint(endpoint: str) -> str:
    """Strip the query string and a trailing slash; empty paths become `/`."""
    path = endpoint.split("?", 1)[0]
    if path.endswith("/"):
        path = path[:-1]
    return path or "/"


def _round(value: float) -> int:
    # Half-up, so 2.5 -> 3 like the report readers expect
    return int(value + 0.5)


class RateLimitTracker:
    """
    Append-only log of response records with aggregate queries.

    Args:
        clock: Wall clock returning seconds since the epoch. Injectable for tests.
    """

    _instance: ClassVar[RateLimitTracker | None] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._responses: list[ResponseRecord] = []
        self._start_time = self._now_ms()
        self._lock = threading.Lock()
        logger.debug("📊 Rate limit tracker initialized")

    @classmethod
    def get_instance(cls) -> RateLimitTracker:
        """Return the process-wide tracker, creating it on first use."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the process-wide tracker."""
        with cls._instance_lock:
            cls._instance = None

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def record_response(self, endpoint: str, status: int, response_time: float) -> None:
        """
        Append a record for one response.

        Args:
            endpoint: Request path, query string allowed.
            status: HTTP status code.
            response_time: Duration of the attempt in milliseconds.
        """
        record = ResponseRecord(
            endpoint=normalize_endpoint(endpoint),
            status=status,
            response_time=response_time,
            timestamp=self._now_ms(),
        )
        with self._lock:
            self._responses.append(record)

        if status == 429:
            logger.warning(f"🚦 THROTTLED: {endpoint} (429 Too Many Requests)")
        elif status >= 500:
            logger.error(f"❌ SERVER ERROR: {endpoint} ({status})")
        elif response_time > SLOW_RESPONSE_MS:
            logger.warning(f"🐢 SLOW: {endpoint} ({response_time:.0f}ms)")

    def recent_throttle_count(self, window_ms: float = THROTTLE_WINDOW_MS) -> int:
        """Number of 429 responses recorded within the last `window_ms`."""
        cutoff = self._now_ms() - window_ms
        with self._lock:
            return sum(1 for r in self._responses if r.status == 429 and r.timestamp >= cutoff)

    def is_throttled(self, window_ms: float = THROTTLE_WINDOW_MS) -> bool:
        """Return True if any 429 was recorded within the last `window_ms`."""
        return self.recent_throttle_count(window_ms) > 0

    def get_stats(self) -> RateLimitStats:
        with self._lock:
            records = list(self._responses)

        if not records:
            return RateLimitStats()

        success = throttled = server_errors = client_errors = 0
        total_time = 0.0
        per_endpoint: dict[str, list[float]] = {}

        for record in records:
            if 200 <= record.status < 300:
                success += 1
            elif record.status == 429:
                throttled += 1
            elif record.status >= 500:
                server_errors += 1
            elif record.status >= 400:
                client_errors += 1

            total_time += record.response_time
            bucket = per_endpoint.setdefault(record.endpoint, [0, 0.0])
            bucket[0] += 1
            bucket[1] += record.response_time

        times = [r.response_time for r in records]
        total = len(records)
        return RateLimitStats(
            total_requests=total,
            success_rate=_round(success / total * 100),
            avg_response_time=_round(total_time / total),
            throttled_count=throttled,
            error_count=server_errors,
            client_error_count=client_errors,
            min_response_time=min(times),
            max_response_time=max(times),
            endpoint_stats={
                endpoint: EndpointStats(count=int(count), avg_time=_round(time_sum / count))
                for endpoint, (count, time_sum) in per_endpoint.items()
            },
        )

    def responses_by_status(self, status: int) -> list[ResponseRecord]:
        with self._lock:
            return [r for r in self._responses if r.status == status]

    def responses_by_endpoint(self, endpoint: str) -> list[ResponseRecord]:
        """Records for `endpoint`, which is normalized before matching."""
        normalized = normalize_endpoint(endpoint)
        with self._lock:
            return [r for r in self._responses if r.endpoint == normalized]

    def raw_responses(self) -> list[ResponseRecord]:
        """Return a copy of every record, oldest first."""
        with self._lock:
            return list(self._responses)

    def elapsed_time(self) -> float:
        """Milliseconds since the tracker was created or last cleared."""
        return self._now_ms() - self._start_time

    def clear(self) -> None:
        """Drop every record and restart the elapsed-time counter."""
        with self._lock:
            self._responses = []
            self._start_time = self._now_ms()
        logger.debug("📊 Rate limit tracker cleared")

    # -------------------------------------------------------------------------
    # Report
    # -------------------------------------------------------------------------

    def format_report(self) -> list[str]:
        """Render the end-of-run performance report, one string per line."""
        stats = self.get_stats()
        duration = self.elapsed_time() / 1000.0
        rate = stats.total_requests / duration if duration > 0 else 0.0

        if stats.success_rate >= 95:
            success_mark = "✅"
        elif stats.success_rate >= 80:
            success_mark = "⚠️"
        else:
            success_mark = "❌"

        if stats.avg_response_time < 500:
            speed_mark = "🚀"
        elif stats.avg_response_time < 2000:
            speed_mark = "🏃"
        else:
            speed_mark = "🐢"

        lines = [
            "",
            _RULE,
            "                   📊 API PERFORMANCE REPORT",
            _RULE,
            "",
            "📈 SUMMARY",
            _THIN_RULE,
            f"   Total Requests:    {stats.total_requests}",
            f"   Duration:          {duration:.1f}s",
            f"   Requests/sec:      {rate:.2f}",
            "",
            "🎯 SUCCESS RATE",
            _THIN_RULE,
            f"   {success_mark} Success Rate:     {stats.success_rate}%",
            f"   ✅ Successful:      {stats.successful_count}",
            f"   🚦 Throttled (429): {stats.throttled_count}",
            f"   ❌ Server Errors:   {stats.error_count}",
            f"   ⚠️  Client Errors:   {stats.client_error_count}",
            "",
            "⏱️  RESPONSE TIMES",
            _THIN_RULE,
            f"   {speed_mark} Average:          {stats.avg_response_time}ms",
            f"   ⚡ Minimum:          {stats.min_response_time:.0f}ms",
            f"   🐌 Maximum:          {stats.max_response_time:.0f}ms",
            "",
        ]

        if stats.endpoint_stats:
            lines += ["🔗 PER-ENDPOINT BREAKDOWN", _THIN_RULE]
            ordered = sorted(stats.endpoint_stats.items(), key=lambda item: -item[1].count)
            for endpoint, data in ordered:
                if data.avg_time < 500:
                    mark = "🟢"
                elif data.avg_time < 2000:
                    mark = "🟡"
                else:
                    mark = "🔴"
                lines.append(
                    f"   {mark} {endpoint:<35} {data.count:>4} reqs  {data.avg_time:>5}ms avg"
                )
            lines.append("")

        if stats.throttled_count > 0 or stats.error_count > 0:
            lines += ["⚠️  WARNINGS", _THIN_RULE]
            if stats.throttled_count > 0:
                lines.append("   🚦 Rate limiting detected! Consider using 'stealth' profile.")
            if stats.error_count > 0:
                lines.append("   ❌ Server errors detected. Check API health.")
            lines.append("")

        lines += [_RULE, ""]
        return lines

    def print_report(self, output: Callable[[str], None] = print) -> None:
        """
        Print the performance report.

        Args:
            output: Callable receiving each line. Defaults to print.
                Use `logger.info` to route through logging.
        """
        for line in self.format_report():
            output(line)

    def __repr__(self) -> str:
        return f"RateLimitTracker(records={len(self._responses)})"
