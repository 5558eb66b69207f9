"""In-memory sliding-window rate limiting per user."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from unichat.exceptions import ErrorCode, PipelineError
from unichat.logsafe import sanitize_for_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitInfo:
    """Outcome of a rate-limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_after: float
    """Seconds until the oldest counted request leaves the window."""


class RateLimiter:
    """Sliding-window limiter keyed by an identifier (usually the user id).

    Each identifier keeps a deque of request timestamps; timestamps older
    than the window are discarded on every check.  Once per window every
    identifier is swept and those with no request left in the window are
    dropped, so idle users do not accumulate.  The event loop is single
    threaded and checks never await, so no lock is needed.

    Parameters:
        max_requests: Requests allowed per window.
        window_seconds: Length of the sliding window.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests <= 0:
            msg = "max_requests must be a positive integer"
            raise ValueError(msg)
        if window_seconds <= 0:
            msg = "window_seconds must be positive"
            raise ValueError(msg)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def __repr__(self) -> str:
        return f"RateLimiter(max_requests={self.max_requests}, window_seconds={self.window_seconds})"

    def _prune(self, bucket: deque[float], now: float) -> deque[float]:
        cutoff = now - self.window_seconds
        while bucket and bucket[0] <= cutoff:
            bucket.popleft()
        return bucket

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        stale = [key for key, bucket in self._buckets.items() if not self._prune(bucket, now)]
        for key in stale:
            del self._buckets[key]
        if stale:
            logger.debug("Dropped %d idle rate-limit buckets", len(stale))

    def _reset_after(self, bucket: deque[float], now: float) -> float:
        if not bucket:
            return 0.0
        return max(0.0, round(bucket[0] + self.window_seconds - now, 3))

    def check(self, identifier: str) -> RateLimitInfo:
        """Count a request for *identifier* if it fits and report the outcome."""
        now = self._clock()
        self._sweep(now)
        bucket = self._prune(self._buckets.get(identifier) or deque(), now)
        if len(bucket) >= self.max_requests:
            self._buckets[identifier] = bucket
            return RateLimitInfo(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                reset_after=self._reset_after(bucket, now),
            )
        bucket.append(now)
        self._buckets[identifier] = bucket
        return RateLimitInfo(
            allowed=True,
            limit=self.max_requests,
            remaining=self.max_requests - len(bucket),
            reset_after=self._reset_after(bucket, now),
        )

    def enforce_limit(self, identifier: str) -> RateLimitInfo:
        """Like :meth:`check`, but raise when the limit is exceeded.

        Raises:
            PipelineError: ``RATE_LIMIT_EXCEEDED`` (critical).
        """
        info = self.check(identifier)
        if not info.allowed:
            logger.warning("Rate limit exceeded for user %s", sanitize_for_log(identifier))
            msg = (
                f"Rate limit exceeded: {self.max_requests} requests per "
                f"{self.window_seconds:g}s. Try again in {info.reset_after:.0f}s"
            )
            raise PipelineError.critical(
                ErrorCode.RATE_LIMIT_EXCEEDED,
                msg,
                {"limit": info.limit, "retry_after": info.reset_after},
            )
        return info
