"""Tests for the sliding-window RateLimiter."""

from __future__ import annotations

import pytest

from unichat.exceptions import ErrorCode, PipelineError
from unichat.ratelimit import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRateLimiter:
    def test_allows_up_to_limit(self) -> None:
        limiter = RateLimiter(3, 60, clock=FakeClock())
        infos = [limiter.check("u") for _ in range(3)]
        assert all(i.allowed for i in infos)
        assert [i.remaining for i in infos] == [2, 1, 0]

    def test_rejects_over_limit(self) -> None:
        limiter = RateLimiter(2, 60, clock=FakeClock())
        limiter.check("u")
        limiter.check("u")
        info = limiter.check("u")
        assert not info.allowed
        assert info.remaining == 0

    def test_window_slides(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(1, 10, clock=clock)
        assert limiter.check("u").allowed
        clock.now += 5
        assert not limiter.check("u").allowed
        clock.now += 5
        assert limiter.check("u").allowed

    def test_reset_after_counts_down(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(1, 10, clock=clock)
        limiter.check("u")
        clock.now += 4
        assert limiter.check("u").reset_after == pytest.approx(6.0)

    def test_users_are_independent(self) -> None:
        limiter = RateLimiter(1, 60, clock=FakeClock())
        assert limiter.check("alice").allowed
        assert limiter.check("bob").allowed
        assert not limiter.check("alice").allowed

    def test_rejected_requests_are_not_counted(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(1, 10, clock=clock)
        limiter.check("u")
        clock.now += 9
        limiter.check("u")
        clock.now += 1
        assert limiter.check("u").allowed

    def test_enforce_limit_raises(self) -> None:
        limiter = RateLimiter(1, 60, clock=FakeClock())
        limiter.enforce_limit("u")
        with pytest.raises(PipelineError, match="Rate limit exceeded") as exc_info:
            limiter.enforce_limit("u")
        error = exc_info.value
        assert error.code is ErrorCode.RATE_LIMIT_EXCEEDED
        assert error.status_code == 401
        assert error.metadata["limit"] == 1

    def test_idle_users_are_evicted(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(5, 10, clock=clock)
        for n in range(1000):
            limiter.check(f"user-{n}")
            clock.now += 11
        assert len(limiter._buckets) == 1

    def test_active_users_survive_sweep(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(2, 10, clock=clock)
        limiter.check("idle")
        clock.now += 8
        limiter.check("busy")
        clock.now += 3
        limiter.check("other")
        assert set(limiter._buckets) == {"busy", "other"}
        assert limiter.check("busy").remaining == 0

    @pytest.mark.parametrize(("requests", "window"), [(0, 60), (5, 0)])
    def test_invalid_configuration(self, requests: int, window: float) -> None:
        with pytest.raises(ValueError):
            RateLimiter(requests, window)
