# Backend/tests/unit/test_rate_limiting.py
from __future__ import annotations

import pytest

from app.core.rate_limiting import SlidingWindowRateLimiter
from app.core.rate_limits_config import get_rate_limit


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_preview_limit_defaults():
    """Ten previews per minute per client."""
    assert get_rate_limit("preview") == (10, 60)


def test_unknown_action_is_rejected():
    with pytest.raises(ValueError):
        get_rate_limit("check_in")


def test_allows_up_to_limit_then_blocks():
    limiter = SlidingWindowRateLimiter(clock=FakeClock())

    results = [limiter.check_and_increment("ip:1.2.3.4", "preview") for _ in range(11)]

    assert results == [True] * 10 + [False]


def test_sliding_window_releases_old_requests():
    """Requests older than the window stop counting."""
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(clock=clock)

    assert limiter.check_and_increment("k", "preview", limit=2, window_seconds=60)
    clock.now += 30
    assert limiter.check_and_increment("k", "preview", limit=2, window_seconds=60)
    assert not limiter.check_and_increment("k", "preview", limit=2, window_seconds=60)

    clock.now += 31  # first request is now outside the window
    assert limiter.check_and_increment("k", "preview", limit=2, window_seconds=60)
    assert not limiter.check_and_increment("k", "preview", limit=2, window_seconds=60)


def test_keys_are_isolated():
    limiter = SlidingWindowRateLimiter(clock=FakeClock())

    assert limiter.check_and_increment("client:a", "preview", limit=1, window_seconds=60)
    assert not limiter.check_and_increment("client:a", "preview", limit=1, window_seconds=60)
    assert limiter.check_and_increment("client:b", "preview", limit=1, window_seconds=60)


def test_rejected_requests_are_not_counted():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(clock=clock)

    for _ in range(10):
        limiter.check_and_increment("k", "preview")
    for _ in range(5):
        assert not limiter.check_and_increment("k", "preview")

    clock.now += 61
    assert limiter.check_and_increment("k", "preview")


def test_retry_after_counts_down():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(clock=clock)

    assert limiter.retry_after("k", "preview") == 0

    for _ in range(10):
        limiter.check_and_increment("k", "preview")
    first = limiter.retry_after("k", "preview")
    clock.now += 45
    later = limiter.retry_after("k", "preview")

    assert 1 <= later < first <= 61


def test_reset_clears_all_windows():
    limiter = SlidingWindowRateLimiter(clock=FakeClock())
    for _ in range(10):
        limiter.check_and_increment("k", "preview")

    limiter.reset()

    assert limiter.check_and_increment("k", "preview")


def test_one_off_keys_are_reclaimed():
    """Every new X-Forwarded-For value creates a window; idle ones are dropped."""
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(clock=clock)

    for n in range(500):
        limiter.check_and_increment(f"ip:10.0.{n // 256}.{n % 256}", "preview")
    assert limiter.tracked_keys() == 500

    clock.now += 61
    limiter.check_and_increment("ip:203.0.113.7", "preview")

    assert limiter.tracked_keys() == 1


def test_expired_window_is_removed_on_lookup():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(clock=clock, sweep_interval_s=3600)
    limiter.check_and_increment("k", "preview")

    clock.now += 61
    assert limiter.retry_after("k", "preview") == 0
    assert limiter.tracked_keys() == 0
