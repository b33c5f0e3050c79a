"""Tests for the per-owner upload rate limiter."""

import pytest

from media_hub.common.exceptions import RateLimitError
from media_hub.common.rate_limiter import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def test_request_limit(clock: FakeClock) -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=2, max_bytes=None, clock=clock)

    assert limiter.check("alice", 10).allowed
    assert limiter.check("alice", 10).remaining == 0

    result = limiter.check("alice", 10)
    assert not result.allowed
    assert result.retry_after == 60


def test_byte_limit(clock: FakeClock) -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=10, max_bytes=100, clock=clock)

    assert limiter.check("alice", 70).bytes_remaining == 30
    result = limiter.check("alice", 40)

    assert not result.allowed
    assert result.bytes_remaining == 30
    assert limiter.check("alice", 30).allowed


def test_window_slides(clock: FakeClock) -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=1, max_bytes=None, clock=clock)
    limiter.check("alice")

    clock.now += 30
    assert not limiter.check("alice").allowed

    clock.now += 31
    assert limiter.check("alice").allowed


def test_owners_are_independent(clock: FakeClock) -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=1, max_bytes=None, clock=clock)

    assert limiter.check("alice").allowed
    assert limiter.check("bob").allowed
    assert not limiter.check("alice").allowed


def test_acquire_raises_with_retry_after(clock: FakeClock) -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=3600, max_requests=1, max_bytes=None, clock=clock)
    limiter.acquire("alice")
    clock.now += 600

    with pytest.raises(RateLimitError) as exc_info:
        limiter.acquire("alice")

    assert exc_info.value.retry_after == 3000


def test_rejected_requests_are_not_recorded(clock: FakeClock) -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=5, max_bytes=100, clock=clock)

    assert not limiter.check("alice", 500).allowed
    assert limiter.status("alice").remaining == 5


def test_reset(clock: FakeClock) -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=1, max_bytes=None, clock=clock)
    limiter.check("alice")
    limiter.check("bob")

    limiter.reset("alice")
    assert limiter.check("alice").allowed
    assert not limiter.check("bob").allowed

    limiter.reset()
    assert limiter.check("bob").allowed


def test_status_does_not_track_unknown_owners(clock: FakeClock) -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=1, max_bytes=None, clock=clock)

    for _ in range(3):
        assert limiter.status("ghost").remaining == 1

    assert "ghost" not in limiter._events


def test_expired_owners_are_forgotten(clock: FakeClock) -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=1, max_bytes=None, clock=clock)
    limiter.check("alice")
    assert "alice" in limiter._events

    clock.now += 61
    assert limiter.status("alice").remaining == 1
    assert "alice" not in limiter._events
