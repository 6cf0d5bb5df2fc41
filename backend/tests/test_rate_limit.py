import pytest

from app.core.errors import RateLimitExceeded
from app.services.rate_limit import IntervalRateLimiter, WriteRateLimiter
from tests.fakes import FakeClock


def test_interval_limiter_spaces_requests():
    clock = FakeClock(0.0)
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        clock.advance(seconds)

    limiter = IntervalRateLimiter.from_millis(100, clock=clock, sleep=sleep)
    limiter.acquire()
    assert sleeps == []
    limiter.acquire()
    assert sleeps == [pytest.approx(0.1)]
    clock.advance(0.5)
    limiter.acquire()
    assert len(sleeps) == 1


def test_interval_limiter_zero_never_sleeps():
    limiter = IntervalRateLimiter(0, sleep=lambda s: pytest.fail("should not sleep"))
    for _ in range(5):
        limiter.acquire()


def test_write_limiter_sliding_window():
    clock = FakeClock(0.0)
    limiter = WriteRateLimiter(3, 60, clock=clock)
    assert [limiter.check("u1") for _ in range(3)] == [2, 1, 0]
    with pytest.raises(RateLimitExceeded) as exc:
        limiter.check("u1")
    assert exc.value.retry_after == pytest.approx(60)
    assert limiter.check("u2") == 2

    clock.advance(61)
    assert limiter.remaining("u1") == 3
    assert limiter.check("u1") == 2
