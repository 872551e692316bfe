import pytest

from authcore.core.exceptions import RateLimitExceededError
from authcore.services.rate_limiter import InMemoryRateLimiter


class FakeTimer:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


def test_window_slides():
    timer = FakeTimer()
    limiter = InMemoryRateLimiter(timer=timer)

    assert limiter.allow("k", 2, 60)
    assert limiter.allow("k", 2, 60)
    assert not limiter.allow("k", 2, 60)
    assert limiter.remaining("k", 2, 60) == 0

    timer.value += 60
    assert limiter.allow("k", 2, 60)


def test_keys_are_independent():
    limiter = InMemoryRateLimiter(timer=FakeTimer())
    assert limiter.allow("a", 1, 60)
    assert limiter.allow("b", 1, 60)
    assert not limiter.allow("a", 1, 60)


def test_enforce_raises_429():
    limiter = InMemoryRateLimiter(timer=FakeTimer())
    limiter.enforce("login", "1.2.3.4", per_minute=1, per_hour=10)

    with pytest.raises(RateLimitExceededError) as excinfo:
        limiter.enforce("login", "1.2.3.4", per_minute=1, per_hour=10)

    assert excinfo.value.status_code == 429
