import pytest

from dealsignal.core.errors import RateLimitedError
from dealsignal.services.submissions import SubmissionRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_limit_then_slot_frees_after_window(clock):
    limiter = SubmissionRateLimiter(2, 60, clock=clock)
    limiter.check("a@example.com")
    clock.now += 10
    limiter.check("a@example.com")

    with pytest.raises(RateLimitedError) as excinfo:
        limiter.check("a@example.com")
    assert excinfo.value.retry_after == 50
    assert excinfo.value.headers == {"Retry-After": "50"}

    clock.now += 50
    limiter.check("a@example.com")


def test_clients_are_limited_independently(clock):
    limiter = SubmissionRateLimiter(1, 60, clock=clock)
    limiter.check("a@example.com")
    limiter.check("b@example.com")
    with pytest.raises(RateLimitedError):
        limiter.check("a@example.com")


def test_idle_clients_are_forgotten(clock):
    limiter = SubmissionRateLimiter(3, 60, clock=clock)
    for i in range(50):
        limiter.check(f"client-{i}")
    assert limiter.tracked_clients() == 50

    clock.now += 61
    limiter.check("late@example.com")

    assert limiter.tracked_clients() == 1


def test_disabled_limit_tracks_nothing(clock):
    limiter = SubmissionRateLimiter(0, 60, clock=clock)
    for _ in range(10):
        limiter.check("a@example.com")
    assert limiter.tracked_clients() == 0
