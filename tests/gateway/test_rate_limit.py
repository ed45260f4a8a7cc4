"""Tests for the sliding-window rate limiter and request context."""

import threading
import time

import pytest

from agrisite.exceptions import UpstreamTimeout
from agrisite.gateway import RateClass, RateLimiter, RequestContext, RequestState


class FakeClock:
    """Clock whose sleep advances time instantly."""

    def __init__(self):
        self.now = 1000.0
        self.slept = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_allows_up_to_limit(self, clock):
        """Requests within the limit should not wait."""
        limiter = RateLimiter({RateClass.DEFAULT: (3, 1.0)}, clock=clock, sleep=clock.sleep)
        for _ in range(3):
            limiter.acquire(RateClass.DEFAULT)
        assert clock.slept == []

    def test_waits_for_window(self, clock):
        """The request past the limit should wait for the oldest slot to expire."""
        limiter = RateLimiter({RateClass.DEFAULT: (2, 1.0)}, clock=clock, sleep=clock.sleep)
        limiter.acquire(RateClass.DEFAULT)
        clock.now += 0.25
        limiter.acquire(RateClass.DEFAULT)
        limiter.acquire(RateClass.DEFAULT)
        assert clock.slept == [pytest.approx(0.75)]

    def test_classes_are_independent(self, clock):
        """Exhausting one class should not block another."""
        limiter = RateLimiter(
            {RateClass.DEFAULT: (1, 1.0), RateClass.HAZARD: (1, 5.0)},
            clock=clock,
            sleep=clock.sleep,
        )
        limiter.acquire(RateClass.HAZARD)
        limiter.acquire(RateClass.DEFAULT)
        assert clock.slept == []

        limiter.acquire(RateClass.HAZARD)
        assert clock.slept == [pytest.approx(5.0)]

    def test_raises_limit_on_high_success(self, clock):
        """A success rate above 95% over enough samples should raise the limit."""
        limiter = RateLimiter({RateClass.DEFAULT: (5, 1.0)}, clock=clock, sleep=clock.sleep)
        for _ in range(10):
            limiter.record(RateClass.DEFAULT, success=True)
        clock.now += 61
        limiter.acquire(RateClass.DEFAULT)
        assert limiter.limit(RateClass.DEFAULT) == 6

    def test_lowers_limit_on_failures(self, clock):
        """A success rate below 80% should lower the limit."""
        limiter = RateLimiter({RateClass.DEFAULT: (5, 1.0)}, clock=clock, sleep=clock.sleep)
        for success in (True, False, True, False):
            limiter.record(RateClass.DEFAULT, success=success)
        clock.now += 61
        limiter.acquire(RateClass.DEFAULT)
        assert limiter.limit(RateClass.DEFAULT) == 4

    def test_limit_never_below_one(self, clock):
        limiter = RateLimiter({RateClass.HAZARD: (1, 5.0)}, clock=clock, sleep=clock.sleep)
        limiter.record(RateClass.HAZARD, success=False)
        clock.now += 61
        limiter.acquire(RateClass.HAZARD)
        assert limiter.limit(RateClass.HAZARD) == 1

    def test_no_adjustment_when_disabled(self, clock):
        limiter = RateLimiter(
            {RateClass.DEFAULT: (5, 1.0)}, adaptive=False, clock=clock, sleep=clock.sleep
        )
        for _ in range(20):
            limiter.record(RateClass.DEFAULT, success=False)
        clock.now += 61
        limiter.acquire(RateClass.DEFAULT)
        assert limiter.limit(RateClass.DEFAULT) == 5

    def test_cancelled_wait_raises(self, clock):
        """Waiting with a cancelled context should abort with UpstreamTimeout."""
        limiter = RateLimiter({RateClass.DEFAULT: (1, 1.0)}, clock=clock, sleep=clock.sleep)
        context = RequestContext()
        limiter.acquire(RateClass.DEFAULT, context)
        context.cancel()
        with pytest.raises(UpstreamTimeout):
            limiter.acquire(RateClass.DEFAULT, context)

    def test_stats(self, clock):
        limiter = RateLimiter({RateClass.DEFAULT: (2, 1.0)}, clock=clock, sleep=clock.sleep)
        limiter.acquire(RateClass.DEFAULT)
        assert limiter.stats() == {"default": {"limit": 2, "interval": 1.0, "in_window": 1}}


class TestRequestContext:
    """Tests for RequestContext."""

    def test_initial_state(self):
        context = RequestContext(request_id="abc")
        assert context.request_id == "abc"
        assert context.state == RequestState.RECEIVED
        assert context.remaining() is None
        assert not context.cancelled

    def test_check_after_cancel(self):
        """check() should raise once the context is cancelled."""
        context = RequestContext()
        context.cancel()
        with pytest.raises(UpstreamTimeout, match="cancelled"):
            context.check()

    def test_deadline(self):
        """check() should raise once the deadline has passed."""
        context = RequestContext(timeout=0.01)
        time.sleep(0.02)
        with pytest.raises(UpstreamTimeout, match="deadline"):
            context.check()

    def test_sleep_aborts_on_cancel(self):
        """A sleeping request should wake promptly when cancelled."""
        context = RequestContext()
        threading.Timer(0.05, context.cancel).start()
        started = time.monotonic()
        with pytest.raises(UpstreamTimeout):
            context.sleep(5.0)
        assert time.monotonic() - started < 2.0

    def test_bound_timeout(self):
        """Timeouts should be shortened to the remaining time."""
        context = RequestContext(timeout=1.0)
        assert context.bound_timeout(30.0) <= 1.0
        assert RequestContext().bound_timeout(30.0) == 30.0

    def test_terminal_state_is_final(self):
        """Transitions out of a terminal state should be ignored."""
        context = RequestContext()
        context.transition(RequestState.VALIDATED)
        context.transition(RequestState.FAILED_REMOTE)
        context.transition(RequestState.ASSEMBLED)
        assert context.state == RequestState.FAILED_REMOTE
