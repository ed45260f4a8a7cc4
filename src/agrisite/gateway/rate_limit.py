"""Per-class sliding-window rate limiting with adaptive tuning."""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from agrisite.gateway.context import RequestContext

logger = logging.getLogger(__name__)

# Adaptive tuning thresholds
ADJUST_INTERVAL = 60.0
MIN_SAMPLES = 10
RAISE_ABOVE = 0.95
LOWER_BELOW = 0.80
MAX_LIMIT = 10
MIN_LIMIT = 1


class RateClass(str, Enum):
    DEFAULT = "default"
    HAZARD = "hazard"


@dataclass
class _Window:
    limit: int
    interval: float
    timestamps: deque = field(default_factory=deque)
    successes: int = 0
    failures: int = 0


class RateLimiter:
    """Sliding-window limiter shared by all requests in the process.

    Each rate class keeps the timestamps of its last ``limit`` requests.
    :meth:`acquire` blocks until the oldest timestamp leaves the window.

    Args:
        limits: Mapping of rate class to (requests, interval seconds)
        adaptive: Whether to tune limits from recorded outcomes
        clock: Monotonic time source
        sleep: Fallback sleep used when no request context is given
    """

    def __init__(
        self,
        limits: dict[RateClass, tuple[int, float]],
        adaptive: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._windows = {
            rate_class: _Window(limit=requests, interval=interval)
            for rate_class, (requests, interval) in limits.items()
        }
        self.adaptive = adaptive
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_adjustment = clock()

    def limit(self, rate_class: RateClass) -> int:
        with self._lock:
            return self._windows[rate_class].limit

    def acquire(self, rate_class: RateClass, context: Optional[RequestContext] = None) -> None:
        """Block until a request slot is free for ``rate_class``.

        Raises:
            UpstreamTimeout: If the context is cancelled while waiting
        """
        while True:
            with self._lock:
                self._maybe_adjust()
                window = self._windows[rate_class]
                now = self._clock()
                while window.timestamps and window.timestamps[0] <= now - window.interval:
                    window.timestamps.popleft()

                if len(window.timestamps) < window.limit:
                    window.timestamps.append(now)
                    return

                wait = window.interval - (now - window.timestamps[0])

            logger.debug(f"Rate limit reached for {rate_class.value}, waiting {wait:.2f}s")
            if context is not None:
                context.sleep(wait)
            else:
                self._sleep(wait)

    def record(self, rate_class: RateClass, success: bool) -> None:
        """Record the outcome of a request for adaptive tuning."""
        with self._lock:
            window = self._windows[rate_class]
            if success:
                window.successes += 1
            else:
                window.failures += 1

    def _maybe_adjust(self) -> None:
        # Caller holds self._lock
        if not self.adaptive:
            return
        now = self._clock()
        if now - self._last_adjustment < ADJUST_INTERVAL:
            return
        self._last_adjustment = now

        for rate_class, window in self._windows.items():
            total = window.successes + window.failures
            if total == 0:
                continue
            success_rate = window.successes / total
            if total >= MIN_SAMPLES and success_rate > RAISE_ABOVE and window.limit < MAX_LIMIT:
                window.limit += 1
                logger.info(f"Raised {rate_class.value} rate limit to {window.limit}")
            elif success_rate < LOWER_BELOW and window.limit > MIN_LIMIT:
                window.limit -= 1
                logger.warning(f"Lowered {rate_class.value} rate limit to {window.limit}")
            window.successes = 0
            window.failures = 0

    def stats(self) -> dict[str, dict]:
        with self._lock:
            return {
                rate_class.value: {
                    "limit": window.limit,
                    "interval": window.interval,
                    "in_window": len(window.timestamps),
                }
                for rate_class, window in self._windows.items()
            }
