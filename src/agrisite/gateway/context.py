"""Request-scoped cancellation and lifecycle state."""

import logging
import threading
import time
import uuid
from enum import Enum
from typing import Optional

from agrisite.exceptions import UpstreamTimeout

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    """Lifecycle of a single site analysis request."""

    RECEIVED = "received"
    VALIDATED = "validated"
    FETCHING = "fetching"
    ANALYSING = "analysing"
    ASSEMBLED = "assembled"
    RESPONDED = "responded"
    FAILED_VALIDATION = "failed-validation"
    FAILED_REMOTE = "failed-remote"


TERMINAL_STATES = frozenset(
    {RequestState.RESPONDED, RequestState.FAILED_VALIDATION, RequestState.FAILED_REMOTE}
)


class RequestContext:
    """Cancellation token, deadline and state for one request.

    Every blocking point in the gateway (rate-limit waits, backoff sleeps,
    joins) goes through :meth:`sleep` or :meth:`check` so that cancelling
    the context aborts the request promptly.

    Attributes:
        request_id: Identifier used in log messages
        deadline: Monotonic time after which the request times out
        state: Current lifecycle state
    """

    def __init__(self, request_id: Optional[str] = None, timeout: Optional[float] = None):
        self.request_id = request_id or uuid.uuid4().hex[:12]
        self.deadline = time.monotonic() + timeout if timeout else None
        self.state = RequestState.RECEIVED
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Cancel the request; in-flight waits abort with UpstreamTimeout."""
        if not self._cancelled.is_set():
            logger.info(f"[{self.request_id}] Request cancelled")
        self._cancelled.set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None if there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise UpstreamTimeout if the request is cancelled or past its deadline."""
        if self._cancelled.is_set():
            raise UpstreamTimeout("Request cancelled", context=self.request_id)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise UpstreamTimeout("Request deadline exceeded", context=self.request_id)

    def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first."""
        self.check()
        remaining = self.remaining()
        if remaining is not None and seconds > remaining:
            self._cancelled.wait(remaining)
            self.check()
            return
        if seconds > 0 and self._cancelled.wait(seconds):
            self.check()

    def bound_timeout(self, timeout: Optional[float]) -> Optional[float]:
        """Shorten ``timeout`` to the time left before the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    def transition(self, state: RequestState) -> None:
        if self.state in TERMINAL_STATES:
            logger.warning(
                f"[{self.request_id}] Ignoring transition {self.state.value} -> {state.value}"
            )
            return
        logger.info(f"[{self.request_id}] {self.state.value} -> {state.value}")
        self.state = state
