"""Error taxonomy for site analysis.

Every error carries a short ``context`` label naming the operation that
failed, the ``original`` exception (when wrapping one) and the HTTP
``status_code`` the API boundary should answer with.
"""

from typing import Optional


class AgrisiteError(Exception):
    """Base exception for all site analysis errors."""

    status_code = 500
    retryable = False

    def __init__(
        self,
        message: str,
        context: Optional[str] = None,
        original: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.original = original

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "context": self.context,
        }


class ValidationError(AgrisiteError):
    """Raised for malformed polygons, missing fields or out-of-range input."""

    status_code = 400


class ConfigurationError(AgrisiteError):
    """Raised when settings or credentials cannot be loaded."""


class UpstreamError(AgrisiteError):
    """Base class for failures talking to an upstream service."""

    status_code = 502


class UpstreamTimeout(UpstreamError):
    """Raised when an upstream call times out, aborts or is cancelled."""

    status_code = 504
    retryable = True


class UpstreamRateLimited(UpstreamError):
    """Raised when an upstream answers HTTP 429."""

    status_code = 503
    retryable = True

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        context: Optional[str] = None,
        original: Optional[BaseException] = None,
    ):
        super().__init__(message, context=context, original=original)
        self.retry_after = retry_after


class UpstreamTransient(UpstreamError):
    """Raised for connection resets and 5xx responses."""

    retryable = True


class UpstreamTerminal(UpstreamError):
    """Raised for schema mismatches, 4xx (other than 429) and malformed payloads."""


class DataInsufficient(AgrisiteError):
    """Raised when an upstream has no usable data for the request."""

    status_code = 422


class PartialFailure(AgrisiteError):
    """An optional analysis arm failed; reported alongside the other results."""


class InternalError(AgrisiteError):
    """Unexpected failure."""
