"""Remote Data Gateway: the single path for every outbound upstream call.

Each call goes through cache lookup, rate limiting, the request itself with
retry/backoff, response-schema validation and cache store, in that order.

Example:
    >>> gateway = RemoteDataGateway(Settings())
    >>> payload = gateway.fetch(GatewayRequest(
    ...     endpoint=Endpoint.REVERSE_GEO,
    ...     url="https://nominatim.openstreetmap.org/reverse",
    ...     params={"lat": -17.83, "lon": 31.05, "format": "json"},
    ...     schema=ReverseGeoResponse,
    ... ))
"""

import logging
import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

import requests
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from agrisite.config import (
    EARTH_ENGINE_TIMEOUT,
    LITHOLOGY_TIMEOUT,
    REVERSE_GEO_TIMEOUT,
    USER_AGENT,
    WEATHER_TIMEOUT,
    Settings,
)
from agrisite.exceptions import (
    AgrisiteError,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamTerminal,
    UpstreamTimeout,
    UpstreamTransient,
)
from agrisite.gateway.cache import OVERLAY_CACHE_TTL, ROUTE_CACHE_TTL, LRUCache
from agrisite.gateway.context import RequestContext
from agrisite.gateway.rate_limit import RateClass, RateLimiter

logger = logging.getLogger(__name__)

# Interval for polling Earth Engine operations and joined in-flight requests
POLL_INTERVAL = 0.25

COUNTERS = ("upstream", "cached", "coalesced", "retries", "errors")


class Endpoint(str, Enum):
    ROUTING = "routing"
    OVERLAY = "overlay"
    EARTH_ENGINE = "earth-engine"
    WEATHER_ARCHIVE = "weather-archive"
    LITHOLOGY = "lithology"
    REVERSE_GEO = "reverse-geo"


class CacheStore(str, Enum):
    NONE = "none"
    ROUTES = "routes"
    OVERLAY = "overlay"


@dataclass
class GatewayRequest:
    """Description of one upstream call.

    HTTP endpoints use ``method``/``url``/``params``/``data``/``json``/``headers``.
    The earth-engine endpoint runs ``operation`` (a zero-argument callable
    returning a JSON-like value) instead.

    Attributes:
        endpoint: Upstream service tag
        cache_store: Which process-wide cache to consult and fill
        cache_key: Caller-provided key (required when cache_store is not NONE)
        rate_class: Rate-limit class to acquire a slot from
        schema: Pydantic model the response must satisfy
        timeout: Override for the endpoint's default timeout (seconds)
    """

    endpoint: Endpoint
    method: str = "GET"
    url: Optional[str] = None
    params: Optional[dict[str, Any]] = None
    data: Optional[dict[str, Any]] = None
    json: Optional[Any] = None
    headers: dict[str, str] = field(default_factory=dict)
    operation: Optional[Callable[[], Any]] = None
    cache_store: CacheStore = CacheStore.NONE
    cache_key: Optional[str] = None
    rate_class: RateClass = RateClass.DEFAULT
    schema: Optional[type[BaseModel]] = None
    timeout: Optional[float] = None

    @property
    def label(self) -> str:
        return f"{self.endpoint.value}:{self.url or 'operation'}"


@dataclass
class InFlight:
    """A cacheable request being fetched by its first caller."""

    future: Future
    context: Optional[RequestContext] = None


class RemoteDataGateway:
    """Rate-limited, retrying, caching client for upstream services.

    Args:
        settings: Service settings (timeouts, cache sizes, rate limits)
        session: requests session to issue HTTP calls with
        rate_limiter: Shared rate limiter (built from settings if omitted)
        route_cache: Process-wide route cache (built from settings if omitted)
        overlay_cache: Process-wide overlay cache (built from settings if omitted)
    """

    MAX_RETRIES = 3
    BASE_DELAY = 1.0  # seconds

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        route_cache: Optional[LRUCache] = None,
        overlay_cache: Optional[LRUCache] = None,
    ):
        self.settings = settings or Settings()
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.rate_limiter = rate_limiter or RateLimiter(
            {
                RateClass.DEFAULT: (self.settings.rate_limit, 1.0),
                RateClass.HAZARD: (
                    self.settings.hazard_rate_limit,
                    self.settings.hazard_interval,
                ),
            }
        )
        self.route_cache = route_cache or LRUCache(
            max_size=self.settings.route_cache_max,
            ttl_seconds=ROUTE_CACHE_TTL,
            name="routes",
        )
        self.overlay_cache = overlay_cache or LRUCache(
            max_size=self.settings.overpass_cache_max,
            ttl_seconds=OVERLAY_CACHE_TTL,
            name="overlay",
        )
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="earth-engine")
        self._stats_lock = threading.Lock()
        self._calls: dict[str, dict[str, int]] = {
            endpoint.value: dict.fromkeys(COUNTERS, 0) for endpoint in Endpoint
        }
        self._inflight_lock = threading.Lock()
        self._inflight: dict[tuple[CacheStore, str], InFlight] = {}
        logger.info(
            f"Gateway initialized (route cache {self.route_cache.max_size}, "
            f"overlay cache {self.overlay_cache.max_size})"
        )

    def fetch(self, request: GatewayRequest, context: Optional[RequestContext] = None) -> Any:
        """Issue ``request`` and return its validated JSON payload.

        Concurrent fetches of the same cacheable request share one upstream
        call: the first caller issues it and the others wait for its result.

        Args:
            request: The upstream call to make
            context: Request-scoped cancellation context

        Returns:
            The response payload, guaranteed to satisfy ``request.schema``

        Raises:
            UpstreamTerminal: Non-retryable failure or schema mismatch
            UpstreamTimeout: Timeout, abort or cancellation after retries
            UpstreamRateLimited: Still rate limited after retries
            UpstreamTransient: Still failing transiently after retries
        """
        cache = self._cache_for(request.cache_store)
        if cache is None:
            return self._fetch_upstream(request, None, context)

        if not request.cache_key:
            raise ValueError(f"{request.label} uses a cache but has no cache_key")
        cached = cache.get(request.cache_key)
        if cached is not None:
            self._count(request.endpoint, "cached")
            return cached

        flight_key = (request.cache_store, request.cache_key)
        with self._inflight_lock:
            # The owner stores its payload before leaving the in-flight table
            if request.cache_key in cache:
                cached = cache.get(request.cache_key)
            flight = self._inflight.get(flight_key)
            if cached is None and flight is None:
                flight = InFlight(future=Future(), context=context)
                self._inflight[flight_key] = flight
                owner = True
            else:
                owner = False

        if cached is not None:
            self._count(request.endpoint, "cached")
            return cached
        if not owner:
            return self._join(flight, request, context)

        # Waiters are woken only after the entry is gone so a retry starts a new flight
        try:
            payload = self._fetch_upstream(request, cache, context)
        except BaseException as e:
            self._land(flight_key)
            flight.future.set_exception(e)
            raise
        self._land(flight_key)
        flight.future.set_result(payload)
        return payload

    def _land(self, flight_key: tuple[CacheStore, str]) -> None:
        with self._inflight_lock:
            self._inflight.pop(flight_key, None)

    def _join(
        self,
        flight: "InFlight",
        request: GatewayRequest,
        context: Optional[RequestContext],
    ) -> Any:
        """Wait for an identical in-flight request and share its payload.

        If the owner was cancelled, the fetch is retried under this caller's
        own context.
        """
        logger.debug(f"Joining in-flight request {request.cache_key}")
        while True:
            try:
                payload = flight.future.result(timeout=POLL_INTERVAL)
            except FuturesTimeout:
                if context is not None:
                    context.check()
                continue
            except UpstreamError:
                if flight.context is not None and flight.context.cancelled:
                    if context is not None:
                        context.check()
                    logger.info(
                        f"Owner of {request.cache_key} was cancelled; fetching again"
                    )
                    return self.fetch(request, context)
                raise
            self._count(request.endpoint, "coalesced")
            return payload

    def _fetch_upstream(
        self,
        request: GatewayRequest,
        cache: Optional[LRUCache],
        context: Optional[RequestContext],
    ) -> Any:
        for attempt in range(self.MAX_RETRIES + 1):
            if context is not None:
                context.check()
            self.rate_limiter.acquire(request.rate_class, context)

            try:
                self._count(request.endpoint, "upstream")
                payload = self._issue(request, context)
                if context is not None:
                    context.check()
            except UpstreamError as e:
                self.rate_limiter.record(request.rate_class, success=False)
                if context is not None and (context.cancelled or context.remaining() == 0):
                    self._count(request.endpoint, "errors")
                    raise
                if not e.retryable or attempt == self.MAX_RETRIES:
                    self._count(request.endpoint, "errors")
                    if e.retryable:
                        logger.error(
                            f"All {self.MAX_RETRIES} retries failed for {request.label}: {e}"
                        )
                    raise
                delay = self._backoff_delay(attempt, e)
                self._count(request.endpoint, "retries")
                logger.warning(
                    f"Attempt {attempt + 1} for {request.label} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                self._sleep(delay, context)
                continue

            self.rate_limiter.record(request.rate_class, success=True)
            self._validate(request, payload)

            if cache is not None:
                if context is not None and context.cancelled:
                    logger.debug(f"Not caching {request.cache_key}: request cancelled")
                else:
                    cache.set(request.cache_key, payload)
            return payload

        # The loop always returns or raises
        raise UpstreamTerminal(f"Unreachable retry state for {request.label}")

    def _issue(self, request: GatewayRequest, context: Optional[RequestContext]) -> Any:
        timeout = request.timeout or self._default_timeout(request.endpoint)
        if context is not None:
            timeout = context.bound_timeout(timeout)

        if request.endpoint == Endpoint.EARTH_ENGINE:
            return self._run_operation(request, timeout, context)
        return self._send(request, timeout)

    def _send(self, request: GatewayRequest, timeout: Optional[float]) -> Any:
        if not request.url:
            raise ValueError(f"{request.endpoint.value} request has no url")

        try:
            response = self.session.request(
                request.method,
                request.url,
                params=request.params,
                data=request.data,
                json=request.json,
                headers=request.headers or None,
                timeout=timeout,
            )
        except requests.Timeout as e:
            raise UpstreamTimeout(
                f"Timed out after {timeout}s", context=request.label, original=e
            ) from e
        except requests.ConnectionError as e:
            raise UpstreamTransient(
                f"Connection failed: {e}", context=request.label, original=e
            ) from e
        except requests.RequestException as e:
            raise UpstreamTerminal(
                f"Request failed: {e}", context=request.label, original=e
            ) from e

        status = response.status_code
        if status == 429:
            raise UpstreamRateLimited(
                "Upstream rate limited (HTTP 429)",
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
                context=request.label,
            )
        if status >= 500:
            raise UpstreamTransient(f"Upstream error HTTP {status}", context=request.label)
        if status >= 400:
            raise UpstreamTerminal(
                f"Upstream rejected request HTTP {status}: {response.text[:200]}",
                context=request.label,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamTerminal(
                "Malformed JSON payload", context=request.label, original=e
            ) from e

    def _run_operation(
        self,
        request: GatewayRequest,
        timeout: Optional[float],
        context: Optional[RequestContext],
    ) -> Any:
        """Run a blocking Earth Engine operation on the worker pool.

        Cancellation and timeout stop the wait, not the work: an operation
        that has already started keeps its worker thread until it returns.
        """
        if request.operation is None:
            raise ValueError("earth-engine request has no operation")

        future = self._executor.submit(request.operation)
        started = time.monotonic()
        while True:
            try:
                return future.result(timeout=POLL_INTERVAL)
            except FuturesTimeout:
                if context is not None and context.cancelled:
                    self._abandon(future, request, "request cancelled")
                    context.check()
                if timeout is not None and time.monotonic() - started >= timeout:
                    self._abandon(future, request, f"exceeded {timeout}s")
                    raise UpstreamTimeout(
                        f"Operation exceeded {timeout}s", context=request.label
                    )
            except AgrisiteError:
                raise
            except Exception as e:
                raise UpstreamTerminal(
                    f"Operation failed: {e}", context=request.label, original=e
                ) from e

    @staticmethod
    def _abandon(future: Future, request: GatewayRequest, reason: str) -> None:
        if not future.cancel():
            logger.warning(
                f"Abandoning {request.label} ({reason}); "
                "the running operation cannot be aborted and keeps its worker"
            )

    def _validate(self, request: GatewayRequest, payload: Any) -> None:
        if request.schema is None:
            return
        try:
            request.schema.model_validate(payload)
        except SchemaError as e:
            self._count(request.endpoint, "errors")
            raise UpstreamTerminal(
                f"Response failed {request.schema.__name__} validation: "
                f"{e.error_count()} error(s)",
                context=request.label,
                original=e,
            ) from e

    def _backoff_delay(self, attempt: int, error: UpstreamError) -> float:
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            return retry_after
        return self.BASE_DELAY * (2**attempt) + random.uniform(0, self.BASE_DELAY)

    def _sleep(self, seconds: float, context: Optional[RequestContext]) -> None:
        if context is not None:
            context.sleep(seconds)
        else:
            time.sleep(seconds)

    def _default_timeout(self, endpoint: Endpoint) -> float:
        return {
            Endpoint.ROUTING: self.settings.ors_timeout,
            Endpoint.OVERLAY: self.settings.overpass_timeout,
            Endpoint.EARTH_ENGINE: EARTH_ENGINE_TIMEOUT,
            Endpoint.WEATHER_ARCHIVE: WEATHER_TIMEOUT,
            Endpoint.LITHOLOGY: LITHOLOGY_TIMEOUT,
            Endpoint.REVERSE_GEO: REVERSE_GEO_TIMEOUT,
        }[endpoint]

    def _cache_for(self, store: CacheStore) -> Optional[LRUCache]:
        if store == CacheStore.ROUTES:
            return self.route_cache
        if store == CacheStore.OVERLAY:
            return self.overlay_cache
        return None

    def _count(self, endpoint: Endpoint, kind: str) -> None:
        with self._stats_lock:
            self._calls[endpoint.value][kind] += 1

    def upstream_calls(self, endpoint: Endpoint) -> int:
        """Number of requests actually sent to ``endpoint`` (retries included)."""
        with self._stats_lock:
            return self._calls[endpoint.value]["upstream"]

    def stats(self) -> dict[str, Any]:
        with self._stats_lock:
            calls = {name: dict(counts) for name, counts in self._calls.items()}
        return {
            "endpoints": calls,
            "caches": [self.route_cache.stats(), self.overlay_cache.stats()],
            "rate_limits": self.rate_limiter.stats(),
        }

    def close(self) -> None:
        """Release the session and worker pool and drop cached entries."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.session.close()
        self.route_cache.clear()
        self.overlay_cache.clear()


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header (delta seconds or HTTP date) into seconds."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())
