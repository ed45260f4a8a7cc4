"""Remote Data Gateway: rate limiting, retries, schema validation and caching.

This module provides:

- RemoteDataGateway: Single entry point for outbound upstream calls
- GatewayRequest: Description of one call (endpoint, payload, cache, schema)
- LRUCache: Thread-safe LRU cache with TTL
- RateLimiter: Per-class sliding-window limiter with adaptive tuning
- RequestContext: Request-scoped cancellation and lifecycle state
"""

from agrisite.gateway.cache import OVERLAY_CACHE_TTL, ROUTE_CACHE_TTL, CacheEntry, LRUCache
from agrisite.gateway.client import (
    CacheStore,
    Endpoint,
    GatewayRequest,
    RemoteDataGateway,
    parse_retry_after,
)
from agrisite.gateway.context import RequestContext, RequestState
from agrisite.gateway.rate_limit import RateClass, RateLimiter

__all__ = [
    "CacheEntry",
    "CacheStore",
    "Endpoint",
    "GatewayRequest",
    "LRUCache",
    "OVERLAY_CACHE_TTL",
    "ROUTE_CACHE_TTL",
    "RateClass",
    "RateLimiter",
    "RemoteDataGateway",
    "RequestContext",
    "RequestState",
    "parse_retry_after",
]
