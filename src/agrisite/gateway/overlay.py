"""Helpers for building Overpass overlay requests."""

from typing import Optional

from agrisite.config import Settings
from agrisite.gateway.client import CacheStore, Endpoint, GatewayRequest
from agrisite.gateway.rate_limit import RateClass
from agrisite.gateway.schemas import OverpassResponse


def overlay_request(
    settings: Settings,
    query: str,
    cache_key: Optional[str],
    rate_class: RateClass = RateClass.DEFAULT,
) -> GatewayRequest:
    """Build a POST ``data=<query>`` request for the Overpass interpreter.

    Args:
        settings: Service settings (Overpass URL)
        query: Overpass QL query
        cache_key: Overlay cache key, or None to bypass the cache
        rate_class: Rate class to acquire a slot from
    """
    return GatewayRequest(
        endpoint=Endpoint.OVERLAY,
        method="POST",
        url=settings.overpass_url,
        data={"data": query},
        cache_store=CacheStore.OVERLAY if cache_key else CacheStore.NONE,
        cache_key=cache_key,
        rate_class=rate_class,
        schema=OverpassResponse,
    )
