"""Hazards along a route: bridges, water crossings and landslides."""

import logging
from typing import Mapping

from agrisite.config import Settings
from agrisite.gateway import GatewayRequest, RateClass
from agrisite.gateway.overlay import overlay_request
from agrisite.routing.models import HazardSet
from agrisite.routing.routes import truncate_line
from agrisite.utils.geo import BoundingBox, buffered_bbox

logger = logging.getLogger(__name__)

RISK_LEVELS = [(0.2, "Low"), (0.5, "Medium"), (0.8, "High")]
HIGHEST_RISK_LEVEL = "Very High"


def build_hazard_query(bbox: BoundingBox) -> str:
    box = bbox.to_overpass()
    return (
        "[out:json][timeout:25];("
        f"way[bridge=yes]({box});"
        f'way["waterway"~"river|stream"]({box});'
        f'way["natural"~"water|landslide"]({box});'
        ");out geom;"
    )


def hazard_cache_key(bbox: BoundingBox) -> str:
    center = bbox.center
    return f"hazards_{center.lon:.4f},{center.lat:.4f}"


def hazard_request(settings: Settings, coordinates: list[list[float]]) -> GatewayRequest:
    """Overlay request for hazards within the buffered bbox of a [lon, lat] route line."""
    bbox = buffered_bbox(truncate_line(coordinates), settings.overpass_buffer)
    return overlay_request(
        settings,
        build_hazard_query(bbox),
        cache_key=hazard_cache_key(bbox),
        rate_class=RateClass.HAZARD,
    )


def partition_hazards(payload: dict) -> dict[str, list[dict]]:
    """Sort overlay elements into bridges, water and landslides.

    An element can land in more than one group (e.g. a bridge over a stream
    tagged on the same way).
    """
    result: dict[str, list[dict]] = {"bridges": [], "water": [], "landslides": []}
    for element in payload.get("elements", []):
        tags = element.get("tags") or {}
        if not tags:
            continue
        vertices = element.get("geometry") or element.get("nodes") or []
        if tags.get("bridge") == "yes" and len(vertices) > 1:
            result["bridges"].append(element)
        if tags.get("waterway") or tags.get("natural") == "water":
            result["water"].append(element)
        if tags.get("natural") == "landslide":
            result["landslides"].append(element)
    return result


def composite_risk(bridges: int, water: int, landslides: int, weights: Mapping[str, float]) -> float:
    """Mean of the three saturated hazard terms, in [0, 1]."""
    terms = [
        min(bridges * weights["bridge"], 1.0),
        min(water * weights["water"], 1.0),
        min(landslides * weights["landslide"], 1.0),
    ]
    return max(0.0, sum(terms) / len(terms))


def hazard_set(payload: dict, weights: Mapping[str, float]) -> HazardSet:
    groups = partition_hazards(payload)
    counts = (len(groups["bridges"]), len(groups["water"]), len(groups["landslides"]))
    return HazardSet(
        bridges=counts[0],
        water_crossings=counts[1],
        landslides=counts[2],
        composite_risk=composite_risk(*counts, weights),
    )


def risk_level(risk: float) -> str:
    for upper, level in RISK_LEVELS:
        if risk < upper:
            return level
    return HIGHEST_RISK_LEVEL
