"""Routing requests and road-quality segmentation of route geometries.

Routes come from OpenRouteService as GeoJSON. Way types and surfaces are
read from the ``extras`` block requested with ``extra_info``.
"""

import logging
from collections import defaultdict
from typing import Optional

from agrisite.config import Settings
from agrisite.gateway import CacheStore, Endpoint, GatewayRequest, RateClass
from agrisite.gateway.schemas import OrsResponse
from agrisite.routing.models import RouteQuality, RouteSegment
from agrisite.utils.geo import Point, line_length_m

logger = logging.getLogger(__name__)

ROAD_RANKING = {
    "motorway": 1.0,
    "trunk": 0.9,
    "primary": 0.8,
    "secondary": 0.7,
    "tertiary": 0.6,
    "residential": 0.5,
    "unclassified": 0.4,
    "track": 0.3,
    "path": 0.2,
    "service": 0.4,
    "default": 0.5,
}

ROAD_WEIGHTS = {
    "surface_paved": 1.0,
    "surface_asphalt": 1.0,
    "surface_concrete": 0.9,
    "surface_gravel": 0.6,
    "surface_unpaved": 0.4,
    "surface_dirt": 0.3,
    "surface_grass": 0.2,
    "width_wide": 1.0,
    "width_medium": 0.7,
    "width_narrow": 0.4,
    "width_very_narrow": 0.2,
    "default": 0.5,
}

# OpenRouteService waytype codes -> road class
ORS_WAYTYPES = {
    0: "unclassified",  # unknown
    1: "primary",  # state road
    2: "secondary",  # road
    3: "residential",  # street
    4: "path",
    5: "track",
    6: "path",  # cycleway
    7: "path",  # footway
    8: "path",  # steps
    9: "service",  # ferry
    10: "unclassified",  # construction
}

# OpenRouteService surface codes -> ROAD_WEIGHTS key
ORS_SURFACES = {
    1: "surface_paved",
    2: "surface_unpaved",
    3: "surface_asphalt",
    4: "surface_concrete",
    8: "surface_gravel",
    9: "surface_gravel",
    10: "surface_gravel",
    11: "surface_dirt",
    12: "surface_dirt",
    17: "surface_grass",
}

MAX_LINE_POINTS = 1000
COORDINATE_PRECISION = 6


def route_cache_key(start: Point, end: Point) -> str:
    return f"route_{start.lat:.6f}_{start.lon:.6f}_{end.lat:.6f}_{end.lon:.6f}"


def route_request(settings: Settings, start: Point, end: Point) -> GatewayRequest:
    """Build the OpenRouteService directions request from ``start`` to ``end``."""
    headers = {"Content-Type": "application/json"}
    if settings.ors_api_key:
        headers["Authorization"] = settings.ors_api_key
    return GatewayRequest(
        endpoint=Endpoint.ROUTING,
        method="POST",
        url=settings.ors_url,
        json={
            "coordinates": [[start.lon, start.lat], [end.lon, end.lat]],
            "preference": "shortest",
            "instructions": False,
            "extra_info": ["waytype", "surface", "steepness"],
        },
        headers=headers,
        cache_store=CacheStore.ROUTES,
        cache_key=route_cache_key(start, end),
        rate_class=RateClass.DEFAULT,
        schema=OrsResponse,
    )


def route_feature(payload: dict) -> dict:
    return payload["features"][0]


def route_coordinates(feature: dict) -> list[list[float]]:
    return [list(c[:2]) for c in feature.get("geometry", {}).get("coordinates", [])]


def truncate_line(coordinates: list[list[float]]) -> list[list[float]]:
    """Round to 6 decimal places and keep at most MAX_LINE_POINTS vertices."""
    return [
        [round(lon, COORDINATE_PRECISION), round(lat, COORDINATE_PRECISION)]
        for lon, lat in coordinates[:MAX_LINE_POINTS]
    ]


def _extra_values(feature: dict, name: str) -> list[tuple[int, int, int]]:
    extras = feature.get("properties", {}).get("extras", {})
    values = extras.get(name, {}).get("values") or []
    return [(int(v[0]), int(v[1]), int(v[2])) for v in values if len(v) >= 3]


def extract_waytype_groups(feature: dict) -> list[tuple[int, int, str]]:
    """(start index, end index, road class) groups, or one 'unclassified' group."""
    groups = [
        (start, end, ORS_WAYTYPES.get(code, "unclassified"))
        for start, end, code in _extra_values(feature, "waytypes")
    ]
    if groups:
        return groups
    last = max(len(route_coordinates(feature)) - 1, 0)
    return [(0, last, "unclassified")]


def dominant_surface_weight(surfaces: list[tuple[int, int, int]], start: int, end: int) -> float:
    """ROAD_WEIGHTS value of the surface covering most of [start, end]."""
    coverage: dict[int, int] = defaultdict(int)
    for s_start, s_end, code in surfaces:
        overlap = min(end, s_end) - max(start, s_start)
        if overlap > 0:
            coverage[code] += overlap
        elif start == end and s_start <= start <= s_end:
            coverage[code] += 1
    if not coverage:
        return ROAD_WEIGHTS["default"]
    code = max(coverage, key=lambda c: (coverage[c], -c))
    return ROAD_WEIGHTS.get(ORS_SURFACES.get(code, "default"), ROAD_WEIGHTS["default"])


def analyze_segments(feature: dict) -> tuple[list[RouteSegment], float]:
    """Split a route into way-type segments; returns (segments, total distance m)."""
    coordinates = route_coordinates(feature)
    summary = feature.get("properties", {}).get("summary", {})
    total = float(summary.get("distance") or 0.0) or line_length_m(coordinates)
    surfaces = _extra_values(feature, "surface")

    segments = []
    for start, end, road_type in extract_waytype_groups(feature):
        coords = coordinates[start : end + 1]
        length = line_length_m(coords)
        segments.append(
            RouteSegment(
                road_type=road_type,
                length_m=length,
                percentage=length / total * 100 if total > 0 else 0.0,
                ranking=ROAD_RANKING.get(road_type, ROAD_RANKING["default"]),
                weight=dominant_surface_weight(surfaces, start, end),
                coordinates=coords,
            )
        )
    return segments, total


def determine_worst_road(segments: list[RouteSegment]) -> Optional[RouteSegment]:
    """Segment with the highest ranking x weight; ties go to the longer segment."""
    if not segments:
        return None
    return max(segments, key=lambda s: (s.ranking * s.weight, s.length_m))


def analyze_route_quality(feature: dict) -> RouteQuality:
    segments, total = analyze_segments(feature)
    worst = determine_worst_road(segments)
    return RouteQuality(
        segments=segments,
        overall_quality=sum(s.quality_score for s in segments),
        worst_road_type=worst.road_type if worst else None,
        total_distance_m=total,
    )
