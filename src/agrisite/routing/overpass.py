"""Spatial overlay query for roads and populated places around a field."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from agrisite.routing.models import PLACE_KINDS, ROAD_CLASSES, ReferencePlace
from agrisite.utils.geo import Point, haversine_m

logger = logging.getLogger(__name__)

ROAD_RADIUS_M = 50_000
CITY_RADIUS_M = 200_000
TOWN_RADIUS_M = 100_000

NO_DISTANCE = -1.0


@dataclass
class SpatialData:
    """Roads by class (each a list of vertex lists) and place nodes by kind."""

    roads: dict[str, list[list[Point]]] = field(
        default_factory=lambda: {road_class: [] for road_class in ROAD_CLASSES}
    )
    places: dict[str, list[tuple[str, Point]]] = field(
        default_factory=lambda: {kind: [] for kind in PLACE_KINDS}
    )


def build_spatial_query(point: Point) -> str:
    around = f"{point.lat},{point.lon}"
    return (
        "[out:json][timeout:60];("
        f'way["highway"~"^(primary|secondary|tertiary)$"](around:{ROAD_RADIUS_M},{around});'
        f'node["place"="city"](around:{CITY_RADIUS_M},{around});'
        f'node["place"="town"](around:{TOWN_RADIUS_M},{around});'
        ");out geom;"
    )


def spatial_cache_key(point: Point) -> str:
    return f"spatial_{point.lat:.4f}_{point.lon:.4f}"


def parse_spatial_data(payload: dict) -> SpatialData:
    """Split an Overpass element list into road vertices and place nodes."""
    data = SpatialData()
    for element in payload.get("elements", []):
        tags = element.get("tags") or {}
        if element.get("type") == "way":
            road_class = tags.get("highway")
            if road_class not in data.roads:
                continue
            vertices = [
                Point(lat=float(v["lat"]), lon=float(v["lon"]))
                for v in element.get("geometry") or []
                if v is not None
            ]
            if vertices:
                data.roads[road_class].append(vertices)
        elif element.get("type") == "node":
            kind = tags.get("place")
            if kind in data.places and "lat" in element and "lon" in element:
                name = tags.get("name", f"node/{element['id']}")
                data.places[kind].append(
                    (name, Point(lat=float(element["lat"]), lon=float(element["lon"])))
                )
    return data


def nearest_vertex(origin: Point, ways: list[list[Point]]) -> Optional[tuple[Point, float]]:
    """Closest vertex of any way and its distance in metres, or None."""
    best: Optional[tuple[Point, float]] = None
    for way in ways:
        for vertex in way:
            distance = origin.distance_to(vertex)
            if best is None or distance < best[1]:
                best = (vertex, distance)
    return best


def nearest_place_distance(
    origin: Point,
    places: list[tuple[str, Point]],
    reference_places: Iterable[ReferencePlace] = (),
    kind: Optional[str] = None,
) -> float:
    """Distance in metres to the nearest place node or reference place of ``kind``.

    Returns -1 when there is no candidate.
    """
    distances = [origin.distance_to(point) for _, point in places]
    distances.extend(
        haversine_m(origin.lat, origin.lon, place.lat, place.lon)
        for place in reference_places
        if kind is None or place.kind == kind
    )
    return min(distances) if distances else NO_DISTANCE


def nearest_reference_place(
    origin: Point, reference_places: Iterable[ReferencePlace]
) -> Optional[dict]:
    best = None
    for place in reference_places:
        distance = haversine_m(origin.lat, origin.lon, place.lat, place.lon)
        if best is None or distance < best["distance"]:
            best = {"name": place.name, "kind": place.kind, "distance": distance}
    return best
