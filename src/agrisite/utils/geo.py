"""Geographic utilities: points, bounding boxes, polygons and distances."""

from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt
from typing import Any

import geojson
from shapely.geometry import LineString
from shapely.geometry import Polygon as ShapelyPolygon

from agrisite.exceptions import ValidationError

# Mean Earth radius in km
EARTH_RADIUS_KM = 6371.0

# Approximate length of one degree of latitude in km
KM_PER_DEGREE = 111.32

MIN_RING_VERTICES = 4


@dataclass(frozen=True)
class Point:
    """Geographic point in decimal degrees."""

    lat: float
    lon: float

    def distance_to(self, other: "Point") -> float:
        """Calculate distance in metres to another point using Haversine formula."""
        return haversine_m(self.lat, self.lon, other.lat, other.lon)

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lon": self.lon}


@dataclass(frozen=True)
class BoundingBox:
    """Geographic bounding box."""

    west: float
    south: float
    east: float
    north: float

    def contains(self, lat: float, lon: float) -> bool:
        """Check if a point is within this bounding box."""
        return (
            self.south <= lat <= self.north
            and self.west <= lon <= self.east
        )

    @property
    def center(self) -> Point:
        return Point(lat=(self.south + self.north) / 2, lon=(self.west + self.east) / 2)

    def to_overpass(self) -> str:
        """Return as "south,west,north,east" for Overpass QL bbox filters."""
        return f"{self.south},{self.west},{self.north},{self.east}"

    def to_dict(self) -> dict:
        """Return as dictionary."""
        return {
            "west": self.west,
            "south": self.south,
            "east": self.east,
            "north": self.north,
        }


@dataclass(frozen=True)
class Polygon:
    """Closed polygon ring of (lon, lat) pairs.

    Attributes:
        ring: Ring vertices as (lon, lat) tuples, first equal to last
        source: Free-form label describing where the polygon came from
    """

    ring: tuple[tuple[float, float], ...]
    source: str = "unspecified"

    @classmethod
    def from_geojson(cls, feature: Any, source: str = "unspecified") -> "Polygon":
        """Build a Polygon from a GeoJSON Feature<Polygon> or bare Polygon.

        Args:
            feature: GeoJSON mapping (Feature or Polygon geometry)
            source: Label describing where the polygon came from

        Returns:
            Validated Polygon

        Raises:
            ValidationError: If the geometry is malformed or out of range
        """
        if not isinstance(feature, dict):
            raise ValidationError("Polygon must be a GeoJSON object", context="polygon")

        geometry = feature.get("geometry") if feature.get("type") == "Feature" else feature
        if not isinstance(geometry, dict) or geometry.get("type") != "Polygon":
            raise ValidationError(
                "Polygon must be a GeoJSON Feature with Polygon geometry",
                context="polygon",
            )

        coordinates = geometry.get("coordinates")
        if not isinstance(coordinates, list) or not coordinates:
            raise ValidationError("Polygon coordinates are missing", context="polygon")

        ring = coordinates[0]
        if not isinstance(ring, list) or len(ring) < MIN_RING_VERTICES:
            raise ValidationError(
                f"Polygon ring needs at least {MIN_RING_VERTICES} vertices",
                context="polygon",
            )

        vertices = []
        for position in ring:
            if (
                not isinstance(position, (list, tuple))
                or len(position) != 2
                or not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in position)
            ):
                raise ValidationError(
                    f"Invalid polygon vertex: {position!r}", context="polygon"
                )
            lon, lat = float(position[0]), float(position[1])
            validate_coordinates(lat, lon)
            vertices.append((lon, lat))

        if vertices[0] != vertices[-1]:
            raise ValidationError("Polygon ring must be closed", context="polygon")

        if not geojson.Polygon([vertices]).is_valid:
            raise ValidationError("Polygon is not valid GeoJSON", context="polygon")

        return cls(ring=tuple(vertices), source=source)

    @property
    def shape(self) -> ShapelyPolygon:
        return ShapelyPolygon(self.ring)

    @property
    def centroid(self) -> Point | None:
        """Centroid of the ring, or None for a degenerate (zero-area) ring."""
        poly = self.shape
        if poly.is_empty or poly.area == 0:
            return None
        c = poly.centroid
        return Point(lat=c.y, lon=c.x)

    @property
    def bounds(self) -> BoundingBox:
        west, south, east, north = self.shape.bounds
        return BoundingBox(west=west, south=south, east=east, north=north)

    def coordinates(self) -> list[list[list[float]]]:
        """Return GeoJSON-style nested coordinate lists."""
        return [[[lon, lat] for lon, lat in self.ring]]

    def to_geojson(self) -> dict:
        return {
            "type": "Feature",
            "properties": {"source": self.source},
            "geometry": {"type": "Polygon", "coordinates": self.coordinates()},
        }


def validate_coordinates(lat: float, lon: float) -> None:
    """Raise ValidationError if a coordinate is outside the valid range."""
    if not -90 <= lat <= 90:
        raise ValidationError(f"Latitude out of range: {lat}", context="coordinates")
    if not -180 <= lon <= 180:
        raise ValidationError(f"Longitude out of range: {lon}", context="coordinates")


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the great circle distance in km between two points.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(sqrt(min(1.0, a)))

    return EARTH_RADIUS_KM * c


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great circle distance in metres."""
    return haversine(lat1, lon1, lat2, lon2) * 1000


def line_length_m(coordinates: list[list[float]]) -> float:
    """Sum of haversine distances along a [lon, lat] coordinate list, in metres."""
    total = 0.0
    for (lon1, lat1), (lon2, lat2) in zip(coordinates, coordinates[1:]):
        total += haversine_m(lat1, lon1, lat2, lon2)
    return total


def buffered_bbox(coordinates: list[list[float]], buffer_km: float) -> BoundingBox:
    """Buffer a [lon, lat] line by ``buffer_km`` and return its bounding box."""
    if len(coordinates) == 1:
        geometry = LineString([coordinates[0], coordinates[0]])
    else:
        geometry = LineString(coordinates)
    west, south, east, north = geometry.buffer(buffer_km / KM_PER_DEGREE).bounds
    return BoundingBox(west=west, south=south, east=east, north=north)
