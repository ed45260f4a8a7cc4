"""Data models for route and hazard analysis."""

from dataclasses import dataclass, field
from typing import Any, Optional

from agrisite.exceptions import ValidationError
from agrisite.utils.geo import validate_coordinates

ROAD_CLASSES = ("primary", "secondary", "tertiary")
PLACE_KINDS = ("city", "town")

# Output keys for the per-road hazard entries; the primary road is the critical segment
CRITICAL_SEGMENT = "critical_segment"
HAZARD_KEYS = (CRITICAL_SEGMENT, "secondary", "tertiary", "city", "town")


@dataclass(frozen=True)
class ReferencePlace:
    """A caller-supplied population centre.

    Attributes:
        name: Display name
        lat: Latitude in degrees
        lon: Longitude in degrees
        kind: 'city', 'town' or any other label (only city/town affect distances)
    """

    name: str
    lat: float
    lon: float
    kind: str = "town"

    @classmethod
    def from_dict(cls, data: dict) -> "ReferencePlace":
        try:
            place = cls(
                name=str(data["name"]),
                lat=float(data["lat"]),
                lon=float(data["lon"]),
                kind=str(data.get("kind", "town")).lower(),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(
                f"Invalid reference place: {data!r}", context="reference_places", original=e
            ) from e
        validate_coordinates(place.lat, place.lon)
        return place


@dataclass
class RouteSegment:
    """Part of a route with a single road type.

    Attributes:
        road_type: Road class, e.g. 'primary' or 'track'
        length_m: Segment length in metres
        percentage: Share of the total route length (0-100)
        ranking: Road class ranking (higher is a better road)
        weight: Surface weight (higher is a better surface)
        coordinates: Segment vertices as [lon, lat]
    """

    road_type: str
    length_m: float
    percentage: float
    ranking: float
    weight: float
    coordinates: list[list[float]] = field(default_factory=list)

    @property
    def quality_score(self) -> float:
        return (1 - self.ranking / 10) ** 2 * self.weight * self.percentage


@dataclass
class RouteQuality:
    segments: list[RouteSegment]
    overall_quality: float
    worst_road_type: Optional[str]
    total_distance_m: float

    def to_dict(self) -> dict:
        return {
            "segments": [
                {
                    "road_type": s.road_type,
                    "length": s.length_m,
                    "percentage": s.percentage,
                    "quality_score": s.quality_score,
                }
                for s in self.segments
            ],
            "overall_quality": self.overall_quality,
            "worst_road_type": self.worst_road_type,
            "total_distance": self.total_distance_m,
        }


@dataclass
class HazardSet:
    """Hazard counts along one route and their composite risk in [0, 1]."""

    bridges: int = 0
    water_crossings: int = 0
    landslides: int = 0
    composite_risk: float = 0.0

    @property
    def total(self) -> int:
        return self.bridges + self.water_crossings + self.landslides


@dataclass
class RoadAnalysis:
    """Route and hazard result for one target (road class or place).

    Attributes:
        distance: Straight-line distance to the target in metres (-1 if none)
        hazards: Hazards along the route
        quality: Road quality along the route, if a route was computed
        reused_from: Key of the analysis this one was copied from, if any
        note: Explanation when the result is a default or a copy
    """

    distance: float
    hazards: HazardSet = field(default_factory=HazardSet)
    quality: Optional[RouteQuality] = None
    reused_from: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "distance": self.distance,
            "bridges": self.hazards.bridges,
            "water_crossings": self.hazards.water_crossings,
            "landslides": self.hazards.landslides,
            "risk_score": self.hazards.composite_risk,
        }
        if self.quality is not None:
            d["road_quality"] = self.quality.to_dict()
        if self.reused_from is not None:
            d["reused_from"] = self.reused_from
        if self.note is not None:
            d["note"] = self.note
        return d


@dataclass
class AccessibilityReport:
    """Accessibility of one field location.

    Attributes:
        distances: distance_to_{primary,secondary,tertiary,city,town} in metres
        roads: Per-target analyses keyed by HAZARD_KEYS
        overall_score: Accessibility score after the hazard penalty
        unpenalised_score: Accessibility score before the hazard penalty
        risk_level: Risk level of the critical segment
        nearest_reference_place: {name, distance} of the closest reference place
        notes: Degradation notes
    """

    distances: dict[str, float]
    roads: dict[str, RoadAnalysis]
    overall_score: float
    unpenalised_score: float
    risk_level: str
    nearest_reference_place: Optional[dict[str, Any]] = None
    notes: list[str] = field(default_factory=list)

    @property
    def critical_segment(self) -> RoadAnalysis:
        return self.roads[CRITICAL_SEGMENT]

    def to_dict(self) -> dict:
        critical = self.critical_segment
        return {
            "metrics": dict(self.distances),
            "hazards": {key: analysis.to_dict() for key, analysis in self.roads.items()},
            "overall_accessibility_score": self.overall_score,
            "unpenalised_score": self.unpenalised_score,
            "critical_segment_summary": {
                "distance_to_primary_road": self.distances["distance_to_primary"],
                "hazards_count": critical.hazards.total,
                "risk_level": self.risk_level,
            },
            "nearest_reference_place": self.nearest_reference_place,
            "notes": list(self.notes),
        }

