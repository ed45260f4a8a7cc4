"""Route and hazard analysis: road distances, routes, hazards and accessibility."""

from agrisite.routing.analyzer import RouteHazardAnalyzer, accessibility_score
from agrisite.routing.hazards import composite_risk, partition_hazards, risk_level
from agrisite.routing.models import (
    AccessibilityReport,
    HazardSet,
    ReferencePlace,
    RoadAnalysis,
    RouteQuality,
    RouteSegment,
)
from agrisite.routing.routes import ROAD_RANKING, ROAD_WEIGHTS, analyze_route_quality

__all__ = [
    "AccessibilityReport",
    "HazardSet",
    "ROAD_RANKING",
    "ROAD_WEIGHTS",
    "ReferencePlace",
    "RoadAnalysis",
    "RouteHazardAnalyzer",
    "RouteQuality",
    "RouteSegment",
    "accessibility_score",
    "analyze_route_quality",
    "composite_risk",
    "partition_hazards",
    "risk_level",
]
