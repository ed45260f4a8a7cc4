"""Borehole depth range estimation."""

import logging
from typing import Optional, Protocol

from agrisite.gateway import RequestContext
from agrisite.groundwater.models import (
    DepthEstimate,
    DepthRange,
    GeologicalFactors,
    WaterTableEstimate,
)
from agrisite.precipitation.models import RechargePatterns
from agrisite.utils.geo import Polygon
from agrisite.utils.stats import clamp

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_DEPTH = 30.0
DEFAULT_MAXIMUM_DEPTH = 200.0
DEPTH_FLOOR = 20.0
DEPTH_CEILING = 250.0

AQUIFER_BELOW = 20.0
AQUIFER_ABOVE = 50.0
CONFINING_MARGIN = 10.0
RECOMMENDED_FRACTION = 0.4

HIGH_RECHARGE_EFFICIENCY = 0.7
RECHARGE_RELAXATION = 10.0

# Terrain-derived aquifer depth: 50 + elevation/100 + 2*slope, shallower when recharge is good
TERRAIN_BASE_DEPTH = 50.0
TERRAIN_RECHARGE_EFFICIENCY = 0.6
TERRAIN_RECHARGE_BONUS = 15.0

BASE_CONFIDENCE = 0.5
NARROW_SPREAD = 50.0
WIDE_SPREAD = 100.0

STANDARD_LIMITATIONS = [
    "Local well data would improve accuracy",
    "Actual water table depth may vary",
    "Local geological variations may not be captured",
]
LOW_CONFIDENCE_LIMITATIONS = [
    "Limited geological data available",
    "Recommend local hydrogeological survey",
]
LOW_CONFIDENCE = 0.6


class WaterTableSource(Protocol):
    """Capability for estimating the local water table depth."""

    def estimate(
        self, polygon: Polygon, context: Optional[RequestContext] = None
    ) -> WaterTableEstimate:
        ...


class UnavailableWaterTable:
    """Water table source used until well data is integrated.

    Always reports an unknown depth with low confidence.
    """

    def estimate(
        self, polygon: Polygon, context: Optional[RequestContext] = None
    ) -> WaterTableEstimate:
        return WaterTableEstimate(
            estimated_depth=None,
            confidence="low",
            note="Local well data recommended for accurate water table depth",
        )


def estimate_terrain_aquifer_depth(
    elevation_m: Optional[float],
    slope_deg: Optional[float],
    recharge_efficiency: float,
) -> Optional[float]:
    """Aquifer depth guess from terrain, or None without elevation and slope."""
    if elevation_m is None or slope_deg is None:
        return None
    depth = TERRAIN_BASE_DEPTH + elevation_m / 100 + 2 * slope_deg
    if recharge_efficiency > TERRAIN_RECHARGE_EFFICIENCY:
        depth -= TERRAIN_RECHARGE_BONUS
    return max(DEPTH_FLOOR, depth)


def calculate_depth_ranges(
    aquifer_depth: Optional[float],
    confining_layers: list[dict],
    recharge_efficiency: float,
) -> tuple[float, float, float]:
    """Return (minimum, recommended, maximum) drilling depths in metres."""
    minimum, maximum = DEFAULT_MINIMUM_DEPTH, DEFAULT_MAXIMUM_DEPTH
    recommended = None

    if aquifer_depth is not None:
        recommended = aquifer_depth
        minimum = max(minimum, aquifer_depth - AQUIFER_BELOW)
        maximum = min(maximum, aquifer_depth + AQUIFER_ABOVE)

    for layer in confining_layers:
        if layer["estimated_depth"] > minimum:
            minimum = layer["estimated_depth"] + CONFINING_MARGIN

    if recharge_efficiency > HIGH_RECHARGE_EFFICIENCY:
        minimum = max(DEPTH_FLOOR, minimum - RECHARGE_RELAXATION)

    if recommended is None:
        recommended = minimum + (maximum - minimum) * RECOMMENDED_FRACTION

    minimum = clamp(minimum, DEPTH_FLOOR, DEPTH_CEILING)
    maximum = clamp(max(maximum, minimum), DEPTH_FLOOR, DEPTH_CEILING)
    recommended = clamp(recommended, minimum, maximum)
    return minimum, recommended, maximum


def calculate_depth_confidence(minimum: float, maximum: float, has_geology: bool) -> float:
    confidence = BASE_CONFIDENCE
    if has_geology:
        confidence += 0.2

    spread = maximum - minimum
    if spread < NARROW_SPREAD:
        confidence += 0.2
    elif spread > WIDE_SPREAD:
        confidence -= 0.2

    return clamp(confidence, 0.0, 1.0)


def identify_depth_limitations(confidence: float) -> list[str]:
    limitations = list(STANDARD_LIMITATIONS)
    if confidence < LOW_CONFIDENCE:
        limitations.extend(LOW_CONFIDENCE_LIMITATIONS)
    return limitations


def estimate_depth(
    geological: GeologicalFactors,
    water_table: WaterTableEstimate,
    recharge: RechargePatterns,
    elevation_m: Optional[float] = None,
    slope_deg: Optional[float] = None,
    has_geology: bool = False,
) -> DepthEstimate:
    """Estimate the drilling depth range and its confidence.

    The aquifer depth comes from, in order of preference: a water-bearing
    formation, the water table estimate, then terrain.

    Args:
        geological: Factors derived from the site's formations
        water_table: Water table estimate (depth may be unknown)
        recharge: Recharge patterns from the precipitation analysis
        elevation_m: Mean elevation of the site, if known
        slope_deg: Mean slope of the site, if known
        has_geology: Whether any geological formations were found

    Returns:
        DepthEstimate whose range satisfies
        20 <= minimum <= recommended <= maximum <= 250
    """
    aquifer_depth = geological.estimated_aquifer_depth
    if aquifer_depth is None:
        aquifer_depth = water_table.estimated_depth
    if aquifer_depth is None:
        aquifer_depth = estimate_terrain_aquifer_depth(
            elevation_m, slope_deg, recharge.efficiency
        )

    minimum, recommended, maximum = calculate_depth_ranges(
        aquifer_depth, geological.confining_layers, recharge.efficiency
    )
    confidence = calculate_depth_confidence(minimum, maximum, has_geology)
    logger.info(
        f"Depth range {minimum:.0f}-{maximum:.0f} m, recommended {recommended:.0f} m "
        f"(confidence {confidence:.2f})"
    )

    return DepthEstimate(
        depth=DepthRange(
            minimum=minimum,
            recommended=recommended,
            maximum=maximum,
            confidence=confidence,
        ),
        geological=geological,
        water_table=water_table,
        recharge={
            "efficiency": recharge.efficiency,
            "threshold": recharge.threshold,
            "events": len(recharge.events),
            "yearly": {str(year): total for year, total in recharge.yearly.items()},
        },
        limitations=identify_depth_limitations(confidence),
    )
