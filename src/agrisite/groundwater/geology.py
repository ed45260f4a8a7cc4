"""Lithology lookup and geology scoring.

Formations come from the Macrostrat geologic-units service for the polygon
centroid. Units whose rock type is not in :data:`ROCK_PROPERTIES` can be
reclassified from nearby OpenStreetMap ``geological``/``rock`` tags.
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import Mapping, Optional, Protocol

from agrisite.gateway import Endpoint, GatewayRequest, RemoteDataGateway, RequestContext
from agrisite.gateway.overlay import overlay_request
from agrisite.gateway.schemas import LithologyResponse
from agrisite.groundwater.models import GeologicalFactors, GeologicalFormation
from agrisite.utils.geo import Point
from agrisite.utils.stats import clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RockProperties:
    mohs_hardness: float
    compressive_strength_mpa: float
    weight: float


ROCK_PROPERTIES = {
    "sandstone": RockProperties(4, 70, 0.8),
    "limestone": RockProperties(5, 80, 0.75),
    "granite": RockProperties(7, 200, 0.4),
    "shale": RockProperties(3, 40, 0.3),
    "clay": RockProperties(1, 1, 0.2),
    "metamorphic": RockProperties(6, 150, 0.45),
    "plutonic": RockProperties(7, 180, 0.35),
}
UNKNOWN_ROCK_SCORE = 0.5
DEFAULT_MOHS_HARDNESS = 5.0

# Typical depth ranges (metres) to water-bearing zones by formation
FORMATION_DEPTHS = {
    "sandstone": (30, 150),
    "limestone": (40, 200),
    "granite": (60, 250),
    "shale": (20, 100),
}

CONFINING_TYPES = {"clay", "shale", "silt"}
AQUIFER_TYPES = {"sandstone", "limestone", "gravel"}
KNOWN_TYPES = set(ROCK_PROPERTIES) | CONFINING_TYPES | AQUIFER_TYPES

FRACTURE_PATTERN = re.compile(r"\b(fault\w*|fractur\w*|joint\w*)\b", re.IGNORECASE)

GEOLOGY_SUBWEIGHTS = {
    "aquifer": 0.4,
    "hardness": 0.2,
    "fractures": 0.2,
    "elevation": 0.1,
    "slope": 0.1,
}

GEOLOGY_TAG_RADIUS_M = 5000


def estimate_depth_from_formation(rock_type: str) -> Optional[float]:
    """Midpoint of the typical depth range for a formation type."""
    bounds = FORMATION_DEPTHS.get(rock_type.lower())
    if bounds is None:
        return None
    return (bounds[0] + bounds[1]) / 2


def is_confining_layer(formation: GeologicalFormation) -> bool:
    return formation.type.lower() in CONFINING_TYPES


def is_aquifer(formation: GeologicalFormation) -> bool:
    return formation.type.lower() in AQUIFER_TYPES


def rock_score(rock_type: str) -> float:
    props = ROCK_PROPERTIES.get(rock_type.lower())
    return props.weight if props else UNKNOWN_ROCK_SCORE


def match_rock_type(text: str) -> list[str]:
    """Known rock types mentioned in free text, in order of appearance."""
    lowered = text.lower()
    found = [(lowered.find(t), t) for t in KNOWN_TYPES if re.search(rf"\b{t}", lowered)]
    return [t for _, t in sorted(found)]


def parse_lithology(payload: dict) -> list[GeologicalFormation]:
    """Turn a Macrostrat response into formations, one per rock type per unit."""
    formations = []
    for unit in payload.get("success", {}).get("data", []):
        lith = unit.get("lith") or ""
        descrip = unit.get("descrip") or ""
        fracture = FRACTURE_PATTERN.search(descrip)
        structural = fracture.group(1).lower() if fracture else None

        types = match_rock_type(lith)
        if not types:
            words = re.findall(r"[a-z]+", lith.lower())
            if not words:
                continue
            types = [words[-1]]

        for rock_type in types:
            formations.append(
                GeologicalFormation(
                    type=rock_type,
                    name=unit.get("name"),
                    depth_estimate=estimate_depth_from_formation(rock_type),
                    structural_features=structural,
                )
            )
    return formations


def reclassify_formations(
    formations: list[GeologicalFormation], overlay_tags: list[str]
) -> list[GeologicalFormation]:
    """Replace unknown formation types with the first known type from overlay tags."""
    candidates = [t for tag in overlay_tags for t in match_rock_type(tag)]
    if not candidates:
        return formations

    replacement = candidates[0]
    result = []
    for formation in formations:
        if formation.type in KNOWN_TYPES:
            result.append(formation)
        else:
            logger.info(f"Reclassified formation '{formation.type}' as '{replacement}'")
            result.append(
                replace(
                    formation,
                    type=replacement,
                    depth_estimate=estimate_depth_from_formation(replacement),
                    source="overlay",
                )
            )
    return result


def analyze_geological_depth(formations: list[GeologicalFormation]) -> GeologicalFactors:
    """Aquifer depth, hardness, fracture zones and confining layers from formations."""
    factors = GeologicalFactors()
    for formation in formations:
        depth = formation.depth_estimate

        if is_confining_layer(formation) and depth is not None:
            factors.confining_layers.append({"type": formation.type, "estimated_depth": depth})

        if formation.structural_features:
            factors.fracture_zones.append(
                {"depth": depth, "type": formation.structural_features}
            )

        if is_aquifer(formation) and depth is not None:
            factors.estimated_aquifer_depth = depth

        props = ROCK_PROPERTIES.get(formation.type.lower())
        factors.rock_hardness = props.mohs_hardness if props else DEFAULT_MOHS_HARDNESS

    return factors


def calculate_geology_score(
    formations: list[GeologicalFormation], stats: Mapping[str, Optional[float]]
) -> float:
    """Weighted geology score in [0, 1].

    Sub-scores: aquifer presence, rock hardness (table weight), fracture
    zones, and low elevation and slope (1 - normalised value). Missing terrain
    statistics score 0.5.
    """
    aquifer = 1.0 if any(is_aquifer(f) for f in formations) else 0.0
    if formations:
        hardness = sum(rock_score(f.type) for f in formations) / len(formations)
    else:
        hardness = UNKNOWN_ROCK_SCORE
    fractures = 1.0 if any(f.structural_features for f in formations) else 0.0

    elevation = stats.get("elevation")
    slope = stats.get("slope")
    parts = {
        "aquifer": aquifer,
        "hardness": hardness,
        "fractures": fractures,
        "elevation": 1 - elevation if elevation is not None else 0.5,
        "slope": 1 - slope if slope is not None else 0.5,
    }
    score = sum(parts[key] * weight for key, weight in GEOLOGY_SUBWEIGHTS.items())
    return clamp(score / sum(GEOLOGY_SUBWEIGHTS.values()), 0.0, 1.0)


class LithologySource(Protocol):
    """Capability for looking up formations beneath a point."""

    def formations(
        self, point: Point, context: Optional[RequestContext] = None
    ) -> list[GeologicalFormation]:
        ...


class MacrostratLithology:
    """Formations from the Macrostrat geologic-units map service.

    Unknown rock types are reclassified from nearby overlay geology tags.
    """

    def __init__(self, gateway: RemoteDataGateway):
        self.gateway = gateway

    def formations(
        self, point: Point, context: Optional[RequestContext] = None
    ) -> list[GeologicalFormation]:
        payload = self.gateway.fetch(
            GatewayRequest(
                endpoint=Endpoint.LITHOLOGY,
                url=self.gateway.settings.lithology_url,
                params={"lat": point.lat, "lng": point.lon, "format": "json"},
                schema=LithologyResponse,
            ),
            context,
        )
        formations = parse_lithology(payload)
        if not formations:
            logger.warning(f"No lithology units at ({point.lat:.4f}, {point.lon:.4f})")
            return []

        if any(f.type not in KNOWN_TYPES for f in formations):
            formations = reclassify_formations(formations, self.overlay_tags(point, context))
        return formations

    def overlay_tags(self, point: Point, context: Optional[RequestContext] = None) -> list[str]:
        """Values of ``geological``/``rock`` tags on features near ``point``."""
        query = (
            "[out:json][timeout:25];("
            f'nwr["geological"](around:{GEOLOGY_TAG_RADIUS_M},{point.lat},{point.lon});'
            f'nwr["rock"](around:{GEOLOGY_TAG_RADIUS_M},{point.lat},{point.lon});'
            ");out tags;"
        )
        payload = self.gateway.fetch(
            overlay_request(
                self.gateway.settings,
                query,
                cache_key=f"geology_{point.lat:.4f}_{point.lon:.4f}",
            ),
            context,
        )
        tags = []
        for element in payload["elements"]:
            for key in ("geological", "rock"):
                if key in element["tags"]:
                    tags.append(element["tags"][key])
        return tags
