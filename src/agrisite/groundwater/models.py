"""Data models for groundwater scoring and depth estimation."""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class GeologicalFormation:
    """A rock unit under the site.

    Attributes:
        type: Canonical rock type (e.g. 'sandstone') or the raw lithology word
        name: Unit name reported by the lithology service
        depth_estimate: Typical depth to this formation in metres, if known
        structural_features: Fracture/fault description, if any
        source: Where the type came from ('lithology' or 'overlay')
    """

    type: str
    name: Optional[str] = None
    depth_estimate: Optional[float] = None
    structural_features: Optional[str] = None
    source: str = "lithology"


@dataclass
class GeologicalFactors:
    estimated_aquifer_depth: Optional[float] = None
    rock_hardness: Optional[float] = None
    fracture_zones: list[dict[str, Any]] = field(default_factory=list)
    confining_layers: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class WaterTableEstimate:
    estimated_depth: Optional[float]
    confidence: str
    note: str


@dataclass
class DepthRange:
    """Drilling depth range in metres.

    Invariant: 20 <= minimum <= recommended <= maximum <= 250 and
    0 <= confidence <= 1.
    """

    minimum: float
    recommended: float
    maximum: float
    confidence: float


@dataclass
class DepthEstimate:
    depth: DepthRange
    geological: GeologicalFactors
    water_table: WaterTableEstimate
    recharge: dict[str, Any]
    limitations: list[str]

    def to_dict(self) -> dict:
        return {
            "minimum_depth": self.depth.minimum,
            "maximum_depth": self.depth.maximum,
            "recommended_depth": self.depth.recommended,
            "confidence_score": self.depth.confidence,
            "factors": {
                "geological": asdict(self.geological),
                "water_table": asdict(self.water_table),
                "precipitation": self.recharge,
            },
            "limitations": list(self.limitations),
        }


@dataclass
class GroundwaterAssessment:
    """Output of groundwater scoring for one polygon."""

    weights: dict[str, float]
    statistics: dict[str, Optional[float]]
    formations: list[GeologicalFormation]
    geology_score: float
    success_probability: float
    depth: DepthEstimate
    potential_map_url: Optional[str]

    def to_dict(self) -> dict:
        return {
            "weights": dict(self.weights),
            "statistics": dict(self.statistics),
            "geological_formations": [asdict(f) for f in self.formations],
            "geology_score": self.geology_score,
            "success_probability": self.success_probability,
            "depth": self.depth.to_dict(),
            "potential_map_url": self.potential_map_url,
        }
