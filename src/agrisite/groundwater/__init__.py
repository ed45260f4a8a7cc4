"""Groundwater potential, borehole success probability and depth estimation."""

from agrisite.groundwater.depth import UnavailableWaterTable, WaterTableSource, estimate_depth
from agrisite.groundwater.earth_engine import (
    EarthEngineSource,
    PotentialImage,
    TerrainSource,
    initialize_earth_engine,
)
from agrisite.groundwater.geology import (
    LithologySource,
    MacrostratLithology,
    calculate_geology_score,
)
from agrisite.groundwater.models import (
    DepthEstimate,
    DepthRange,
    GeologicalFactors,
    GeologicalFormation,
    GroundwaterAssessment,
    WaterTableEstimate,
)
from agrisite.groundwater.scoring import GroundwaterScorer
from agrisite.groundwater.weights import (
    BASE_WEIGHTS,
    adjust_weights,
    calculate_dynamic_weights,
    calculate_success_probability,
)

__all__ = [
    "BASE_WEIGHTS",
    "DepthEstimate",
    "DepthRange",
    "EarthEngineSource",
    "GeologicalFactors",
    "GeologicalFormation",
    "GroundwaterAssessment",
    "GroundwaterScorer",
    "LithologySource",
    "MacrostratLithology",
    "PotentialImage",
    "TerrainSource",
    "UnavailableWaterTable",
    "WaterTableEstimate",
    "WaterTableSource",
    "adjust_weights",
    "calculate_dynamic_weights",
    "calculate_geology_score",
    "calculate_success_probability",
    "estimate_depth",
    "initialize_earth_engine",
]
