"""Groundwater scoring for one polygon.

Combines terrain statistics, lithology and precipitation reliability into a
potential map, a borehole success probability and a drilling depth range.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from agrisite.exceptions import DataInsufficient, UpstreamError
from agrisite.gateway import RemoteDataGateway, RequestContext
from agrisite.groundwater.depth import UnavailableWaterTable, WaterTableSource, estimate_depth
from agrisite.groundwater.earth_engine import NORMALISATION, TerrainSource
from agrisite.groundwater.geology import (
    LithologySource,
    MacrostratLithology,
    analyze_geological_depth,
    calculate_geology_score,
)
from agrisite.groundwater.models import GeologicalFormation, GroundwaterAssessment
from agrisite.groundwater.weights import calculate_dynamic_weights, calculate_success_probability
from agrisite.precipitation.models import PrecipMetrics
from agrisite.utils.geo import Polygon

logger = logging.getLogger(__name__)


class GroundwaterScorer:
    """Score a polygon for borehole siting.

    Args:
        gateway: Gateway for lithology lookups
        terrain: Terrain statistics and potential-map provider
        lithology: Formation lookup (Macrostrat by default)
        water_table: Water table source (unavailable by default)

    Example:
        >>> scorer = GroundwaterScorer(gateway, EarthEngineSource(gateway))
        >>> assessment = scorer.score(polygon, metrics)
        >>> assessment.depth.depth.recommended
        98.0
    """

    def __init__(
        self,
        gateway: RemoteDataGateway,
        terrain: TerrainSource,
        lithology: Optional[LithologySource] = None,
        water_table: Optional[WaterTableSource] = None,
    ):
        self.gateway = gateway
        self.terrain = terrain
        self.lithology = lithology or MacrostratLithology(gateway)
        self.water_table = water_table or UnavailableWaterTable()

    def _formations(
        self, polygon: Polygon, context: Optional[RequestContext]
    ) -> list[GeologicalFormation]:
        centroid = polygon.centroid
        if centroid is None:
            return []
        try:
            return self.lithology.formations(centroid, context)
        except UpstreamError as e:
            if context is not None and context.cancelled:
                raise
            logger.warning(f"Lithology lookup failed, scoring without formations: {e}")
            return []

    def score(
        self,
        polygon: Polygon,
        metrics: PrecipMetrics,
        context: Optional[RequestContext] = None,
    ) -> GroundwaterAssessment:
        """Run groundwater scoring.

        Args:
            polygon: Field polygon
            metrics: Completed precipitation analysis for the polygon centroid
            context: Request-scoped cancellation context

        Returns:
            GroundwaterAssessment with weights, statistics, scores and depth range

        Raises:
            DataInsufficient: If no terrain imagery covers the polygon
            UpstreamError: If Earth Engine fails after retries
        """
        reliability = metrics.reliability.overall
        weights = calculate_dynamic_weights(reliability)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="groundwater") as executor:
            stats_future = executor.submit(self.terrain.region_statistics, polygon, context)
            formations_future = executor.submit(self._formations, polygon, context)
            stats = stats_future.result()
            formations = formations_future.result()

        if all(stats.get(name) is None for name in NORMALISATION):
            raise DataInsufficient("No terrain imagery covers the polygon", context="groundwater")

        geology_score = calculate_geology_score(formations, stats)
        image = self.terrain.build_potential_image(polygon, weights, geology_score, reliability)
        map_url = self.terrain.thumbnail_url(image, context)

        probability = calculate_success_probability(
            stats, geology_score, reliability, has_centroid=polygon.centroid is not None
        )

        depth = estimate_depth(
            analyze_geological_depth(formations),
            self.water_table.estimate(polygon, context),
            metrics.recharge,
            elevation_m=stats.get("elevation_m"),
            slope_deg=stats.get("slope_deg"),
            has_geology=bool(formations),
        )

        logger.info(
            f"Groundwater score: geology {geology_score:.2f}, "
            f"success probability {probability:.1f}%, {len(formations)} formations"
        )

        return GroundwaterAssessment(
            weights=weights,
            statistics=stats,
            formations=formations,
            geology_score=geology_score,
            success_probability=probability,
            depth=depth,
            potential_map_url=map_url,
        )
