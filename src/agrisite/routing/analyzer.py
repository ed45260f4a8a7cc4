"""Route and hazard analysis for a field location.

Workflow:
1. One overlay query for primary/secondary/tertiary roads, cities and towns
2. Nearest vertex per road class (concurrently on the worker pool)
3. Routes from the field to the nearest primary road and, when closer, to
   the nearest secondary and tertiary roads
4. Hazard overlay along each route, then road quality and composite risk
5. Distance-weighted accessibility score penalised by critical-segment risk

Example:
    >>> analyzer = RouteHazardAnalyzer(gateway)
    >>> report = analyzer.analyze(Point(-17.8292, 31.0522))
    >>> report.to_dict()["overall_accessibility_score"]
    0.81
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Iterable, Optional

from agrisite.exceptions import UpstreamError
from agrisite.gateway import RemoteDataGateway, RequestContext
from agrisite.gateway.overlay import overlay_request
from agrisite.routing.hazards import hazard_request, hazard_set, risk_level
from agrisite.routing.models import (
    CRITICAL_SEGMENT,
    HAZARD_KEYS,
    PLACE_KINDS,
    ROAD_CLASSES,
    AccessibilityReport,
    ReferencePlace,
    RoadAnalysis,
)
from agrisite.routing.overpass import (
    NO_DISTANCE,
    SpatialData,
    build_spatial_query,
    nearest_place_distance,
    nearest_reference_place,
    nearest_vertex,
    parse_spatial_data,
    spatial_cache_key,
)
from agrisite.routing.routes import (
    analyze_route_quality,
    route_coordinates,
    route_feature,
    route_request,
)
from agrisite.utils.geo import Point, validate_coordinates

logger = logging.getLogger(__name__)

SCORE_WEIGHTS = {
    "primary": 0.4,
    "secondary": 0.2,
    "tertiary": 0.15,
    "city": 0.15,
    "town": 0.1,
}
NORMALISING_DISTANCE_M = 10_000
HAZARD_PENALTY = 0.8
MIN_SCORE_FRACTION = 0.2

NO_PRIMARY_NOTE = "No primary road within search radius; hazards default to zero risk"


def default_worker_count() -> int:
    return max(1, (os.cpu_count() or 1) - 1)


def accessibility_score(distances: dict[str, float], critical_risk: float) -> tuple[float, float]:
    """Return (penalised, unpenalised) accessibility scores.

    Each distance d > 0 contributes weight * min(1, 10000 / d). The hazard
    penalty never takes the score below 20% of the unpenalised value.
    """
    unpenalised = 0.0
    for target, weight in SCORE_WEIGHTS.items():
        distance = distances[f"distance_to_{target}"]
        if distance > 0:
            unpenalised += weight * min(1.0, NORMALISING_DISTANCE_M / distance)
    factor = max(MIN_SCORE_FRACTION, 1 - HAZARD_PENALTY * critical_risk)
    return unpenalised * factor, unpenalised


class RouteHazardAnalyzer:
    """Accessibility analysis for a field location.

    Args:
        gateway: Gateway for overlay and routing calls
        max_workers: Worker pool size (defaults to cpu_count - 1, at least 1)
    """

    def __init__(self, gateway: RemoteDataGateway, max_workers: Optional[int] = None):
        self.gateway = gateway
        self.settings = gateway.settings
        self.max_workers = max_workers or default_worker_count()

    def query_spatial(self, point: Point, context: Optional[RequestContext] = None) -> SpatialData:
        payload = self.gateway.fetch(
            overlay_request(
                self.settings, build_spatial_query(point), cache_key=spatial_cache_key(point)
            ),
            context,
        )
        return parse_spatial_data(payload)

    def _analyze_route(
        self,
        origin: Point,
        target: Point,
        distance: float,
        context: Optional[RequestContext],
    ) -> RoadAnalysis:
        """Route to ``target``, then hazards and road quality along it."""
        route = self.gateway.fetch(route_request(self.settings, origin, target), context)
        feature = route_feature(route)
        coordinates = route_coordinates(feature)
        if not coordinates:
            coordinates = [[origin.lon, origin.lat], [target.lon, target.lat]]

        hazards = self.gateway.fetch(hazard_request(self.settings, coordinates), context)
        return RoadAnalysis(
            distance=distance,
            hazards=hazard_set(hazards, self.settings.hazard_weights),
            quality=analyze_route_quality(feature),
        )

    def analyze(
        self,
        point: Point,
        reference_places: Iterable[ReferencePlace] = (),
        context: Optional[RequestContext] = None,
    ) -> AccessibilityReport:
        """Analyze accessibility of ``point``.

        Args:
            point: Field location (polygon centroid)
            reference_places: Caller-supplied population centres
            context: Request-scoped cancellation context

        Returns:
            AccessibilityReport; missing roads give -1 distances and zero-risk hazards

        Raises:
            UpstreamError: If the spatial overlay query fails
        """
        validate_coordinates(point.lat, point.lon)
        references = list(reference_places)
        notes: list[str] = []

        spatial = self.query_spatial(point, context)

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="routing"
        ) as executor:
            nearest = dict(
                zip(
                    ROAD_CLASSES,
                    executor.map(
                        lambda road_class: nearest_vertex(point, spatial.roads[road_class]),
                        ROAD_CLASSES,
                    ),
                )
            )

            distances = {
                f"distance_to_{road_class}": (
                    nearest[road_class][1] if nearest[road_class] else NO_DISTANCE
                )
                for road_class in ROAD_CLASSES
            }
            for kind in PLACE_KINDS:
                distances[f"distance_to_{kind}"] = nearest_place_distance(
                    point, spatial.places[kind], references, kind=kind
                )

            primary = nearest["primary"]
            futures = {}
            if primary is not None:
                futures[CRITICAL_SEGMENT] = executor.submit(
                    self._analyze_route, point, primary[0], primary[1], context
                )
                for road_class in ("secondary", "tertiary"):
                    candidate = nearest[road_class]
                    if candidate is not None and candidate[1] < primary[1]:
                        futures[road_class] = executor.submit(
                            self._analyze_route, point, candidate[0], candidate[1], context
                        )

            results: dict[str, RoadAnalysis] = {}
            for key, future in futures.items():
                try:
                    results[key] = future.result()
                except UpstreamError as e:
                    if context is not None and context.cancelled:
                        raise
                    logger.warning(f"Route analysis for {key} failed: {e}")
                    notes.append(f"{key} route analysis failed: {e.message}")

        critical = results.get(CRITICAL_SEGMENT)
        if critical is None:
            note = NO_PRIMARY_NOTE if primary is None else "Critical segment analysis failed"
            notes.append(note)
            critical = RoadAnalysis(distance=distances["distance_to_primary"], note=note)

        roads = {CRITICAL_SEGMENT: critical}
        for key in HAZARD_KEYS[1:]:
            if key in results:
                roads[key] = results[key]
            else:
                roads[key] = replace(critical, reused_from=CRITICAL_SEGMENT)

        risk = critical.hazards.composite_risk
        score, unpenalised = accessibility_score(distances, risk)
        report = AccessibilityReport(
            distances=distances,
            roads=roads,
            overall_score=score,
            unpenalised_score=unpenalised,
            risk_level=risk_level(risk),
            nearest_reference_place=nearest_reference_place(point, references),
            notes=notes,
        )
        logger.info(
            f"Accessibility at ({point.lat:.4f}, {point.lon:.4f}): score {score:.3f}, "
            f"critical risk {risk:.2f} ({report.risk_level})"
        )
        return report
