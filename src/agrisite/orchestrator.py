"""Site analysis orchestration.

Runs precipitation analysis, route/hazard analysis and reverse geocoding
concurrently from the polygon centroid, chains groundwater scoring after
precipitation completes, and assembles the combined site report.

Example:
    >>> orchestrator = build_orchestrator(Settings.from_env())
    >>> report = orchestrator.analyze_site(feature)
    >>> report.to_dict()["success_probability"]
    62.4
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional, Union

from agrisite.config import Settings
from agrisite.exceptions import AgrisiteError, PartialFailure, ValidationError
from agrisite.gateway import (
    Endpoint,
    GatewayRequest,
    RemoteDataGateway,
    RequestContext,
    RequestState,
)
from agrisite.gateway.schemas import ReverseGeoResponse
from agrisite.groundwater import (
    EarthEngineSource,
    GroundwaterAssessment,
    GroundwaterScorer,
    initialize_earth_engine,
)
from agrisite.precipitation import PrecipitationAnalyzer, PrecipMetrics
from agrisite.routing import AccessibilityReport, ReferencePlace, RouteHazardAnalyzer
from agrisite.utils.geo import Point, Polygon

logger = logging.getLogger(__name__)

ARM_WORKERS = 3


@dataclass
class SiteReport:
    """Combined site assessment for one polygon.

    Attributes:
        polygon: The validated field polygon
        precipitation: Precipitation metrics for the centroid
        groundwater: Groundwater assessment (map URL, probability, depth)
        accessibility: One report for the centroid, or empty if the arm failed
        location: Reverse-geocoded place, if available
        partial_failures: Optional arms that failed, as error dicts
        timestamp: Time the report was assembled (ISO-8601, UTC)
    """

    polygon: Polygon
    precipitation: PrecipMetrics
    groundwater: GroundwaterAssessment
    accessibility: list[AccessibilityReport] = field(default_factory=list)
    location: Optional[dict[str, Any]] = None
    partial_failures: list[dict[str, Any]] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def potential_map_url(self) -> Optional[str]:
        return self.groundwater.potential_map_url

    @property
    def success_probability(self) -> float:
        return self.groundwater.success_probability

    def to_dict(self) -> dict:
        return {
            "polygon": self.polygon.to_geojson(),
            "potential_map_url": self.potential_map_url,
            "success_probability": self.success_probability,
            "depth": self.groundwater.depth.to_dict(),
            "groundwater": self.groundwater.to_dict(),
            "precipitation": self.precipitation.to_dict(),
            "accessibility": [report.to_dict() for report in self.accessibility],
            "location": self.location,
            "partial_failures": list(self.partial_failures),
            "timestamp": self.timestamp,
        }


class SiteOrchestrator:
    """Entry point composing the analyzers for a single polygon.

    Args:
        gateway: Shared gateway (owns the process-wide caches)
        precipitation: Precipitation analyzer
        groundwater: Groundwater scorer
        routing: Route and hazard analyzer
        reverse_geocode: Whether to look up a location label
    """

    def __init__(
        self,
        gateway: RemoteDataGateway,
        precipitation: PrecipitationAnalyzer,
        groundwater: GroundwaterScorer,
        routing: RouteHazardAnalyzer,
        reverse_geocode: bool = True,
    ):
        self.gateway = gateway
        self.precipitation = precipitation
        self.groundwater = groundwater
        self.routing = routing
        self.reverse_geocode = reverse_geocode

    def locate(self, point: Point, context: Optional[RequestContext] = None) -> dict[str, Any]:
        """Reverse geocode ``point`` into a display name and address."""
        payload = self.gateway.fetch(
            GatewayRequest(
                endpoint=Endpoint.REVERSE_GEO,
                url=self.gateway.settings.reverse_geo_url,
                params={
                    "lat": point.lat,
                    "lon": point.lon,
                    "format": "json",
                    "accept-language": "en",
                },
                schema=ReverseGeoResponse,
            ),
            context,
        )
        location = ReverseGeoResponse.model_validate(payload)
        return {"display_name": location.display_name, "address": location.address}

    def _accessibility(
        self,
        point: Point,
        references: list[ReferencePlace],
        context: RequestContext,
    ) -> list[AccessibilityReport]:
        return [self.routing.analyze(point, references, context)]

    def analyze_site(
        self,
        polygon: Union[Polygon, dict],
        reference_places: Optional[Iterable[Union[ReferencePlace, dict]]] = None,
        context: Optional[RequestContext] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        source: str = "unspecified",
    ) -> SiteReport:
        """Analyze a field polygon.

        Args:
            polygon: Polygon, or a GeoJSON Feature/Polygon dict
            reference_places: Population centres to measure distances to
            context: Request-scoped cancellation context (created if omitted)
            start_date: Start of the precipitation history window
            end_date: End of the precipitation history window
            source: Label recorded on the polygon when it is given as GeoJSON

        Returns:
            SiteReport; identical inputs give identical reports apart from timestamp

        Raises:
            ValidationError: If the polygon or reference places are invalid
            AgrisiteError: If precipitation analysis or groundwater scoring fails
        """
        context = context or RequestContext()

        try:
            if not isinstance(polygon, Polygon):
                polygon = Polygon.from_geojson(polygon, source=source)
            references = [
                p if isinstance(p, ReferencePlace) else ReferencePlace.from_dict(p)
                for p in reference_places or ()
            ]
            if start_date and end_date and start_date >= end_date:
                raise ValidationError(
                    f"start_date {start_date} must be before end_date {end_date}",
                    context="dates",
                )
        except ValidationError:
            context.transition(RequestState.FAILED_VALIDATION)
            raise
        context.transition(RequestState.VALIDATED)

        point = polygon.centroid or polygon.bounds.center
        partial_failures: list[dict[str, Any]] = []

        with ThreadPoolExecutor(max_workers=ARM_WORKERS, thread_name_prefix="site") as executor:
            precip_future = executor.submit(
                self.precipitation.analyze,
                point.lat,
                point.lon,
                context,
                start=start_date,
                end=end_date,
            )
            access_future = executor.submit(self._accessibility, point, references, context)
            location_future = (
                executor.submit(self.locate, point, context) if self.reverse_geocode else None
            )
            context.transition(RequestState.FETCHING)

            try:
                metrics = precip_future.result()
                context.transition(RequestState.ANALYSING)
                groundwater = self.groundwater.score(polygon, metrics, context)
            except AgrisiteError as e:
                logger.error(f"[{context.request_id}] Site analysis failed ({e.context}): {e}")
                context.cancel()
                context.transition(RequestState.FAILED_REMOTE)
                raise

            try:
                accessibility = access_future.result()
            except Exception as e:
                if context.cancelled:
                    raise
                logger.warning(f"[{context.request_id}] Accessibility analysis failed: {e}")
                accessibility = []
                partial_failures.append(
                    PartialFailure(str(e), context="accessibility", original=e).to_dict()
                )

            location = None
            if location_future is not None:
                try:
                    location = location_future.result()
                except AgrisiteError as e:
                    if context.cancelled:
                        raise
                    logger.warning(f"[{context.request_id}] Reverse geocoding failed: {e}")
                    partial_failures.append(
                        PartialFailure(str(e), context="location", original=e).to_dict()
                    )

        report = SiteReport(
            polygon=polygon,
            precipitation=metrics,
            groundwater=groundwater,
            accessibility=accessibility,
            location=location,
            partial_failures=partial_failures,
        )
        context.transition(RequestState.ASSEMBLED)
        logger.info(
            f"[{context.request_id}] Site report assembled: "
            f"success probability {report.success_probability:.1f}%, "
            f"{len(partial_failures)} partial failure(s)"
        )
        return report

    def close(self) -> None:
        self.gateway.close()


def build_orchestrator(
    settings: Optional[Settings] = None, initialize: bool = True
) -> SiteOrchestrator:
    """Wire the gateway, analyzers and Earth Engine source from settings.

    Raises:
        ConfigurationError: If Earth Engine credentials cannot be loaded
    """
    settings = settings or Settings.from_env()
    if initialize:
        initialize_earth_engine(settings)

    gateway = RemoteDataGateway(settings)
    return SiteOrchestrator(
        gateway=gateway,
        precipitation=PrecipitationAnalyzer(gateway),
        groundwater=GroundwaterScorer(gateway, EarthEngineSource(gateway)),
        routing=RouteHazardAnalyzer(gateway),
    )
