"""Earth Engine terrain and climate layers for groundwater scoring.

All server-side evaluation (``getInfo``, ``getThumbURL``) is issued as a
gateway ``earth-engine`` operation so it shares rate limiting, retries and
timeouts with the HTTP upstreams.

Example:
    >>> initialize_earth_engine(Settings.from_env())
    >>> source = EarthEngineSource(gateway)
    >>> source.region_statistics(polygon)
    {'elevation': 0.48, 'slope': 0.05, ...}
"""

import json
import logging
import os
from datetime import date, timedelta
from typing import Any, Callable, Mapping, Optional, Protocol

import ee

from agrisite.config import Settings
from agrisite.exceptions import (
    ConfigurationError,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamTerminal,
    UpstreamTimeout,
)
from agrisite.gateway import Endpoint, GatewayRequest, RemoteDataGateway, RequestContext
from agrisite.gateway.schemas import RegionStatsResponse, ThumbnailResponse
from agrisite.utils.geo import Polygon
from agrisite.utils.stats import clamp

logger = logging.getLogger(__name__)

ELEVATION_IMAGE = "USGS/SRTMGL1_003"
LANDCOVER_COLLECTION = "MODIS/061/MCD12Q1"
SOIL_MOISTURE_COLLECTION = "NASA_USDA/HSL/SMAP10KM_soil_moisture"
TEMPERATURE_COLLECTION = "MODIS/061/MOD11A1"

# (band, scale factor) per collection-backed layer
COLLECTION_BANDS = {
    "landcover": (LANDCOVER_COLLECTION, "LC_Type1", 1.0),
    "soil_moisture": (SOIL_MOISTURE_COLLECTION, "ssm", 1.0),
    "temperature": (TEMPERATURE_COLLECTION, "LST_Day_1km", 0.02),
}

# Normalisation ranges (unitScale low, high)
NORMALISATION = {
    "elevation": (0, 3000),
    "slope": (0, 45),
    "landcover": (1, 17),
    "soil_moisture": (0, 1),
    "temperature": (250, 350),
}

LOOKBACK_DAYS = 365
LANDCOVER_LOOKBACK_DAYS = 3 * 365
STATS_SCALE = 250  # metres
MAX_PIXELS = 1e13
THUMBNAIL_DIMENSIONS = 512
POTENTIAL_PALETTE = ["d7191c", "fdae61", "ffffbf", "a6d96a", "1a9641"]

RATE_LIMIT_MARKERS = ("too many concurrent", "quota", "rate limit")
TIMEOUT_MARKERS = ("timed out", "deadline", "timeout")


def initialize_earth_engine(settings: Settings) -> None:
    """Authenticate with a service account and initialise Earth Engine.

    ``GEE_PRIVATE_KEY`` may hold the JSON key itself or a path to the key file.

    Raises:
        ConfigurationError: If credentials are missing or rejected
    """
    if not settings.gee_client_email or not settings.gee_private_key:
        raise ConfigurationError(
            "GEE_CLIENT_EMAIL and GEE_PRIVATE_KEY must be set", context="earth-engine"
        )

    key_data = settings.gee_private_key
    if os.path.isfile(key_data):
        with open(key_data) as f:
            key_data = f.read()
    else:
        try:
            json.loads(key_data)
        except ValueError as e:
            raise ConfigurationError(
                "GEE_PRIVATE_KEY is neither a key file path nor JSON key data",
                context="earth-engine",
                original=e,
            ) from e

    try:
        credentials = ee.ServiceAccountCredentials(settings.gee_client_email, key_data=key_data)
        ee.Initialize(credentials)
    except Exception as e:
        raise ConfigurationError(
            f"Earth Engine initialization failed: {e}", context="earth-engine", original=e
        ) from e
    logger.info(f"Earth Engine initialized for {settings.gee_client_email}")


def classify_ee_error(error: Exception, label: str) -> UpstreamError:
    """Map an Earth Engine exception onto the upstream error taxonomy."""
    message = str(error)
    lowered = message.lower()
    if any(marker in lowered for marker in RATE_LIMIT_MARKERS):
        return UpstreamRateLimited(message, context=label, original=error)
    if any(marker in lowered for marker in TIMEOUT_MARKERS):
        return UpstreamTimeout(message, context=label, original=error)
    return UpstreamTerminal(message, context=label, original=error)


def _guarded(operation: Callable[[], Any], label: str) -> Callable[[], Any]:
    def run():
        try:
            return operation()
        except ee.EEException as e:
            raise classify_ee_error(e, label) from e

    return run


class PotentialImage:
    """Deferred groundwater-potential raster.

    Holds the inputs to the weighted sum; the server-side image is built when
    :meth:`build` is called inside a gateway operation.
    """

    def __init__(
        self,
        polygon: Polygon,
        weights: Mapping[str, float],
        geology_score: float,
        precipitation_score: float,
        layers: Callable[[], dict[str, "ee.Image"]],
    ):
        self.polygon = polygon
        self.weights = dict(weights)
        self.geology_score = geology_score
        self.precipitation_score = precipitation_score
        self._layers = layers

    def build(self) -> "ee.Image":
        region = ee.Geometry.Polygon(self.polygon.coordinates())
        terms = [
            image.multiply(self.weights[name])
            for name, image in self._layers().items()
            if name in self.weights
        ]
        terms.append(ee.Image.constant(self.geology_score).multiply(self.weights["geology"]))
        terms.append(
            ee.Image.constant(self.precipitation_score).multiply(self.weights["precipitation"])
        )
        return ee.Image.cat(terms).reduce(ee.Reducer.sum()).rename("potential").clip(region)


class TerrainSource(Protocol):
    """Capability providing terrain statistics and the potential map."""

    def region_statistics(
        self, polygon: Polygon, context: Optional[RequestContext] = None
    ) -> dict[str, Optional[float]]:
        ...

    def build_potential_image(
        self,
        polygon: Polygon,
        weights: Mapping[str, float],
        geology_score: float,
        precipitation_score: float,
    ) -> PotentialImage:
        ...

    def thumbnail_url(
        self, image: PotentialImage, context: Optional[RequestContext] = None
    ) -> Optional[str]:
        ...


class EarthEngineSource:
    """Terrain, land cover, soil moisture and temperature from Earth Engine.

    Args:
        gateway: Gateway used to run Earth Engine operations
        today: Date provider for the collection filter window
    """

    def __init__(self, gateway: RemoteDataGateway, today: Callable[[], date] = date.today):
        self.gateway = gateway
        self._today = today

    def _normalised_layers(self, region: "ee.Geometry") -> dict[str, "ee.Image"]:
        """Normalised layers for the region, skipping collections with no imagery."""
        elevation = ee.Image(ELEVATION_IMAGE)
        layers = {
            "elevation": elevation.unitScale(*NORMALISATION["elevation"]).rename("elevation"),
            "slope": ee.Terrain.slope(elevation)
            .unitScale(*NORMALISATION["slope"])
            .rename("slope"),
        }

        end = self._today()
        collections = {}
        for name, (collection_id, band, scale) in COLLECTION_BANDS.items():
            lookback = LANDCOVER_LOOKBACK_DAYS if name == "landcover" else LOOKBACK_DAYS
            start = end - timedelta(days=lookback)
            collections[name] = (
                ee.ImageCollection(collection_id)
                .filterBounds(region)
                .filterDate(start.isoformat(), end.isoformat())
                .select(band),
                scale,
            )

        sizes = ee.Dictionary(
            {name: coll.size() for name, (coll, _) in collections.items()}
        ).getInfo()

        for name, (collection, scale) in collections.items():
            if not sizes.get(name):
                logger.warning(f"No {name} imagery in range; layer skipped")
                continue
            layers[name] = (
                collection.mean()
                .multiply(scale)
                .unitScale(*NORMALISATION[name])
                .rename(name)
            )
        return layers

    def region_statistics(
        self, polygon: Polygon, context: Optional[RequestContext] = None
    ) -> dict[str, Optional[float]]:
        """Mean normalised layer values over the polygon plus raw elevation and slope."""

        def operation() -> dict:
            region = ee.Geometry.Polygon(polygon.coordinates())
            layers = self._normalised_layers(region)
            elevation = ee.Image(ELEVATION_IMAGE)
            raw = [
                elevation.rename("elevation_m"),
                ee.Terrain.slope(elevation).rename("slope_deg"),
            ]
            stack = ee.Image.cat(list(layers.values()) + raw)
            values = stack.reduceRegion(
                reducer=ee.Reducer.mean(),
                geometry=region,
                scale=STATS_SCALE,
                maxPixels=MAX_PIXELS,
            ).getInfo()
            return values or {}

        payload = self.gateway.fetch(
            GatewayRequest(
                endpoint=Endpoint.EARTH_ENGINE,
                operation=_guarded(operation, "earth-engine:region_statistics"),
                schema=RegionStatsResponse,
            ),
            context,
        )
        stats = RegionStatsResponse.model_validate(payload).model_dump()
        for name in NORMALISATION:
            if stats[name] is not None:
                stats[name] = clamp(stats[name], 0.0, 1.0)
        return stats

    def build_potential_image(
        self,
        polygon: Polygon,
        weights: Mapping[str, float],
        geology_score: float,
        precipitation_score: float,
    ) -> PotentialImage:
        def layers() -> dict[str, "ee.Image"]:
            return self._normalised_layers(ee.Geometry.Polygon(polygon.coordinates()))

        return PotentialImage(polygon, weights, geology_score, precipitation_score, layers)

    def thumbnail_url(
        self, image: PotentialImage, context: Optional[RequestContext] = None
    ) -> Optional[str]:
        def operation() -> dict:
            region = ee.Geometry.Polygon(image.polygon.coordinates())
            url = image.build().getThumbURL(
                {
                    "region": region,
                    "dimensions": THUMBNAIL_DIMENSIONS,
                    "min": 0,
                    "max": 1,
                    "palette": POTENTIAL_PALETTE,
                    "format": "png",
                }
            )
            return {"url": url}

        payload = self.gateway.fetch(
            GatewayRequest(
                endpoint=Endpoint.EARTH_ENGINE,
                operation=_guarded(operation, "earth-engine:thumbnail"),
                schema=ThumbnailResponse,
            ),
            context,
        )
        return payload["url"]
