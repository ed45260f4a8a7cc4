"""Runtime settings loaded from environment variables.

Example:
    >>> from agrisite.config import Settings
    >>> settings = Settings.from_env()
    >>> settings.rate_limit
    5
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from agrisite.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ORS_URL = "https://api.openrouteservice.org/v2/directions/driving-car/geojson"
DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"
WEATHER_ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"
LITHOLOGY_URL = "https://macrostrat.org/api/v2/geologic_units/map"
REVERSE_GEO_URL = "https://nominatim.openstreetmap.org/reverse"

# Timeouts in seconds
WEATHER_TIMEOUT = 30.0
LITHOLOGY_TIMEOUT = 15.0
REVERSE_GEO_TIMEOUT = 10.0
EARTH_ENGINE_TIMEOUT = 60.0

USER_AGENT = "agrisite/0.1 (site analysis)"


@dataclass
class Settings:
    """Service settings.

    Attributes:
        rate_limit: Requests per second for the default rate class
        hazard_rate_limit: Requests per ``hazard_interval`` for hazard queries
        hazard_interval: Window length in seconds for the hazard class
        ors_url: OpenRouteService directions endpoint
        ors_api_key: OpenRouteService API key
        ors_timeout: Routing timeout in seconds
        overpass_url: Overpass interpreter endpoint
        overpass_timeout: Overpass timeout in seconds
        overpass_buffer: Route buffer in km used for hazard queries
        overpass_cache_max: Capacity of the overlay cache
        route_cache_max: Capacity of the route cache
        hazard_weights: Per-hazard multipliers for composite risk
        gee_private_key: Earth Engine service account key (JSON or path)
        gee_client_email: Earth Engine service account email
    """

    rate_limit: int = 5
    hazard_rate_limit: int = 1
    hazard_interval: float = 5.0
    ors_url: str = DEFAULT_ORS_URL
    ors_api_key: Optional[str] = None
    ors_timeout: float = 10.0
    overpass_url: str = DEFAULT_OVERPASS_URL
    overpass_timeout: float = 15.0
    overpass_buffer: float = 0.02
    overpass_cache_max: int = 100
    route_cache_max: int = 50
    hazard_weights: dict[str, float] = field(
        default_factory=lambda: {"bridge": 0.2, "water": 0.1, "landslide": 0.3}
    )
    gee_private_key: Optional[str] = None
    gee_client_email: Optional[str] = None
    weather_url: str = WEATHER_ARCHIVE_URL
    lithology_url: str = LITHOLOGY_URL
    reverse_geo_url: str = REVERSE_GEO_URL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Timeouts (``ORS_TIMEOUT``, ``OVERPASS_TIMEOUT``) are given in
        milliseconds.

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        settings = cls(
            rate_limit=_int(env, "RATE_LIMIT", defaults.rate_limit),
            ors_url=env.get("ORS_URL") or defaults.ors_url,
            ors_api_key=env.get("ORS_API_KEY") or None,
            ors_timeout=_float(env, "ORS_TIMEOUT", defaults.ors_timeout * 1000) / 1000,
            overpass_url=env.get("OVERPASS_URL") or defaults.overpass_url,
            overpass_timeout=_float(
                env, "OVERPASS_TIMEOUT", defaults.overpass_timeout * 1000
            ) / 1000,
            overpass_buffer=_float(env, "OVERPASS_BUFFER", defaults.overpass_buffer),
            overpass_cache_max=_int(env, "OVERPASS_CACHE_MAX", defaults.overpass_cache_max),
            route_cache_max=_int(env, "ROUTE_CACHE_MAX", defaults.route_cache_max),
            hazard_weights={
                "bridge": _float(env, "HAZARD_WEIGHT_BRIDGE", defaults.hazard_weights["bridge"]),
                "water": _float(env, "HAZARD_WEIGHT_WATER", defaults.hazard_weights["water"]),
                "landslide": _float(
                    env, "HAZARD_WEIGHT_LANDSLIDE", defaults.hazard_weights["landslide"]
                ),
            },
            gee_private_key=env.get("GEE_PRIVATE_KEY") or None,
            gee_client_email=env.get("GEE_CLIENT_EMAIL") or None,
        )

        if settings.rate_limit < 1:
            raise ConfigurationError(
                f"RATE_LIMIT must be at least 1, got {settings.rate_limit}",
                context="settings",
            )
        if settings.ors_api_key is None:
            logger.warning("ORS_API_KEY is not set; routing requests will be unauthenticated")

        return settings


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}", context="settings", original=e
        ) from e


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{name} must be a number, got {raw!r}", context="settings", original=e
        ) from e
