"""Pydantic schemas for upstream response shapes.

The gateway validates every response against one of these before returning
or caching it. Unknown fields are ignored; only the fields the analyzers
read are required.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# Epoch seconds above this are almost certainly milliseconds
MAX_EPOCH_SECONDS = 10**11


class OrsFeature(BaseModel):
    geometry: dict[str, Any]
    properties: dict[str, Any]


class OrsResponse(BaseModel):
    """OpenRouteService GeoJSON directions response."""

    features: list[OrsFeature] = Field(..., min_length=1)


class OverpassElement(BaseModel):
    type: str
    id: int
    tags: dict[str, str]


class OverpassResponse(BaseModel):
    """Overpass API JSON element list."""

    elements: list[OverpassElement]


class HourlySeries(BaseModel):
    time: list[int]
    rain: list[Optional[float]]
    soil_moisture_100_to_255cm: list[Optional[float]]

    @field_validator("time")
    @classmethod
    def check_epoch_seconds(cls, values: list[int]) -> list[int]:
        for value in values:
            if value < 0 or value >= MAX_EPOCH_SECONDS:
                raise ValueError(f"timestamp {value} is not epoch seconds")
        return values

    @model_validator(mode="after")
    def check_lengths(self) -> "HourlySeries":
        n = len(self.time)
        if len(self.rain) != n or len(self.soil_moisture_100_to_255cm) != n:
            raise ValueError("hourly arrays must have equal length")
        return self


class WeatherArchiveResponse(BaseModel):
    """Open-Meteo archive response with ``timeformat=unixtime``."""

    hourly: HourlySeries


class LithologyUnit(BaseModel):
    name: Optional[str] = None
    lith: Optional[str] = None
    descrip: Optional[str] = None


class LithologyData(BaseModel):
    data: list[LithologyUnit]


class LithologyResponse(BaseModel):
    """Macrostrat geologic units response."""

    success: LithologyData


class ReverseGeoResponse(BaseModel):
    """Nominatim reverse geocoding response."""

    display_name: str
    address: dict[str, Any] = Field(default_factory=dict)


class RegionStatsResponse(BaseModel):
    """Region means computed by Earth Engine (any value may be missing)."""

    elevation: Optional[float] = None
    slope: Optional[float] = None
    soil_moisture: Optional[float] = None
    temperature: Optional[float] = None
    landcover: Optional[float] = None
    elevation_m: Optional[float] = None
    slope_deg: Optional[float] = None


class ThumbnailResponse(BaseModel):
    url: str
