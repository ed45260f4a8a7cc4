"""Pydantic schemas for API request/response validation.

The polygon itself is checked structurally here; ring closure, coordinate
ranges and vertex counts are enforced by ``Polygon.from_geojson``.
"""

from datetime import date as date_type
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

SOURCES = ("unspecified",)


class PolygonGeometry(BaseModel):
    type: Literal["Polygon"]
    coordinates: list[list[list[float]]] = Field(..., min_length=1)


class PolygonFeature(BaseModel):
    """GeoJSON Feature wrapping a Polygon geometry."""

    type: Literal["Feature"]
    properties: Optional[dict[str, Any]] = Field(default_factory=dict)
    geometry: PolygonGeometry


class ReferencePlaceModel(BaseModel):
    """Population centre to measure distances to.

    Attributes:
        name: Display name
        lat: Latitude in decimal degrees
        lon: Longitude in decimal degrees
        kind: 'city' or 'town' (other kinds only count for the nearest place)
    """

    name: str = Field(..., min_length=1, description="Place name")
    lat: float = Field(..., ge=-90, le=90, description="Latitude in decimal degrees")
    lon: float = Field(..., ge=-180, le=180, description="Longitude in decimal degrees")
    kind: str = Field(default="town", description="Place kind")


class AnalyzeRequest(BaseModel):
    """Request schema for site analysis.

    Attributes:
        polygon: Field boundary as a GeoJSON Feature<Polygon>
        source: Polygon source label (only 'unspecified' is supported)
        start_date: Start of the precipitation window (default 5 years ago)
        end_date: End of the precipitation window (default today)
        reference_places: Population centres to include in distances
    """

    polygon: PolygonFeature
    source: str = Field(default="unspecified", description="Polygon source")
    start_date: Optional[date_type] = Field(default=None, alias="startDate")
    end_date: Optional[date_type] = Field(default=None, alias="endDate")
    reference_places: list[ReferencePlaceModel] = Field(
        default_factory=list, alias="referencePlaces"
    )

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "polygon": {
                        "type": "Feature",
                        "properties": {},
                        "geometry": {
                            "type": "Polygon",
                            "coordinates": [
                                [
                                    [31.0474, -17.8337],
                                    [31.0570, -17.8337],
                                    [31.0570, -17.8247],
                                    [31.0474, -17.8247],
                                    [31.0474, -17.8337],
                                ]
                            ],
                        },
                    },
                    "source": "unspecified",
                    "referencePlaces": [
                        {"name": "Harare", "lat": -17.8292, "lon": 31.0522, "kind": "city"}
                    ],
                }
            ]
        },
    }

    @model_validator(mode="after")
    def check_source_and_dates(self) -> "AnalyzeRequest":
        if self.source.lower() not in SOURCES:
            raise ValueError(f"source must be one of {SOURCES}")
        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ValueError("startDate must be before endDate")
        return self


class HealthResponse(BaseModel):
    """Health check response.

    Attributes:
        status: Service status ('healthy' or 'unhealthy')
        orchestrator_ready: Whether the orchestrator is initialised
        version: API version
    """

    status: str = Field(default="healthy", description="Service status")
    orchestrator_ready: bool = Field(default=False, description="Whether analysis is available")
    version: str = Field(default="1.0.0", description="API version")


class ErrorResponse(BaseModel):
    """Error response schema.

    Attributes:
        error: Error type/code
        message: Human-readable error message
        context: Label of the operation that failed
    """

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    context: Optional[str] = Field(default=None, description="Failing operation")
