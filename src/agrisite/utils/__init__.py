"""Shared utilities for agrisite analyzers."""

from .geo import (
    BoundingBox,
    Point,
    Polygon,
    buffered_bbox,
    haversine,
    haversine_m,
    line_length_m,
    validate_coordinates,
)
from .stats import clamp, coefficient_of_variation, least_squares_slope, mean, std

__all__ = [
    "BoundingBox",
    "Point",
    "Polygon",
    "buffered_bbox",
    "haversine",
    "haversine_m",
    "line_length_m",
    "validate_coordinates",
    "clamp",
    "coefficient_of_variation",
    "least_squares_slope",
    "mean",
    "std",
]
