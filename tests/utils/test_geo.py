"""Tests for geographic utilities."""

import pytest

from agrisite.exceptions import ValidationError
from agrisite.utils.geo import (
    KM_PER_DEGREE,
    BoundingBox,
    Point,
    Polygon,
    buffered_bbox,
    haversine,
    line_length_m,
    validate_coordinates,
)


def square_feature(ring):
    return {
        "type": "Feature",
        "properties": {},
        "geometry": {"type": "Polygon", "coordinates": [ring]},
    }


class TestBoundingBox:
    """Tests for BoundingBox class."""

    def test_contains_point_inside(self):
        """Should return True for point inside bbox."""
        bbox = BoundingBox(west=31.0, south=-18.0, east=31.1, north=-17.8)
        assert bbox.contains(lat=-17.9, lon=31.05) is True

    def test_contains_point_outside(self):
        """Should return False for point outside bbox."""
        bbox = BoundingBox(west=31.0, south=-18.0, east=31.1, north=-17.8)
        assert bbox.contains(lat=-17.5, lon=31.05) is False
        assert bbox.contains(lat=-17.9, lon=30.9) is False

    def test_center(self):
        """Should return the midpoint of the box."""
        bbox = BoundingBox(west=31.0, south=-18.0, east=31.2, north=-17.8)
        assert bbox.center.lat == pytest.approx(-17.9)
        assert bbox.center.lon == pytest.approx(31.1)

    def test_to_overpass(self):
        """Should return south,west,north,east."""
        bbox = BoundingBox(west=31.0, south=-18.0, east=31.1, north=-17.8)
        assert bbox.to_overpass() == "-18.0,31.0,-17.8,31.1"


class TestPoint:
    """Tests for Point class."""

    def test_distance_to_self(self):
        """Distance to self should be 0."""
        p = Point(lat=-17.8292, lon=31.0522)
        assert p.distance_to(p) == 0

    def test_distance_is_in_metres(self):
        """One degree of latitude should be about 111 km."""
        a = Point(lat=0.0, lon=0.0)
        b = Point(lat=1.0, lon=0.0)
        assert a.distance_to(b) == pytest.approx(111_195, rel=1e-3)

    def test_distance_symmetric(self):
        """Distance should be symmetric."""
        a = Point(lat=-17.8292, lon=31.0522)
        b = Point(lat=-20.15, lon=28.58)
        assert a.distance_to(b) == pytest.approx(b.distance_to(a))


class TestHaversine:
    """Tests for haversine distance calculation."""

    def test_harare_to_bulawayo(self):
        """Harare to Bulawayo should be roughly 365 km."""
        assert haversine(-17.8292, 31.0522, -20.1500, 28.5833) == pytest.approx(365, abs=5)

    def test_antipodal_points(self):
        """Antipodal points should be half the circumference apart."""
        assert haversine(0, 0, 0, 180) == pytest.approx(20015, rel=1e-3)


class TestPolygon:
    """Tests for Polygon parsing and geometry."""

    def test_from_feature(self, harare_feature):
        """Should parse a GeoJSON Feature<Polygon>."""
        polygon = Polygon.from_geojson(harare_feature, source="unspecified")
        assert len(polygon.ring) == 5
        assert polygon.ring[0] == polygon.ring[-1]
        assert polygon.source == "unspecified"

    def test_from_bare_geometry(self, harare_feature):
        """Should accept a bare Polygon geometry."""
        polygon = Polygon.from_geojson(harare_feature["geometry"])
        assert len(polygon.ring) == 5

    def test_centroid(self, harare_feature):
        """Centroid of the Harare square should be the square's centre."""
        centroid = Polygon.from_geojson(harare_feature).centroid
        assert centroid.lat == pytest.approx(-17.8292, abs=1e-4)
        assert centroid.lon == pytest.approx(31.0522, abs=1e-4)

    def test_degenerate_polygon_has_no_centroid(self):
        """A zero-area ring should have no centroid but still have bounds."""
        ring = [[31.0, -17.0], [31.1, -17.1], [31.2, -17.2], [31.0, -17.0]]
        polygon = Polygon.from_geojson(square_feature(ring))
        assert polygon.centroid is None
        assert polygon.bounds.center.lon == pytest.approx(31.1)

    def test_open_ring_rejected(self):
        """A ring whose first and last vertices differ should be rejected."""
        ring = [[31.0, -17.0], [31.1, -17.0], [31.1, -17.1], [31.0, -17.1]]
        with pytest.raises(ValidationError, match="closed"):
            Polygon.from_geojson(square_feature(ring))

    def test_too_few_vertices_rejected(self):
        """A ring with fewer than four vertices should be rejected."""
        ring = [[31.0, -17.0], [31.1, -17.0], [31.0, -17.0]]
        with pytest.raises(ValidationError):
            Polygon.from_geojson(square_feature(ring))

    def test_out_of_range_latitude_rejected(self):
        """Latitudes beyond 90 should be rejected."""
        ring = [[31.0, -17.0], [31.1, -17.0], [31.1, -97.1], [31.0, -17.0]]
        with pytest.raises(ValidationError, match="Latitude"):
            Polygon.from_geojson(square_feature(ring))

    def test_non_numeric_vertex_rejected(self):
        """Vertices must be numeric pairs."""
        ring = [[31.0, -17.0], ["east", -17.0], [31.1, -17.1], [31.0, -17.0]]
        with pytest.raises(ValidationError, match="vertex"):
            Polygon.from_geojson(square_feature(ring))

    def test_wrong_geometry_type_rejected(self):
        """Non-polygon geometries should be rejected."""
        feature = {
            "type": "Feature",
            "properties": {},
            "geometry": {"type": "Point", "coordinates": [31.0, -17.0]},
        }
        with pytest.raises(ValidationError):
            Polygon.from_geojson(feature)

    def test_to_geojson_round_trips(self, harare_feature):
        """to_geojson output should parse back into the same ring."""
        polygon = Polygon.from_geojson(harare_feature, source="unspecified")
        again = Polygon.from_geojson(polygon.to_geojson())
        assert again.ring == polygon.ring
        assert polygon.to_geojson()["properties"] == {"source": "unspecified"}


class TestLines:
    """Tests for line length and buffered bounding boxes."""

    def test_line_length(self):
        """Line length should sum the segment distances."""
        coords = [[0.0, 0.0], [0.0, 1.0], [0.0, 2.0]]
        assert line_length_m(coords) == pytest.approx(2 * 111_195, rel=1e-3)

    def test_line_length_single_point(self):
        """A single point has zero length."""
        assert line_length_m([[31.0, -17.0]]) == 0.0

    def test_buffered_bbox_expands_by_buffer(self):
        """The box should extend buffer_km beyond the line on every side."""
        bbox = buffered_bbox([[31.0, -17.0], [31.1, -17.0]], buffer_km=1.0)
        margin = 1.0 / KM_PER_DEGREE
        assert bbox.west == pytest.approx(31.0 - margin)
        assert bbox.east == pytest.approx(31.1 + margin)
        assert bbox.south == pytest.approx(-17.0 - margin)
        assert bbox.north == pytest.approx(-17.0 + margin)

    def test_buffered_bbox_single_point(self):
        """A single-point line should still produce a box around it."""
        bbox = buffered_bbox([[31.0, -17.0]], buffer_km=0.5)
        assert bbox.contains(lat=-17.0, lon=31.0)
        assert bbox.east > bbox.west


class TestValidateCoordinates:
    """Tests for coordinate range checks."""

    def test_valid(self):
        """Valid coordinates should pass."""
        validate_coordinates(-17.8292, 31.0522)

    @pytest.mark.parametrize("lat,lon", [(91, 0), (-91, 0), (0, 181), (0, -181)])
    def test_invalid(self, lat, lon):
        """Out-of-range coordinates should raise ValidationError."""
        with pytest.raises(ValidationError):
            validate_coordinates(lat, lon)
