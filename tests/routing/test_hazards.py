"""Tests for hazard detection and composite risk."""

import pytest

from agrisite.gateway import RateClass
from agrisite.routing import composite_risk, partition_hazards, risk_level
from agrisite.routing.hazards import build_hazard_query, hazard_request, hazard_set
from agrisite.utils.geo import BoundingBox

WEIGHTS = {"bridge": 0.2, "water": 0.1, "landslide": 0.3}


def way(element_id, tags, vertices=2):
    return {
        "type": "way",
        "id": element_id,
        "tags": tags,
        "geometry": [{"lat": -17.8 - i * 0.001, "lon": 31.05} for i in range(vertices)],
    }


class TestPartitionHazards:
    """Tests for partition_hazards."""

    def test_groups(self, hazard_payload):
        groups = partition_hazards(hazard_payload)
        assert len(groups["bridges"]) == 1
        assert len(groups["water"]) == 1
        assert groups["landslides"] == []

    def test_bridge_needs_two_vertices(self):
        groups = partition_hazards({"elements": [way(1, {"bridge": "yes"}, vertices=1)]})
        assert groups["bridges"] == []

    def test_untagged_elements_ignored(self):
        groups = partition_hazards({"elements": [{"type": "way", "id": 1, "tags": {}}]})
        assert all(not members for members in groups.values())

    def test_bridge_over_stream_counts_twice(self):
        groups = partition_hazards({"elements": [way(1, {"bridge": "yes", "waterway": "stream"})]})
        assert len(groups["bridges"]) == 1
        assert len(groups["water"]) == 1

    def test_natural_tags(self):
        groups = partition_hazards(
            {"elements": [way(1, {"natural": "water"}), way(2, {"natural": "landslide"})]}
        )
        assert len(groups["water"]) == 1
        assert len(groups["landslides"]) == 1

    def test_nodes_count_as_vertices(self):
        element = {"type": "way", "id": 1, "tags": {"bridge": "yes"}, "nodes": [10, 11]}
        assert len(partition_hazards({"elements": [element]})["bridges"]) == 1


class TestCompositeRisk:
    """Tests for composite_risk."""

    def test_no_hazards(self):
        assert composite_risk(0, 0, 0, WEIGHTS) == 0.0

    def test_mean_of_terms(self):
        assert composite_risk(1, 1, 0, WEIGHTS) == pytest.approx((0.2 + 0.1) / 3)

    @pytest.mark.parametrize("counts", [(100, 0, 0), (100, 100, 100), (3, 7, 2), (0, 0, 50)])
    def test_bounded(self, counts):
        """Composite risk should stay within [0, 1] however many hazards there are."""
        assert 0.0 <= composite_risk(*counts, WEIGHTS) <= 1.0

    def test_saturates(self):
        assert composite_risk(100, 100, 100, WEIGHTS) == pytest.approx(1.0)

    def test_hazard_set(self, hazard_payload):
        hazards = hazard_set(hazard_payload, WEIGHTS)
        assert (hazards.bridges, hazards.water_crossings, hazards.landslides) == (1, 1, 0)
        assert hazards.total == 2
        assert hazards.composite_risk == pytest.approx(0.1)


class TestRiskLevel:
    @pytest.mark.parametrize(
        "risk,level",
        [(0.0, "Low"), (0.19, "Low"), (0.2, "Medium"), (0.5, "High"), (0.8, "Very High"), (1.0, "Very High")],
    )
    def test_levels(self, risk, level):
        assert risk_level(risk) == level


class TestHazardRequest:
    def test_query(self):
        query = build_hazard_query(BoundingBox(west=31.0, south=-18.0, east=31.1, north=-17.9))
        assert "way[bridge=yes](-18.0,31.0,-17.9,31.1);" in query
        assert 'way["waterway"~"river|stream"]' in query
        assert query.endswith("out geom;")

    def test_request_uses_hazard_class_and_cache(self, settings):
        request = hazard_request(settings, [[31.0522, -17.8292], [31.0617, -17.8292]])
        assert request.rate_class == RateClass.HAZARD
        assert request.cache_key.startswith("hazards_31.05")
        assert request.cache_key.endswith(",-17.8292")
