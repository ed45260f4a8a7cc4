"""Tests for groundwater scoring of a polygon."""

from unittest.mock import MagicMock

import pytest

from agrisite.exceptions import DataInsufficient, UpstreamTimeout, UpstreamTransient
from agrisite.gateway import RequestContext
from agrisite.groundwater import GeologicalFormation, GroundwaterScorer
from agrisite.precipitation import PrecipRecord, calculate_precipitation_metrics
from agrisite.utils.geo import Polygon


class FakeLithology:
    def __init__(self, formations=None, error=None):
        self._formations = formations or []
        self._error = error
        self.calls = 0

    def formations(self, point, context=None):
        self.calls += 1
        if self._error is not None:
            raise self._error
        return list(self._formations)


@pytest.fixture
def polygon(harare_feature):
    return Polygon.from_geojson(harare_feature)


@pytest.fixture
def metrics(make_epoch):
    return calculate_precipitation_metrics(
        [PrecipRecord(make_epoch(2023, m), 100.0) for m in range(1, 13)]
    )


def scorer(terrain, lithology=None):
    return GroundwaterScorer(MagicMock(), terrain, lithology=lithology or FakeLithology())


class TestGroundwaterScorer:
    """Tests for GroundwaterScorer.score."""

    def test_default_depth_without_data(self, polygon, metrics, fake_terrain):
        """Without formations, water table or raw terrain the depth range is the default."""
        assessment = scorer(fake_terrain).score(polygon, metrics)

        depth = assessment.depth.depth
        assert (depth.minimum, depth.recommended, depth.maximum) == (30.0, 98.0, 200.0)

    def test_map_url_and_weights(self, polygon, metrics, fake_terrain):
        assessment = scorer(fake_terrain).score(polygon, metrics)

        assert assessment.potential_map_url == fake_terrain.MAP_URL
        assert sum(assessment.weights.values()) == pytest.approx(1.0)
        image = fake_terrain.images[0]
        assert image["weights"] == assessment.weights
        assert image["precipitation_score"] == metrics.reliability.overall
        assert image["geology_score"] == assessment.geology_score

    def test_success_probability(self, polygon, metrics, fake_terrain):
        assessment = scorer(fake_terrain).score(polygon, metrics)

        stats = fake_terrain.stats
        expected = (
            stats["elevation"] * 0.15
            + stats["soil_moisture"] * 0.20
            + stats["temperature"] * 0.15
            + assessment.geology_score * 0.25
            + metrics.reliability.overall * 0.25
        ) * 100
        assert assessment.success_probability == pytest.approx(expected)
        assert 0 <= assessment.success_probability <= 100

    def test_aquifer_formation_sets_depth(self, polygon, metrics, fake_terrain):
        lithology = FakeLithology([GeologicalFormation(type="sandstone", depth_estimate=90.0)])
        assessment = scorer(fake_terrain, lithology).score(polygon, metrics)

        assert assessment.depth.depth.recommended == 90.0
        assert assessment.formations[0].type == "sandstone"

    def test_terrain_depth(self, polygon, metrics, terrain_factory):
        terrain = terrain_factory(
            {"elevation": 0.5, "slope": 0.1, "elevation_m": 1500.0, "slope_deg": 5.0}
        )
        assessment = scorer(terrain).score(polygon, metrics)
        assert assessment.depth.depth.recommended == pytest.approx(75.0)

    def test_no_imagery(self, polygon, metrics, terrain_factory):
        """All layers missing should raise DataInsufficient."""
        terrain = terrain_factory({"elevation": None, "slope": None})
        with pytest.raises(DataInsufficient):
            scorer(terrain).score(polygon, metrics)

    def test_lithology_failure_degrades(self, polygon, metrics, fake_terrain, caplog):
        """A failing lithology lookup should score without formations."""
        lithology = FakeLithology(error=UpstreamTransient("macrostrat down"))
        with caplog.at_level("WARNING"):
            assessment = scorer(fake_terrain, lithology).score(polygon, metrics)

        assert assessment.formations == []
        assert "Lithology lookup failed" in caplog.text

    def test_lithology_failure_after_cancel_propagates(self, polygon, metrics, fake_terrain):
        context = RequestContext()
        context.cancel()
        lithology = FakeLithology(error=UpstreamTimeout("Request cancelled"))
        with pytest.raises(UpstreamTimeout):
            scorer(fake_terrain, lithology).score(polygon, metrics, context)

    def test_degenerate_polygon(self, metrics, fake_terrain):
        """A zero-area polygon skips lithology and defaults the probability to 50%."""
        polygon = Polygon(
            ring=((31.0, -17.0), (31.1, -17.1), (31.2, -17.2), (31.0, -17.0))
        )
        lithology = FakeLithology([GeologicalFormation(type="sandstone", depth_estimate=90.0)])
        assessment = scorer(fake_terrain, lithology).score(polygon, metrics)

        assert lithology.calls == 0
        assert assessment.success_probability == 50.0

    def test_to_dict(self, polygon, metrics, fake_terrain):
        d = scorer(fake_terrain).score(polygon, metrics).to_dict()
        assert d["potential_map_url"] == fake_terrain.MAP_URL
        assert d["depth"]["recommended_depth"] == 98.0
        assert d["geological_formations"] == []
