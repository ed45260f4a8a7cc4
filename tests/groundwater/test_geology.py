"""Tests for lithology parsing and geology scoring."""

import pytest

from agrisite.exceptions import UpstreamTerminal
from agrisite.groundwater import GeologicalFormation, MacrostratLithology, calculate_geology_score
from agrisite.groundwater.geology import (
    analyze_geological_depth,
    estimate_depth_from_formation,
    match_rock_type,
    parse_lithology,
    reclassify_formations,
)
from agrisite.utils.geo import Point

MACROSTRAT = "macrostrat.org"
HARARE = Point(lat=-17.8292, lon=31.0522)


def lithology_payload(*units):
    return {"success": {"data": list(units)}}


class TestParseLithology:
    """Tests for turning Macrostrat units into formations."""

    def test_known_types_in_order(self):
        payload = lithology_payload(
            {
                "name": "Karoo Supergroup",
                "lith": "Major:{sandstone}, Minor:{shale}",
                "descrip": "Faulted sandstone with shale partings",
            }
        )
        formations = parse_lithology(payload)

        assert [f.type for f in formations] == ["sandstone", "shale"]
        assert formations[0].name == "Karoo Supergroup"
        assert formations[0].depth_estimate == 90.0
        assert formations[1].depth_estimate == 60.0
        assert all(f.structural_features == "faulted" for f in formations)

    def test_unknown_type_uses_last_word(self):
        formations = parse_lithology(lithology_payload({"name": "Zimbabwe craton", "lith": "Major:{tonalite}"}))
        assert len(formations) == 1
        assert formations[0].type == "tonalite"
        assert formations[0].depth_estimate is None

    def test_empty_lith_skipped(self):
        assert parse_lithology(lithology_payload({"name": "Water", "lith": None})) == []

    def test_match_rock_type(self):
        assert match_rock_type("clay over limestone") == ["clay", "limestone"]
        assert match_rock_type("basalt") == []


class TestReclassify:
    def test_unknown_replaced_from_overlay_tags(self):
        formations = [GeologicalFormation(type="tonalite"), GeologicalFormation(type="sandstone")]
        result = reclassify_formations(formations, ["weathered granite"])

        assert result[0].type == "granite"
        assert result[0].source == "overlay"
        assert result[0].depth_estimate == 155.0
        assert result[1].type == "sandstone"
        assert result[1].source == "lithology"

    def test_no_usable_tags(self):
        formations = [GeologicalFormation(type="tonalite")]
        assert reclassify_formations(formations, ["volcanic"]) == formations


class TestGeologicalDepth:
    def test_factors(self):
        formations = [
            GeologicalFormation(type="sandstone", depth_estimate=90.0),
            GeologicalFormation(type="clay", depth_estimate=15.0, structural_features="fractured"),
        ]
        factors = analyze_geological_depth(formations)

        assert factors.estimated_aquifer_depth == 90.0
        assert factors.confining_layers == [{"type": "clay", "estimated_depth": 15.0}]
        assert factors.fracture_zones == [{"depth": 15.0, "type": "fractured"}]
        assert factors.rock_hardness == 1

    def test_no_formations(self):
        factors = analyze_geological_depth([])
        assert factors.estimated_aquifer_depth is None
        assert factors.rock_hardness is None

    def test_formation_depths(self):
        assert estimate_depth_from_formation("Granite") == 155.0
        assert estimate_depth_from_formation("basalt") is None


class TestGeologyScore:
    """Tests for calculate_geology_score."""

    def test_no_information(self):
        """No formations and no terrain give the neutral sub-scores only."""
        assert calculate_geology_score([], {}) == pytest.approx(0.2)

    def test_fractured_aquifer_on_flat_ground(self):
        formations = [GeologicalFormation(type="sandstone", structural_features="faulted")]
        score = calculate_geology_score(formations, {"elevation": 0.2, "slope": 0.1})
        assert score == pytest.approx(0.4 + 0.16 + 0.2 + 0.08 + 0.09)

    @pytest.mark.parametrize(
        "rock_type,stats",
        [
            ("clay", {"elevation": 1.0, "slope": 1.0}),
            ("granite", {"elevation": 0.0, "slope": 0.0}),
            ("limestone", {"elevation": None, "slope": 0.5}),
        ],
    )
    def test_bounded(self, rock_type, stats):
        score = calculate_geology_score([GeologicalFormation(type=rock_type)], stats)
        assert 0.0 <= score <= 1.0


class TestMacrostratLithology:
    """Tests for the Macrostrat-backed lithology source."""

    def test_known_types_skip_overlay(self, gateway, fake_session, response):
        fake_session.add(
            MACROSTRAT, response(payload=lithology_payload({"name": "Karoo", "lith": "sandstone"}))
        )
        formations = MacrostratLithology(gateway).formations(HARARE)

        assert [f.type for f in formations] == ["sandstone"]
        assert fake_session.calls_to("overpass") == []
        params = fake_session.calls[0]["params"]
        assert params["lat"] == HARARE.lat
        assert params["lng"] == HARARE.lon

    def test_unknown_types_reclassified(self, gateway, fake_session, response):
        fake_session.add(
            MACROSTRAT, response(payload=lithology_payload({"name": "Craton", "lith": "tonalite"}))
        )
        fake_session.add(
            "overpass",
            response(
                payload={
                    "elements": [
                        {"type": "node", "id": 7, "tags": {"geological": "granite outcrop"}}
                    ]
                }
            ),
        )
        formations = MacrostratLithology(gateway).formations(HARARE)

        assert formations[0].type == "granite"
        assert formations[0].source == "overlay"

    def test_no_units(self, gateway, fake_session, response):
        fake_session.add(MACROSTRAT, response(payload=lithology_payload()))
        assert MacrostratLithology(gateway).formations(HARARE) == []

    def test_bad_payload(self, gateway, fake_session, response):
        fake_session.add(MACROSTRAT, response(payload={"error": "no data"}))
        with pytest.raises(UpstreamTerminal):
            MacrostratLithology(gateway).formations(HARARE)
