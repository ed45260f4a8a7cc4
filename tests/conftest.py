"""Shared pytest fixtures for agrisite tests.

Test Tiers:
- unit: Fast tests with fixtures, no network (default)
- integration: Tests wiring several analyzers through a fake HTTP session
- live: Real upstream tests, slow, requires network

Run live tests with: pytest -m live --run-live
"""

import json
import threading
from datetime import datetime, timezone

import pytest

from agrisite.config import Settings
from agrisite.gateway import RemoteDataGateway

# 1-km square centred on Harare (-17.8292, 31.0522)
HARARE = (-17.8292, 31.0522)
HARARE_RING = [
    [31.0475, -17.8337],
    [31.0569, -17.8337],
    [31.0569, -17.8247],
    [31.0475, -17.8247],
    [31.0475, -17.8337],
]


def pytest_addoption(parser):
    """Add command line options for test configuration."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run live upstream tests (slow, requires network)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests using fixtures")
    config.addinivalue_line("markers", "integration: tests wiring analyzers through fakes")
    config.addinivalue_line("markers", "live: real upstream tests (slow, requires network)")


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, payload=None, headers=None, text=None):
        self.status_code = status_code
        self.headers = headers or {}
        self._payload = payload
        if text is not None:
            self.text = text
        else:
            self.text = json.dumps(payload) if payload is not None else ""

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """Scripted HTTP session.

    Handlers are matched in registration order by URL fragment and an
    optional predicate on the call. Each handler serves its responses in
    order and repeats the last one. A response may be a FakeResponse, an
    exception instance (raised) or a callable taking the call dict.
    """

    def __init__(self):
        self.headers = {}
        self.calls = []
        self.closed = False
        self._handlers = []
        self._lock = threading.Lock()

    def add(self, fragment, *responses, match=None):
        self._handlers.append([fragment, match, list(responses)])
        return self

    def request(self, method, url, params=None, data=None, json=None, headers=None, timeout=None):
        call = {
            "method": method,
            "url": url,
            "params": params,
            "data": data,
            "json": json,
            "headers": headers,
            "timeout": timeout,
        }
        with self._lock:
            self.calls.append(call)
            for fragment, match, responses in self._handlers:
                if fragment in url and (match is None or match(call)):
                    response = responses.pop(0) if len(responses) > 1 else responses[0]
                    break
            else:
                raise AssertionError(f"Unexpected request {method} {url}")

        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(call)
        return response

    def calls_to(self, fragment):
        return [c for c in self.calls if fragment in c["url"]]

    def close(self):
        self.closed = True


class FakeTerrain:
    """Terrain source returning fixed statistics and a fixed map URL."""

    MAP_URL = "https://earthengine.test/thumbnails/potential.png"

    def __init__(self, stats=None):
        self.stats = stats if stats is not None else {
            "elevation": 0.5,
            "slope": 0.1,
            "soil_moisture": 0.3,
            "temperature": 0.6,
            "landcover": 0.4,
            "elevation_m": None,
            "slope_deg": None,
        }
        self.images = []

    def region_statistics(self, polygon, context=None):
        return dict(self.stats)

    def build_potential_image(self, polygon, weights, geology_score, precipitation_score):
        image = {
            "weights": dict(weights),
            "geology_score": geology_score,
            "precipitation_score": precipitation_score,
        }
        self.images.append(image)
        return image

    def thumbnail_url(self, image, context=None):
        return self.MAP_URL


def epoch(year, month, day=15, hour=12) -> int:
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp())


def weather_payload(timestamps, rain, soil_moisture=None) -> dict:
    return {
        "latitude": HARARE[0],
        "longitude": HARARE[1],
        "hourly": {
            "time": list(timestamps),
            "rain": list(rain),
            "soil_moisture_100_to_255cm": (
                list(soil_moisture) if soil_moisture is not None else [None] * len(rain)
            ),
        },
    }


def is_spatial_query(call) -> bool:
    return "highway" in (call["data"] or {}).get("data", "")


def is_hazard_query(call) -> bool:
    return "bridge=yes" in (call["data"] or {}).get("data", "")


def is_geology_query(call) -> bool:
    return '"geological"' in (call["data"] or {}).get("data", "")


@pytest.fixture
def settings() -> Settings:
    """Settings with fast rate limits and an ORS key."""
    return Settings(
        rate_limit=50,
        hazard_rate_limit=50,
        hazard_interval=1.0,
        ors_api_key="test-key",
    )


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def gateway(settings, fake_session):
    gw = RemoteDataGateway(settings, session=fake_session)
    yield gw
    gw.close()


@pytest.fixture
def response():
    """Factory for fake HTTP responses."""
    return FakeResponse


@pytest.fixture
def fake_terrain() -> FakeTerrain:
    return FakeTerrain()


@pytest.fixture
def terrain_factory():
    """Factory for fake terrain sources with custom statistics."""
    return FakeTerrain


@pytest.fixture
def make_epoch():
    """epoch(year, month, day=15, hour=12) -> epoch seconds (UTC)."""
    return epoch


@pytest.fixture
def make_weather_payload():
    """weather_payload(timestamps, rain, soil_moisture=None) -> archive payload."""
    return weather_payload


@pytest.fixture
def overpass_matchers() -> dict:
    """Predicates telling the spatial, hazard and geology overlay queries apart."""
    return {
        "spatial": is_spatial_query,
        "hazard": is_hazard_query,
        "geology": is_geology_query,
    }


@pytest.fixture
def harare_feature() -> dict:
    """GeoJSON Feature for a 1-km square field in Harare."""
    return {
        "type": "Feature",
        "properties": {},
        "geometry": {"type": "Polygon", "coordinates": [[list(p) for p in HARARE_RING]]},
    }


@pytest.fixture
def monthly_weather_payload() -> dict:
    """One year with exactly 100 mm of rain in each month."""
    return weather_payload([epoch(2023, m) for m in range(1, 13)], [100.0] * 12)


@pytest.fixture
def spatial_payload() -> dict:
    """A primary road about 1 km east of the field and a city to the north."""
    return {
        "elements": [
            {
                "type": "way",
                "id": 101,
                "tags": {"highway": "primary", "name": "Samora Machel Avenue"},
                "geometry": [
                    {"lat": -17.8292, "lon": 31.0617},
                    {"lat": -17.8292, "lon": 31.0717},
                ],
            },
            {
                "type": "node",
                "id": 201,
                "lat": -17.7292,
                "lon": 31.0522,
                "tags": {"place": "city", "name": "Northtown"},
            },
        ]
    }


@pytest.fixture
def ors_payload() -> dict:
    """Route east along a street then a primary road, all paved."""
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": [
                        [31.0522, -17.8292],
                        [31.0570, -17.8292],
                        [31.0617, -17.8292],
                    ],
                },
                "properties": {
                    "summary": {"distance": 1005.0, "duration": 90.0},
                    "extras": {
                        "waytypes": {"values": [[0, 1, 3], [1, 2, 1]]},
                        "surface": {"values": [[0, 2, 1]]},
                    },
                },
            }
        ],
    }


@pytest.fixture
def hazard_payload() -> dict:
    """One bridge and one stream along the route."""
    return {
        "elements": [
            {
                "type": "way",
                "id": 301,
                "tags": {"bridge": "yes", "highway": "primary"},
                "geometry": [
                    {"lat": -17.8292, "lon": 31.0580},
                    {"lat": -17.8292, "lon": 31.0585},
                ],
            },
            {
                "type": "way",
                "id": 302,
                "tags": {"waterway": "stream"},
                "geometry": [
                    {"lat": -17.8300, "lon": 31.0582},
                    {"lat": -17.8280, "lon": 31.0583},
                ],
            },
        ]
    }


@pytest.fixture
def reverse_geo_payload() -> dict:
    return {
        "display_name": "Harare, Harare Province, Zimbabwe",
        "address": {"city": "Harare", "country": "Zimbabwe", "country_code": "zw"},
    }


@pytest.fixture
def scripted_session(
    fake_session,
    monthly_weather_payload,
    spatial_payload,
    ors_payload,
    hazard_payload,
    reverse_geo_payload,
) -> FakeSession:
    """Session answering every upstream a site analysis touches."""
    fake_session.add("archive-api.open-meteo.com", FakeResponse(payload=monthly_weather_payload))
    fake_session.add("overpass-api.de", FakeResponse(payload=spatial_payload), match=is_spatial_query)
    fake_session.add("overpass-api.de", FakeResponse(payload=hazard_payload), match=is_hazard_query)
    fake_session.add("overpass-api.de", FakeResponse(payload={"elements": []}), match=is_geology_query)
    fake_session.add("openrouteservice.org", FakeResponse(payload=ors_payload))
    fake_session.add("macrostrat.org", FakeResponse(payload={"success": {"data": []}}))
    fake_session.add("nominatim.openstreetmap.org", FakeResponse(payload=reverse_geo_payload))
    return fake_session
