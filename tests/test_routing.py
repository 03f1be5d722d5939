import httpx
import pytest

from vtc_pricing.models.domain import GeoPoint
from vtc_pricing.services.geospatial import decode_polyline, encode_polyline, haversine_km
from vtc_pricing.services.routing import osrm_client
from vtc_pricing.services.routing.osrm_client import OSRMClient
from vtc_pricing.services.routing.provider import (
    HaversineRoutingProvider,
    OSRMRoutingProvider,
    estimate_route,
    route_or_estimate,
)

PARIS = GeoPoint(lat=48.8566, lng=2.3522)
LA_DEFENSE = GeoPoint(lat=48.8918, lng=2.2362)


def test_haversine_known_distance():
    # Paris to Lyon is about 392 km as the crow flies
    assert haversine_km(48.8566, 2.3522, 45.7640, 4.8357) == pytest.approx(392.0, abs=2.0)


def test_estimate_applies_road_factor_and_speed():
    straight = haversine_km(PARIS.lat, PARIS.lng, LA_DEFENSE.lat, LA_DEFENSE.lng)
    quote = estimate_route(PARIS, LA_DEFENSE)

    assert quote.source == "HAVERSINE_ESTIMATE"
    assert quote.distance_km == pytest.approx(straight * 1.3, abs=0.01)
    assert quote.duration_minutes == pytest.approx(straight * 1.3 / 50 * 60, abs=0.02)

    slow = HaversineRoutingProvider(average_speed_kmh=25.0).route(PARIS, LA_DEFENSE)
    assert slow.duration_minutes == pytest.approx(quote.duration_minutes * 2, abs=0.02)


def test_polyline_decoding():
    decoded = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")
    expected = [(38.5, -120.2), (40.7, -120.95), (43.252, -126.453)]
    assert len(decoded) == len(expected)
    for (lat, lng), (expected_lat, expected_lng) in zip(decoded, expected):
        assert lat == pytest.approx(expected_lat)
        assert lng == pytest.approx(expected_lng)

    points = [(48.8566, 2.3522), (48.86, 2.34), (48.8918, 2.2362)]
    assert [pytest.approx(p) for p in points] == decode_polyline(encode_polyline(points))


@pytest.mark.parametrize("truncated", ["_p~iF", "_p~iF~ps|U_", "_"])
def test_truncated_polyline_is_rejected(truncated):
    with pytest.raises(ValueError):
        decode_polyline(truncated)


def test_osrm_provider_parses_best_route():
    class DummyOSRM:
        def route(self, coordinates):
            assert coordinates == [(PARIS.lat, PARIS.lng), (LA_DEFENSE.lat, LA_DEFENSE.lng)]
            return {"code": "Ok", "routes": [{"distance": 11234.0, "duration": 1260.0, "geometry": "abc"}]}

    quote = OSRMRoutingProvider(client=DummyOSRM()).route(PARIS, LA_DEFENSE)

    assert quote.source == "ROUTING_API"
    assert quote.distance_km == pytest.approx(11.23)
    assert quote.duration_minutes == pytest.approx(21.0)
    assert quote.encoded_polyline == "abc"


def test_osrm_provider_degrades_to_estimate():
    class BrokenOSRM:
        def route(self, coordinates):
            raise ConnectionError("OSRM down")

    quote = OSRMRoutingProvider(client=BrokenOSRM()).route(PARIS, LA_DEFENSE)

    assert quote.source == "HAVERSINE_ESTIMATE"
    assert quote.distance_km == estimate_route(PARIS, LA_DEFENSE).distance_km


def test_route_or_estimate_survives_unexpected_errors():
    class ExplodingProvider:
        def route(self, origin, destination):
            raise RuntimeError("boom")

    assert route_or_estimate(ExplodingProvider(), PARIS, LA_DEFENSE).source == "HAVERSINE_ESTIMATE"
    assert route_or_estimate(None, PARIS, LA_DEFENSE).source == "HAVERSINE_ESTIMATE"


def test_osrm_client_builds_lon_lat_path():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 1000.0, "duration": 120.0}]})

    client = OSRMClient(
        base_url="http://osrm.test",
        max_retries=0,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    data = client.route([(48.8566, 2.3522), (48.8918, 2.2362)])

    assert data["routes"][0]["distance"] == 1000.0
    assert seen[0].url.path == "/route/v1/driving/2.3522,48.8566;2.2362,48.8918"
    assert seen[0].url.params["geometries"] == "polyline"


def test_osrm_client_rejects_error_codes():
    client = OSRMClient(
        base_url="http://osrm.test",
        max_retries=0,
        client=httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"code": "NoRoute", "message": "x"}))
        ),
    )

    with pytest.raises(ValueError):
        client.route([(48.8566, 2.3522), (48.8918, 2.2362)])
    with pytest.raises(ValueError):
        client.route([(48.8566, 2.3522)])


def test_check_health(monkeypatch):
    class DummyResponse:
        def raise_for_status(self):
            return None

        def json(self):
            return {"code": "Ok"}

    monkeypatch.setattr(osrm_client.httpx, "get", lambda url, params=None, timeout=None: DummyResponse())

    assert osrm_client.check_health("http://osrm.test")
    monkeypatch.setattr(osrm_client.settings, "osrm_base_url", None)
    assert not osrm_client.check_health()
