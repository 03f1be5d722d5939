import pytest

from vtc_pricing.models.domain import (
    AddressEndpoint,
    Contact,
    ContactType,
    DispoPackage,
    ExcursionPackage,
    GeoPoint,
    PartnerContract,
    RouteDirection,
    Zone,
    ZoneKind,
    ZoneRoute,
    ZonesEndpoint,
)
from vtc_pricing.schemas.pricing import PricingRequest, TripType
from vtc_pricing.services.grid.matcher import match_grid

ORLY = GeoPoint(lat=48.7262, lng=2.3652)
PARIS = GeoPoint(lat=48.8566, lng=2.3522)

ORLY_ZONE = Zone(id="orly", code="ORLY", name="Orly", kind=ZoneKind.RADIUS, center=ORLY, radius_km=3.0)
PARIS_ZONE = Zone(id="paris", code="PARIS_0", name="Paris", kind=ZoneKind.RADIUS, center=PARIS, radius_km=5.0)


def _route(route_id: str, price: float = 65.0, **overrides) -> ZoneRoute:
    values = dict(
        id=route_id,
        vehicle_category_id="berline",
        origin=ZonesEndpoint(zone_ids=frozenset({"orly"})),
        destination=ZonesEndpoint(zone_ids=frozenset({"paris"})),
        fixed_price=price,
    )
    values.update(overrides)
    return ZoneRoute(**values)


def _partner(**contract) -> Contact:
    return Contact(
        id="agency",
        display_name="Travel Agency",
        contact_type=ContactType.PARTNER,
        contract=PartnerContract(id="contract-1", **contract),
    )


def _request(pickup=ORLY, dropoff=PARIS, **overrides) -> PricingRequest:
    values = dict(pickup=pickup, dropoff=dropoff, vehicle_category_id="berline")
    values.update(overrides)
    return PricingRequest(**values)


def _match(contact, request=None, pickup_zones=(ORLY_ZONE,), dropoff_zones=(PARIS_ZONE,), hours=0.0):
    return match_grid(request or _request(), contact, list(pickup_zones), list(dropoff_zones), hours)


def test_private_and_contractless_clients_fall_back():
    private = Contact(id="p", display_name="Jane Doe")
    no_contract = Contact(id="q", display_name="Agency", contact_type=ContactType.PARTNER)

    assert _match(None).fallback_reason == "PRIVATE_CLIENT"
    assert _match(private).fallback_reason == "PRIVATE_CLIENT"
    assert _match(no_contract).fallback_reason == "NO_CONTRACT"


def test_zone_route_match_and_override_price():
    result = _match(_partner(zone_routes=(_route("r1", override_price=59.0),)))

    assert result.is_match
    assert result.matched_grid.type == "ZoneRoute"
    assert result.matched_grid.price == pytest.approx(59.0)
    assert result.matched_grid.is_override_price
    assert result.rule.grid_id == "r1"


def test_first_matching_route_wins_and_rejections_are_traced():
    contact = _partner(
        zone_routes=(
            _route("inactive", is_active=False),
            _route("van", vehicle_category_id="van"),
            _route("first", price=65.0),
            _route("second", price=55.0),
        )
    )
    result = _match(contact)

    assert result.matched_grid.id == "first"
    checked = result.details.routes_checked
    assert [(c.id, c.rejection_reason) for c in checked] == [
        ("inactive", "INACTIVE"),
        ("van", "CATEGORY_MISMATCH"),
        ("first", None),
    ]
    assert checked[-1].origin_kind == "ZONES"


def test_route_direction():
    reverse_request = _request(pickup=PARIS, dropoff=ORLY)
    one_way = _partner(zone_routes=(_route("r1", direction=RouteDirection.A_TO_B),))
    both_ways = _partner(zone_routes=(_route("r1"),))
    reverse_only = _partner(zone_routes=(_route("r1", direction=RouteDirection.B_TO_A),))

    rejected = _match(one_way, reverse_request, (PARIS_ZONE,), (ORLY_ZONE,))
    assert rejected.fallback_reason == "NO_ROUTE_MATCH"
    assert rejected.details.routes_checked[0].rejection_reason == "DIRECTION_MISMATCH"
    assert _match(both_ways, reverse_request, (PARIS_ZONE,), (ORLY_ZONE,)).is_match
    assert _match(reverse_only, reverse_request, (PARIS_ZONE,), (ORLY_ZONE,)).is_match
    assert not _match(reverse_only).is_match


def test_zone_mismatch_with_overlapping_zones():
    contact = _partner(zone_routes=(_route("r1"),))
    outer = Zone(id="idf", code="IDF", name="Ile-de-France", kind=ZoneKind.RADIUS, center=PARIS, radius_km=40.0)

    assert not _match(contact, pickup_zones=(outer,)).is_match
    assert _match(contact, pickup_zones=(outer, ORLY_ZONE)).is_match


def test_address_endpoint_matches_within_100m():
    hotel = AddressEndpoint(lat=48.8566, lng=2.3522, place_id="hotel-ritz")
    contact = _partner(zone_routes=(_route("r1", destination=hotel),))

    near = _request(dropoff=GeoPoint(lat=48.8570, lng=2.3525))
    far = _request(dropoff=GeoPoint(lat=48.8620, lng=2.3522))
    by_place = _request(dropoff=GeoPoint(lat=48.8620, lng=2.3522), dropoff_place_id="hotel-ritz")

    assert _match(contact, near).is_match
    assert not _match(contact, far).is_match
    assert _match(contact, by_place).is_match
    assert _match(contact, near).details.routes_checked[0].destination_kind == "ADDRESS"


def test_trip_type_gates_the_grid_searched():
    excursion = ExcursionPackage(id="e1", name="Versailles", vehicle_category_id="berline", price=290.0)
    contact = _partner(zone_routes=(_route("r1"),), excursion_packages=(excursion,))

    transfer = _match(contact)
    assert transfer.matched_grid.type == "ZoneRoute"
    assert transfer.details.excursions_checked == []

    result = _match(contact, _request(trip_type=TripType.EXCURSION))
    assert result.matched_grid.type == "ExcursionPackage"
    assert result.matched_grid.price == pytest.approx(290.0)

    assert _match(contact, _request(trip_type=TripType.OFF_GRID)).fallback_reason == "OFF_GRID"


def test_temporal_vector_duration():
    package = ExcursionPackage(
        id="e1",
        name="Normandy",
        vehicle_category_id="berline",
        price=480.0,
        is_temporal_vector=True,
        minimum_duration_hours=4.0,
        allowed_origin_zone_ids=frozenset({"orly"}),
    )
    contact = _partner(excursion_packages=(package,))
    request = _request(trip_type=TripType.EXCURSION)

    short = _match(contact, request, hours=3.0)
    long = _match(contact, request, hours=5.25)

    assert (short.rule.duration_used_hours, short.rule.duration_source) == (4.0, "TEMPORAL_VECTOR")
    assert (long.rule.duration_used_hours, long.rule.duration_source) == (5.25, "ACTUAL_ESTIMATE")
    assert not _match(contact, request, pickup_zones=(PARIS_ZONE,), hours=3.0).is_match


def test_dispo_package_match():
    package = DispoPackage(id="d1", name="Half day", vehicle_category_id="berline", base_price=240.0)
    contact = _partner(dispo_packages=(package,))
    request = _request(dropoff=None, trip_type=TripType.DISPO, duration_hours=4.0)

    result = _match(contact, request, dropoff_zones=())

    assert result.matched_grid.type == "DispoPackage"
    assert result.matched_grid.price == pytest.approx(240.0)
    assert _match(_partner(), request).fallback_reason == "NO_DISPO_MATCH"
