import pytest

from vtc_pricing.models.domain import (
    GeoPoint,
    OperatingBase,
    OrganizationPricingSettings,
    Vehicle,
    VehicleCategory,
    VehicleStatus,
)
from vtc_pricing.schemas.pricing import RouteLeg
from vtc_pricing.services.adapters.fuel import FuelPriceQuote
from vtc_pricing.services.vehicles.selector import SelectionRequest, has_capacity, select_vehicle

PICKUP = GeoPoint(lat=48.8566, lng=2.3522)
DROPOFF = GeoPoint(lat=48.8918, lng=2.2362)

PARIS_BASE = OperatingBase(id="paris", name="Paris garage", location=GeoPoint(lat=48.8570, lng=2.3530))
VERSAILLES_BASE = OperatingBase(id="versailles", name="Versailles garage", location=GeoPoint(lat=48.8049, lng=2.1204))
LYON_BASE = OperatingBase(id="lyon", name="Lyon garage", location=GeoPoint(lat=45.7640, lng=4.8357))

ORG = OrganizationPricingSettings(base_rate_per_km=2.5, base_rate_per_hour=45.0)
CATEGORY = VehicleCategory(id="berline", code="BERLINE", name="Berline", max_passengers=4)
FUEL = FuelPriceQuote(price_per_liter=1.789, source="DEFAULT")


def _vehicle(vehicle_id: str, base: OperatingBase = PARIS_BASE, **overrides) -> Vehicle:
    values = dict(
        id=vehicle_id,
        registration=f"{vehicle_id.upper()}-123",
        vehicle_category_id="berline",
        base=base,
        passenger_capacity=4,
        luggage_capacity=3,
    )
    values.update(overrides)
    return Vehicle(**values)


def _request(**overrides) -> SelectionRequest:
    values = dict(
        pickup=PICKUP,
        return_origin=DROPOFF,
        vehicle_category_id="berline",
        passenger_count=2,
        luggage_count=1,
        service_leg=RouteLeg(distance_km=10.0, duration_minutes=20.0, routing_source="REQUEST"),
    )
    values.update(overrides)
    return SelectionRequest(**values)


def _select(vehicles, request=None, **kwargs):
    return select_vehicle(vehicles, request or _request(), org=ORG, category=CATEGORY, fuel_price=FUEL, **kwargs)


def test_capacity_checks_each_dimension():
    vehicle = _vehicle("v1")

    assert has_capacity(vehicle, 4, 3)
    assert not has_capacity(vehicle, 5, 0)
    assert not has_capacity(vehicle, 1, 4)
    assert has_capacity(_vehicle("v2", luggage_capacity=None), 4, 12)


@pytest.mark.parametrize(
    "vehicles, request_overrides, reason",
    [
        ([], {}, "NO_VEHICLES_IN_FLEET"),
        ([_vehicle("v1", status=VehicleStatus.MAINTENANCE)], {}, "NO_ACTIVE_VEHICLES"),
        ([_vehicle("v1")], {"passenger_count": 6}, "NO_VEHICLES_MATCH_CAPACITY"),
        ([_vehicle("v1", vehicle_category_id="van")], {}, "NO_VEHICLES_MATCH_CATEGORY"),
        ([_vehicle("v1", base=LYON_BASE)], {}, "ALL_BASES_TOO_FAR"),
    ],
)
def test_fallback_reasons(vehicles, request_overrides, reason):
    info = _select(vehicles, _request(**request_overrides))

    assert info.fallback_used
    assert info.fallback_reason == reason
    assert info.selected_vehicle_id is None


def test_capacity_filter_count_is_reported():
    info = _select([_vehicle("v1"), _vehicle("v2", passenger_capacity=2)], _request(passenger_count=3))

    assert info.total_vehicles == 2
    assert info.candidates_after_status_filter == 2
    assert info.candidates_after_capacity_filter == 1

    none_fit = _select([_vehicle("v1")], _request(passenger_count=6))
    assert none_fit.candidates_after_status_filter == 1
    assert none_fit.candidates_after_capacity_filter == 0
    assert none_fit.candidates_after_category_filter == 0


def test_selects_cheapest_vehicle_with_three_legs():
    info = _select([_vehicle("far", base=VERSAILLES_BASE), _vehicle("near")])

    assert not info.fallback_used
    assert info.selected_vehicle_id == "near"
    assert info.selected_base_id == "paris"
    assert info.candidates_evaluated == 2
    assert info.candidates_after_distance_filter == 2

    best = info.candidates[0]
    assert [segment.name for segment in best.segments] == ["APPROACH", "SERVICE", "RETURN"]
    assert best.segments[1].distance_km == 10.0
    assert best.internal_cost == pytest.approx(sum(segment.cost.total for segment in best.segments), abs=0.02)
    assert info.candidates[0].internal_cost <= info.candidates[1].internal_cost


def test_lower_consumption_wins_from_the_same_base():
    info = _select([_vehicle("thirsty", consumption_l100km=14.0), _vehicle("frugal", consumption_l100km=5.0)])

    assert info.selected_vehicle_id == "frugal"


def test_equal_costs_break_ties_by_vehicle_id():
    info = _select([_vehicle("v2"), _vehicle("v1")])

    assert info.selected_vehicle_id == "v1"


def test_candidate_cap_keeps_closest_bases():
    vehicles = [_vehicle("far", base=VERSAILLES_BASE), _vehicle("near-1"), _vehicle("near-2")]

    info = _select(vehicles, max_candidates=2)

    assert info.candidates_evaluated == 2
    assert {c.vehicle_id for c in info.candidates} == {"near-1", "near-2"}


def test_routing_failures_do_not_drop_candidates():
    class FlakyRouting:
        def route(self, origin, destination):
            raise ConnectionError("routing down")

    info = _select([_vehicle("v1"), _vehicle("v2", base=VERSAILLES_BASE)], routing_provider=FlakyRouting())

    assert info.candidates_evaluated == 2
    assert info.candidates[0].segments[0].routing_source == "HAVERSINE_ESTIMATE"
