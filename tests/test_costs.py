import pytest

from vtc_pricing.models.domain import (
    FuelType,
    GeoPoint,
    OperatingBase,
    OrganizationPricingSettings,
    Vehicle,
    VehicleCategory,
    Zone,
    ZoneKind,
)
from vtc_pricing.services.adapters.fuel import (
    FuelPriceQuery,
    FuelPriceQuote,
    StaticFuelPriceProvider,
    resolve_fuel_price,
)
from vtc_pricing.services.adapters.toll import TollQuote
from vtc_pricing.services.costs.model import (
    DEFAULT_COST_PARAMETERS,
    ResolvedConsumption,
    calculate_cost_breakdown,
    calculate_zone_surcharges,
    combine_breakdowns,
    replace_toll,
    resolve_cost_parameters,
    resolve_fuel_consumption,
)

PARIS = GeoPoint(lat=48.8566, lng=2.3522)


def _org(**overrides) -> OrganizationPricingSettings:
    values = dict(base_rate_per_km=2.5, base_rate_per_hour=45.0)
    values.update(overrides)
    return OrganizationPricingSettings(**values)


def _category(**overrides) -> VehicleCategory:
    values = dict(id="berline", code="BERLINE", name="Berline", max_passengers=4)
    values.update(overrides)
    return VehicleCategory(**values)


def _vehicle(**overrides) -> Vehicle:
    values = dict(
        id="v1",
        registration="AB-123-CD",
        vehicle_category_id="berline",
        base=OperatingBase(id="b1", name="Paris", location=PARIS),
        passenger_capacity=4,
    )
    values.update(overrides)
    return Vehicle(**values)


def _zone(zone_id: str, parking: float = 0.0, access: float = 0.0) -> Zone:
    return Zone(
        id=zone_id,
        code=zone_id.upper(),
        name=zone_id,
        kind=ZoneKind.RADIUS,
        center=PARIS,
        radius_km=1.0,
        fixed_parking_surcharge=parking,
        fixed_access_fee=access,
    )


def _breakdown(distance_km=100.0, duration_minutes=60.0, **kwargs):
    return calculate_cost_breakdown(
        distance_km,
        duration_minutes,
        params=DEFAULT_COST_PARAMETERS,
        consumption=ResolvedConsumption(value=8.0, source="DEFAULT"),
        fuel_price=FuelPriceQuote(price_per_liter=1.789, source="DEFAULT"),
        **kwargs,
    )


def test_consumption_fallback_chain():
    org = _org(fuel_consumption_l100km=6.0)
    category = _category(average_consumption_l100km=7.0)

    assert resolve_fuel_consumption(_vehicle(consumption_l100km=9.5), category, org).source == "VEHICLE"
    assert resolve_fuel_consumption(_vehicle(), category, org).value == 7.0
    assert resolve_fuel_consumption(None, _category(), org).source == "ORGANIZATION"

    resolved = resolve_fuel_consumption(None, _category(average_consumption_l100km=0.0), _org())
    assert resolved.source == "DEFAULT"
    assert resolved.value == 8.0


def test_cost_parameters_keep_zero_rates():
    params = resolve_cost_parameters(_org(toll_cost_per_km=0.0, driver_hourly_cost=30.0))

    assert params.toll_cost_per_km == 0.0
    assert params.driver_hourly_cost == 30.0
    assert params.wear_cost_per_km == 0.10


def test_cost_breakdown_components():
    breakdown = _breakdown()

    assert breakdown.fuel.amount == pytest.approx(14.31)
    assert breakdown.tolls.amount == pytest.approx(15.0)
    assert breakdown.tolls.source == "ESTIMATE"
    assert breakdown.wear.amount == pytest.approx(10.0)
    assert breakdown.driver_cost.amount == pytest.approx(25.0)
    assert breakdown.parking.amount == 0.0
    assert breakdown.total == pytest.approx(64.31)


def test_real_toll_replaces_estimate():
    breakdown = replace_toll(_breakdown(), TollQuote(amount=22.4, source="API"))

    assert breakdown.tolls.amount == pytest.approx(22.4)
    assert breakdown.tolls.source == "API"
    assert breakdown.total == pytest.approx(71.71)


def test_zone_surcharges_charged_once_per_zone():
    airport = _zone("cdg", parking=5.0, access=2.0)
    center = _zone("paris", parking=3.0)

    assert calculate_zone_surcharges(airport, center).amount == pytest.approx(10.0)
    assert calculate_zone_surcharges(airport, airport).amount == pytest.approx(7.0)
    assert calculate_zone_surcharges(None, None).amount == 0.0

    breakdown = _breakdown(parking=calculate_zone_surcharges(airport, center))
    assert breakdown.total == pytest.approx(74.31)


def test_combine_breakdowns_sums_segments():
    combined = combine_breakdowns([_breakdown(10.0, 15.0), _breakdown(100.0, 60.0), _breakdown(10.0, 15.0)])

    assert combined.fuel.distance_km == pytest.approx(120.0)
    assert combined.driver_cost.duration_minutes == pytest.approx(90.0)
    assert combined.total == pytest.approx(
        sum(b.total for b in (_breakdown(10.0, 15.0), _breakdown(100.0, 60.0), _breakdown(10.0, 15.0))), abs=0.02
    )

    with pytest.raises(ValueError):
        combine_breakdowns([])


def test_fuel_price_tiers():
    query = FuelPriceQuery(pickup=PARIS, fuel_type=FuelType.GASOLINE)

    assert resolve_fuel_price(None, query, 1.7).source == "ORGANIZATION"
    assert resolve_fuel_price(StaticFuelPriceProvider(), query, None).price_per_liter == 1.899

    class RealtimeProvider:
        def get_fuel_price(self, query):
            return FuelPriceQuote(price_per_liter=1.65, source="REALTIME")

    quote = resolve_fuel_price(RealtimeProvider(), query, 1.7)
    assert quote.source == "REALTIME"
    assert quote.price_per_liter == 1.65
