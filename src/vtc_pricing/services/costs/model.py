"""Internal cost model: fuel, tolls, wear, driver and parking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from ...models.domain import OrganizationPricingSettings, Vehicle, VehicleCategory, Zone
from ...schemas.pricing import CostBreakdown, DriverCost, FuelCost, ParkingCost, TollCost, WearCost
from ..adapters.fuel import FuelPriceQuote
from ..adapters.toll import TollQuote
from ..rounding import round2

ConsumptionSource = Literal["VEHICLE", "CATEGORY", "ORGANIZATION", "DEFAULT"]


@dataclass(slots=True, frozen=True)
class CostParameters:
    fuel_consumption_l100km: float
    toll_cost_per_km: float
    wear_cost_per_km: float
    driver_hourly_cost: float


DEFAULT_COST_PARAMETERS = CostParameters(
    fuel_consumption_l100km=8.0,
    toll_cost_per_km=0.15,
    wear_cost_per_km=0.10,
    driver_hourly_cost=25.0,
)


@dataclass(slots=True, frozen=True)
class ResolvedConsumption:
    value: float
    source: ConsumptionSource


def _first_positive(*values: Optional[float]) -> Optional[float]:
    for value in values:
        if value is not None and value > 0:
            return value
    return None


def resolve_cost_parameters(org: OrganizationPricingSettings) -> CostParameters:
    """Organization values where set, defaults otherwise. Zero is a legitimate toll or wear rate."""

    def pick(value: Optional[float], default: float) -> float:
        return value if value is not None and value >= 0 else default

    return CostParameters(
        fuel_consumption_l100km=_first_positive(org.fuel_consumption_l100km)
        or DEFAULT_COST_PARAMETERS.fuel_consumption_l100km,
        toll_cost_per_km=pick(org.toll_cost_per_km, DEFAULT_COST_PARAMETERS.toll_cost_per_km),
        wear_cost_per_km=pick(org.wear_cost_per_km, DEFAULT_COST_PARAMETERS.wear_cost_per_km),
        driver_hourly_cost=pick(org.driver_hourly_cost, DEFAULT_COST_PARAMETERS.driver_hourly_cost),
    )


def resolve_fuel_consumption(
    vehicle: Optional[Vehicle],
    category: Optional[VehicleCategory],
    org: OrganizationPricingSettings,
) -> ResolvedConsumption:
    """Resolve consumption through vehicle, category, organization then default; only positive values count."""

    chain: list[tuple[ConsumptionSource, Optional[float]]] = [
        ("VEHICLE", vehicle.consumption_l100km if vehicle else None),
        ("CATEGORY", category.average_consumption_l100km if category else None),
        ("ORGANIZATION", org.fuel_consumption_l100km),
    ]
    for source, value in chain:
        if value is not None and value > 0:
            return ResolvedConsumption(value=value, source=source)
    return ResolvedConsumption(value=DEFAULT_COST_PARAMETERS.fuel_consumption_l100km, source="DEFAULT")


def calculate_fuel_cost(distance_km: float, consumption: ResolvedConsumption, fuel_price: FuelPriceQuote) -> FuelCost:
    amount = round2(distance_km * (consumption.value / 100) * fuel_price.price_per_liter)
    return FuelCost(
        amount=amount,
        distance_km=distance_km,
        consumption_l100km=consumption.value,
        consumption_source=consumption.source,
        price_per_liter=fuel_price.price_per_liter,
        price_source=fuel_price.source,
        is_stale=fuel_price.is_stale,
    )


def calculate_toll_cost(distance_km: float, rate_per_km: float, quote: Optional[TollQuote] = None) -> TollCost:
    """Distance-rate estimate, or the amount of a real route quote when one is known."""

    if quote is not None and quote.source != "ESTIMATE":
        return TollCost(amount=round2(quote.amount), distance_km=distance_km, rate_per_km=rate_per_km, source=quote.source)
    return TollCost(amount=round2(distance_km * rate_per_km), distance_km=distance_km, rate_per_km=rate_per_km)


def calculate_wear_cost(distance_km: float, rate_per_km: float) -> WearCost:
    return WearCost(amount=round2(distance_km * rate_per_km), distance_km=distance_km, rate_per_km=rate_per_km)


def calculate_driver_cost(duration_minutes: float, hourly_rate: float) -> DriverCost:
    return DriverCost(
        amount=round2(duration_minutes / 60 * hourly_rate),
        duration_minutes=duration_minutes,
        hourly_rate=hourly_rate,
    )


def calculate_zone_surcharges(pickup_zone: Optional[Zone], dropoff_zone: Optional[Zone]) -> ParkingCost:
    """Parking and access fees of the pickup and dropoff zones, charged once per distinct zone."""

    zones: list[Zone] = []
    for zone in (pickup_zone, dropoff_zone):
        if zone is not None and all(zone.id != seen.id for seen in zones):
            zones.append(zone)
    charged = [zone for zone in zones if zone.surcharge_total > 0]
    if not charged:
        return ParkingCost()
    amount = round2(sum(zone.surcharge_total for zone in charged))
    description = ", ".join(f"{zone.code}: {round2(zone.surcharge_total):.2f} EUR" for zone in charged)
    return ParkingCost(amount=amount, description=description)


def _total(fuel: FuelCost, tolls: TollCost, wear: WearCost, driver: DriverCost, parking: ParkingCost) -> float:
    # Components are already rounded; rounding the sum again is required for invoice parity.
    return round2(fuel.amount + tolls.amount + wear.amount + driver.amount + parking.amount)


def calculate_cost_breakdown(
    distance_km: float,
    duration_minutes: float,
    *,
    params: CostParameters,
    consumption: ResolvedConsumption,
    fuel_price: FuelPriceQuote,
    toll_quote: Optional[TollQuote] = None,
    parking: Optional[ParkingCost] = None,
) -> CostBreakdown:
    fuel = calculate_fuel_cost(distance_km, consumption, fuel_price)
    tolls = calculate_toll_cost(distance_km, params.toll_cost_per_km, toll_quote)
    wear = calculate_wear_cost(distance_km, params.wear_cost_per_km)
    driver = calculate_driver_cost(duration_minutes, params.driver_hourly_cost)
    parking = parking or ParkingCost()
    return CostBreakdown(
        fuel=fuel,
        tolls=tolls,
        wear=wear,
        driver_cost=driver,
        parking=parking,
        total=_total(fuel, tolls, wear, driver, parking),
    )


def replace_toll(breakdown: CostBreakdown, quote: TollQuote) -> CostBreakdown:
    """Swap the toll estimate for a real figure and recompute the total."""

    tolls = calculate_toll_cost(breakdown.tolls.distance_km, breakdown.tolls.rate_per_km, quote)
    return breakdown.model_copy(
        update={
            "tolls": tolls,
            "total": _total(breakdown.fuel, tolls, breakdown.wear, breakdown.driver_cost, breakdown.parking),
        }
    )


def combine_breakdowns(breakdowns: Sequence[CostBreakdown]) -> CostBreakdown:
    """Sum per-segment breakdowns (approach, service, return) into one."""

    if not breakdowns:
        raise ValueError("At least one cost breakdown is required.")
    first = breakdowns[0]
    fuel = first.fuel.model_copy(
        update={
            "amount": round2(sum(b.fuel.amount for b in breakdowns)),
            "distance_km": round2(sum(b.fuel.distance_km for b in breakdowns)),
        }
    )
    real_sources = [b.tolls.source for b in breakdowns if b.tolls.source != "ESTIMATE"]
    tolls = first.tolls.model_copy(
        update={
            "amount": round2(sum(b.tolls.amount for b in breakdowns)),
            "distance_km": round2(sum(b.tolls.distance_km for b in breakdowns)),
            "source": real_sources[0] if real_sources else "ESTIMATE",
        }
    )
    wear = first.wear.model_copy(
        update={
            "amount": round2(sum(b.wear.amount for b in breakdowns)),
            "distance_km": round2(sum(b.wear.distance_km for b in breakdowns)),
        }
    )
    driver = first.driver_cost.model_copy(
        update={
            "amount": round2(sum(b.driver_cost.amount for b in breakdowns)),
            "duration_minutes": round2(sum(b.driver_cost.duration_minutes for b in breakdowns)),
        }
    )
    parking_parts = [b.parking for b in breakdowns if b.parking.amount > 0]
    parking = ParkingCost(
        amount=round2(sum(p.amount for p in parking_parts)),
        description="; ".join(p.description for p in parking_parts),
    )
    return CostBreakdown(
        fuel=fuel,
        tolls=tolls,
        wear=wear,
        driver_cost=driver,
        parking=parking,
        total=_total(fuel, tolls, wear, driver, parking),
    )
