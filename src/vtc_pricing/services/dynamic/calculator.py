"""Formula-based pricing: base price from distance/duration, then the multiplier chain."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from ...models.domain import OrganizationPricingSettings, PricingSnapshot, VehicleCategory, Zone
from ...schemas.pricing import DispoDetails, PricingRequest, TripType
from ...schemas.rules import AppliedRule, DynamicBaseRule, RoundTripRule
from ..rounding import round2
from .multipliers import (
    aggregate_zone_multiplier,
    apply_advanced_rates,
    apply_category_multiplier,
    apply_seasonal_multiplier,
    apply_target_margin,
    apply_zone_multiplier,
)

RateSource = Literal["CATEGORY", "ORGANIZATION"]


@dataclass(slots=True, frozen=True)
class RateResolution:
    rate_per_km: float
    rate_per_hour: float
    rate_per_km_source: RateSource
    rate_per_hour_source: RateSource


@dataclass(slots=True, frozen=True)
class BasePriceCalculation:
    distance_based_price: float
    duration_based_price: float
    price: float
    method: Literal["DISTANCE", "DURATION", "DISPO_HOURS"]


@dataclass(slots=True)
class DynamicPriceOutcome:
    price: float
    rates: RateResolution
    rules: list[AppliedRule] = field(default_factory=list)
    dispo: Optional[DispoDetails] = None


def resolve_rates(category: Optional[VehicleCategory], org: OrganizationPricingSettings) -> RateResolution:
    """Category-specific rates first, organization base rates otherwise, resolved per rate."""

    if category is not None and category.default_rate_per_km is not None and category.default_rate_per_km > 0:
        rate_per_km, km_source = category.default_rate_per_km, "CATEGORY"
    else:
        rate_per_km, km_source = org.base_rate_per_km, "ORGANIZATION"
    if category is not None and category.default_rate_per_hour is not None and category.default_rate_per_hour > 0:
        rate_per_hour, hour_source = category.default_rate_per_hour, "CATEGORY"
    else:
        rate_per_hour, hour_source = org.base_rate_per_hour, "ORGANIZATION"
    return RateResolution(
        rate_per_km=rate_per_km,
        rate_per_hour=rate_per_hour,
        rate_per_km_source=km_source,
        rate_per_hour_source=hour_source,
    )


def calculate_base_price(
    distance_km: float, duration_minutes: float, rate_per_km: float, rate_per_hour: float
) -> BasePriceCalculation:
    distance_based = round2(distance_km * rate_per_km)
    duration_based = round2(duration_minutes / 60 * rate_per_hour)
    if distance_based >= duration_based:
        return BasePriceCalculation(distance_based, duration_based, distance_based, "DISTANCE")
    return BasePriceCalculation(distance_based, duration_based, duration_based, "DURATION")


def calculate_dispo_details(
    duration_hours: float, distance_km: float, org: OrganizationPricingSettings
) -> DispoDetails:
    """Kilometre allowance of an hourly hire; the overage is reported for cost follow-up, not billed."""

    included_km = round2(duration_hours * org.dispo_included_km_per_hour)
    overage_km = round2(max(0.0, distance_km - included_km))
    return DispoDetails(
        duration_hours=duration_hours,
        included_distance_km=included_km,
        actual_distance_km=distance_km,
        overage_distance_km=overage_km,
        overage_rate_per_km=org.dispo_overage_rate_per_km,
        overage_amount=round2(overage_km * org.dispo_overage_rate_per_km),
    )


def calculate_dynamic_price(
    request: PricingRequest,
    snapshot: PricingSnapshot,
    *,
    distance_km: float,
    duration_minutes: float,
    pickup_zone: Optional[Zone] = None,
    dropoff_zone: Optional[Zone] = None,
    weighted_zone_multiplier: Optional[float] = None,
) -> DynamicPriceOutcome:
    """Price a trip from the formula and the fixed multiplier chain.

    Order: base price, zone multiplier, vehicle category multiplier, advanced rates, seasonal
    multiplier, round-trip doubling, target margin. Every step that changes the price appends a rule.

    Args:
        weighted_zone_multiplier: distance-weighted multiplier from route segmentation; replaces
            the pickup/dropoff aggregation when given.
    """
    org = snapshot.settings
    category = snapshot.vehicle_category
    rates = resolve_rates(category, org)
    outcome = DynamicPriceOutcome(price=0.0, rates=rates)

    if request.trip_type is TripType.DISPO:
        hours = request.duration_hours or duration_minutes / 60
        base_price = round2(hours * rates.rate_per_hour)
        base = BasePriceCalculation(
            distance_based_price=0.0, duration_based_price=base_price, price=base_price, method="DISPO_HOURS"
        )
        outcome.dispo = calculate_dispo_details(hours, distance_km, org)
        description = f"Dispo: {hours}h x {rates.rate_per_hour} EUR/h"
    else:
        base = calculate_base_price(distance_km, duration_minutes, rates.rate_per_km, rates.rate_per_hour)
        description = (
            f"MAX({distance_km} km x {rates.rate_per_km}, {duration_minutes} min x {rates.rate_per_hour}/h)"
        )
    outcome.rules.append(
        DynamicBaseRule(
            description=description,
            distance_km=distance_km,
            duration_minutes=duration_minutes,
            rate_per_km=rates.rate_per_km,
            rate_per_hour=rates.rate_per_hour,
            rate_per_km_source=rates.rate_per_km_source,
            rate_per_hour_source=rates.rate_per_hour_source,
            distance_based_price=base.distance_based_price,
            duration_based_price=base.duration_based_price,
            selected_method=base.method,
            base_price=base.price,
        )
    )
    price = base.price

    if weighted_zone_multiplier is not None:
        multiplier, source = weighted_zone_multiplier, "ROUTE_SEGMENTATION"
    else:
        multiplier, source = aggregate_zone_multiplier(pickup_zone, dropoff_zone, org.zone_multiplier_aggregation)
    price, zone_rule = apply_zone_multiplier(
        price, multiplier, source, org.zone_multiplier_aggregation, pickup_zone, dropoff_zone
    )
    if zone_rule:
        outcome.rules.append(zone_rule)

    price, category_rule = apply_category_multiplier(price, category)
    if category_rule:
        outcome.rules.append(category_rule)

    zone_ids = frozenset(zone.id for zone in (pickup_zone, dropoff_zone) if zone is not None)
    price, rate_rules = apply_advanced_rates(
        price, snapshot.advanced_rates, request.pickup_at, distance_km, zone_ids
    )
    outcome.rules.extend(rate_rules)

    price, seasonal_rule = apply_seasonal_multiplier(price, snapshot.seasonal_multipliers, request.pickup_at)
    if seasonal_rule:
        outcome.rules.append(seasonal_rule)

    if request.is_round_trip and request.trip_type is TripType.TRANSFER:
        doubled = round2(price * 2)
        outcome.rules.append(
            RoundTripRule(description="Round trip: one-way price x2", price_before=price, price_after=doubled)
        )
        price = doubled

    price, margin_rule = apply_target_margin(price, org.target_margin_percent)
    if margin_rule:
        outcome.rules.append(margin_rule)

    outcome.price = price
    return outcome
