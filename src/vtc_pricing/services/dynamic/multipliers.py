"""Multiplier chain steps: zone, vehicle category, advanced rates, seasonal and target margin."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Literal, Optional, Sequence

from ...models.domain import (
    AdjustmentType,
    AdvancedRate,
    AdvancedRateType,
    SeasonalMultiplier,
    VehicleCategory,
    Zone,
    ZoneMultiplierAggregation,
)
from ...schemas.rules import (
    AdvancedRateRule,
    SeasonalMultiplierRule,
    TargetMarginRule,
    VehicleCategoryMultiplierRule,
    ZoneMultiplierRule,
)
from ..rounding import round2, round3

WEEKEND_DAYS = (0, 6)

ZoneMultiplierSource = Literal["PICKUP", "DROPOFF", "AVERAGE", "ROUTE_SEGMENTATION"]


def aggregate_zone_multiplier(
    pickup_zone: Optional[Zone],
    dropoff_zone: Optional[Zone],
    aggregation: ZoneMultiplierAggregation = ZoneMultiplierAggregation.MAX,
) -> tuple[float, ZoneMultiplierSource]:
    """Combine pickup and dropoff zone multipliers; an unzoned endpoint counts as 1.0."""

    pickup = pickup_zone.price_multiplier if pickup_zone else 1.0
    dropoff = dropoff_zone.price_multiplier if dropoff_zone else 1.0
    match aggregation:
        case ZoneMultiplierAggregation.MAX:
            return (dropoff, "DROPOFF") if dropoff > pickup else (pickup, "PICKUP")
        case ZoneMultiplierAggregation.PICKUP_ONLY:
            return pickup, "PICKUP"
        case ZoneMultiplierAggregation.DROPOFF_ONLY:
            return dropoff, "DROPOFF"
        case ZoneMultiplierAggregation.AVERAGE:
            return round3((pickup + dropoff) / 2), "AVERAGE"
        case _:
            raise ValueError(f"Unknown zone multiplier aggregation '{aggregation}'.")


def apply_zone_multiplier(
    price: float,
    multiplier: float,
    source: ZoneMultiplierSource,
    aggregation: ZoneMultiplierAggregation,
    pickup_zone: Optional[Zone] = None,
    dropoff_zone: Optional[Zone] = None,
) -> tuple[float, Optional[ZoneMultiplierRule]]:
    adjusted = round2(price * multiplier)
    if adjusted == price:
        return price, None
    rule = ZoneMultiplierRule(
        description=f"Zone multiplier x{multiplier} ({source.lower().replace('_', ' ')})",
        price_before=price,
        price_after=adjusted,
        multiplier=multiplier,
        source=source,
        aggregation=aggregation.value,
        pickup_zone_code=pickup_zone.code if pickup_zone else None,
        dropoff_zone_code=dropoff_zone.code if dropoff_zone else None,
    )
    return adjusted, rule


def apply_category_multiplier(
    price: float, category: VehicleCategory
) -> tuple[float, Optional[VehicleCategoryMultiplierRule]]:
    adjusted = round2(price * category.price_multiplier)
    if adjusted == price:
        return price, None
    rule = VehicleCategoryMultiplierRule(
        description=f"Vehicle category '{category.name}' x{category.price_multiplier}",
        price_before=price,
        price_after=adjusted,
        category_id=category.id,
        category_name=category.name,
        multiplier=category.price_multiplier,
    )
    return adjusted, rule


def is_within_time_window(moment: time, start: time, end: time) -> bool:
    """Inclusive start, exclusive end; windows with ``start > end`` wrap past midnight."""

    if start <= end:
        return start <= moment < end
    return moment >= start or moment < end


def day_of_week(moment: datetime) -> int:
    """0 for Sunday through 6 for Saturday."""

    return (moment.weekday() + 1) % 7


def is_advanced_rate_applicable(
    rate: AdvancedRate,
    pickup_at: Optional[datetime],
    distance_km: float,
    zone_ids: frozenset[str],
) -> bool:
    if not rate.is_active or pickup_at is None:
        return False
    if rate.min_distance_km is not None and distance_km < rate.min_distance_km:
        return False
    if rate.max_distance_km is not None and distance_km > rate.max_distance_km:
        return False
    if rate.zone_id is not None and rate.zone_id not in zone_ids:
        return False

    match rate.applies_to:
        case AdvancedRateType.NIGHT:
            if rate.start_time is None or rate.end_time is None:
                return False
            if not is_within_time_window(pickup_at.time(), rate.start_time, rate.end_time):
                return False
            return rate.days_of_week is None or day_of_week(pickup_at) in rate.days_of_week
        case AdvancedRateType.WEEKEND:
            days = rate.days_of_week if rate.days_of_week is not None else WEEKEND_DAYS
            if day_of_week(pickup_at) not in days:
                return False
            if rate.start_time is not None and rate.end_time is not None:
                return is_within_time_window(pickup_at.time(), rate.start_time, rate.end_time)
            return True
        case _:
            raise ValueError(f"Unknown advanced rate type '{rate.applies_to}'.")


def apply_advanced_rate(price: float, rate: AdvancedRate) -> float:
    match rate.adjustment_type:
        case AdjustmentType.PERCENTAGE:
            return round2(price * (1 + rate.value / 100))
        case AdjustmentType.FIXED_AMOUNT:
            return round2(price + rate.value)
        case _:
            raise ValueError(f"Unknown adjustment type '{rate.adjustment_type}'.")


def apply_advanced_rates(
    price: float,
    rates: Sequence[AdvancedRate],
    pickup_at: Optional[datetime],
    distance_km: float,
    zone_ids: frozenset[str],
) -> tuple[float, list[AdvancedRateRule]]:
    """Apply every applicable rate, highest priority first (stable for equal priorities)."""

    rules: list[AdvancedRateRule] = []
    applicable = [rate for rate in rates if is_advanced_rate_applicable(rate, pickup_at, distance_km, zone_ids)]
    for rate in sorted(applicable, key=lambda r: -r.priority):
        adjusted = apply_advanced_rate(price, rate)
        if adjusted == price:
            continue
        sign = "+" if rate.value >= 0 else ""
        unit = "%" if rate.adjustment_type is AdjustmentType.PERCENTAGE else " EUR"
        rules.append(
            AdvancedRateRule(
                description=f"{rate.name} ({sign}{rate.value}{unit})",
                price_before=price,
                price_after=adjusted,
                rate_id=rate.id,
                rate_name=rate.name,
                applies_to=rate.applies_to.value,
                adjustment_type=rate.adjustment_type.value,
                value=rate.value,
                priority=rate.priority,
            )
        )
        price = adjusted
    return price, rules


def select_seasonal_multiplier(
    multipliers: Sequence[SeasonalMultiplier], on: date
) -> Optional[SeasonalMultiplier]:
    """Highest-priority active multiplier whose date range (both ends inclusive) covers ``on``."""

    active = [m for m in multipliers if m.is_active and m.start_date <= on <= m.end_date]
    if not active:
        return None
    return max(active, key=lambda m: m.priority)


def apply_seasonal_multiplier(
    price: float,
    multipliers: Sequence[SeasonalMultiplier],
    pickup_at: Optional[datetime],
) -> tuple[float, Optional[SeasonalMultiplierRule]]:
    if pickup_at is None:
        return price, None
    selected = select_seasonal_multiplier(multipliers, pickup_at.date())
    if selected is None:
        return price, None
    adjusted = round2(price * selected.multiplier)
    if adjusted == price:
        return price, None
    rule = SeasonalMultiplierRule(
        description=f"Seasonal multiplier '{selected.name}' x{selected.multiplier}",
        price_before=price,
        price_after=adjusted,
        multiplier_id=selected.id,
        name=selected.name,
        multiplier=selected.multiplier,
        priority=selected.priority,
    )
    return adjusted, rule


def apply_target_margin(price: float, target_margin_percent: float) -> tuple[float, Optional[TargetMarginRule]]:
    adjusted = round2(price * (1 + target_margin_percent / 100))
    if adjusted == price:
        return price, None
    rule = TargetMarginRule(
        description=f"Target margin +{target_margin_percent}%",
        price_before=price,
        price_after=adjusted,
        target_margin_percent=target_margin_percent,
    )
    return adjusted, rule
