"""Transversal trip decomposition with transit-zone discounts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from ...schemas.pricing import TransversalDecomposition, TransversalSegment, ZoneSegmentationInfo
from ...schemas.rules import AppliedRule, RuleType, TransitDiscountRule, TransversalDecompositionRule
from ..rounding import round2
from .route_segmentation import OUTSIDE_ZONES_CODE


# Price-chain steps applied after the zone multiplier; they scale every span alike.
CHAIN_ADJUSTMENT_RULES = (RuleType.VEHICLE_CATEGORY_MULTIPLIER, RuleType.ADVANCED_RATE, RuleType.SEASONAL_MULTIPLIER)


@dataclass(slots=True)
class TransversalOutcome:
    decomposition: TransversalDecomposition
    rule: Optional[TransversalDecompositionRule] = None
    discount_rules: list[TransitDiscountRule] = field(default_factory=list)


def _distinct_codes(zone_codes: Sequence[str]) -> list[str]:
    seen: list[str] = []
    for code in zone_codes:
        if code != OUTSIDE_ZONES_CODE and code not in seen:
            seen.append(code)
    return seen


def is_transversal(zone_codes: Sequence[str], pickup_zone_code: Optional[str], dropoff_zone_code: Optional[str]) -> bool:
    """At least three distinct zones, one of which is neither the pickup nor the dropoff zone."""

    distinct = _distinct_codes(zone_codes)
    if len(distinct) < 3:
        return False
    return any(code not in (pickup_zone_code, dropoff_zone_code) for code in distinct)


def transit_zone_codes(
    zone_codes: Sequence[str],
    pickup_zone_code: Optional[str],
    dropoff_zone_code: Optional[str],
    allowed_codes: Sequence[str],
) -> list[str]:
    """Traversed zones eligible for a transit discount."""

    return [
        code
        for code in _distinct_codes(zone_codes)
        if code not in (pickup_zone_code, dropoff_zone_code) and code in allowed_codes
    ]


def chain_adjustment_factor(rules: Sequence[AppliedRule]) -> float:
    """Combined ratio of the vehicle category, advanced rate and seasonal steps of a dynamic price chain.

    Fixed-amount advanced rates are carried over as the ratio they produced on the whole trip.
    """
    factor = 1.0
    for rule in rules:
        if rule.type in CHAIN_ADJUSTMENT_RULES and rule.price_before > 0:
            factor *= rule.price_after / rule.price_before
    return factor


def decompose_transversal_trip(
    segmentation: ZoneSegmentationInfo,
    *,
    pickup_zone_code: Optional[str],
    dropoff_zone_code: Optional[str],
    rate_per_km: float,
    rate_per_hour: float,
    target_margin_percent: float,
    transit_discount_enabled: bool,
    transit_discount_percent: float,
    allowed_transit_codes: Sequence[str],
    previous_price: float,
    chain_factor: float = 1.0,
) -> TransversalOutcome:
    """Price each zone span separately and discount the transit spans.

    Each span costs MAX(distance x rate/km, duration x rate/hour) x zone multiplier x chain factor
    x (1 + margin), rounded per span. The chain factor carries the vehicle category, advanced rate
    and seasonal adjustments of the trip price. Non-transversal routes return an empty decomposition and no rules.
    """
    codes = [segment.zone_code for segment in segmentation.segments]
    if not is_transversal(codes, pickup_zone_code, dropoff_zone_code):
        return TransversalOutcome(decomposition=TransversalDecomposition(is_transversal=False))

    transit_codes = set(transit_zone_codes(codes, pickup_zone_code, dropoff_zone_code, allowed_transit_codes))
    margin_factor = 1 + target_margin_percent / 100
    segments: list[TransversalSegment] = []
    discounts_by_zone: dict[str, tuple[str, float, float]] = {}
    for index, zone_segment in enumerate(segmentation.segments):
        base = max(zone_segment.distance_km * rate_per_km, zone_segment.duration_minutes / 60 * rate_per_hour)
        segment_price = round2(base * zone_segment.price_multiplier * chain_factor * margin_factor)
        is_transit = zone_segment.zone_code in transit_codes
        discount = round2(segment_price * transit_discount_percent / 100) if is_transit and transit_discount_enabled else 0.0
        segments.append(
            TransversalSegment(
                segment_index=index,
                zone_code=zone_segment.zone_code,
                zone_name=zone_segment.zone_name,
                distance_km=zone_segment.distance_km,
                duration_minutes=zone_segment.duration_minutes,
                price_multiplier=zone_segment.price_multiplier,
                segment_price=segment_price,
                is_transit_zone=is_transit,
                transit_discount_applied=discount,
            )
        )
        if discount > 0:
            name, priced, discounted = discounts_by_zone.get(zone_segment.zone_code, (zone_segment.zone_name, 0.0, 0.0))
            discounts_by_zone[zone_segment.zone_code] = (name, priced + segment_price, discounted + discount)

    price_before_discount = round2(sum(segment.segment_price for segment in segments))
    total_discount = round2(sum(segment.transit_discount_applied for segment in segments))
    price_after_discount = round2(price_before_discount - total_discount)
    traversed = _distinct_codes(codes)

    decomposition = TransversalDecomposition(
        is_transversal=True,
        segments=segments,
        zones_traversed=traversed,
        total_transit_discount=total_discount,
        price_before_discount=price_before_discount,
        price_after_discount=price_after_discount,
    )
    rule = TransversalDecompositionRule(
        description=f"Transversal trip across {' > '.join(traversed)}",
        price_before=previous_price,
        price_after=price_after_discount,
        zones_traversed=traversed,
        segment_count=len(segments),
        price_before_discount=price_before_discount,
        total_transit_discount=total_discount,
    )
    discount_rules = [
        TransitDiscountRule(
            description=f"Transit discount {transit_discount_percent}% in {code}",
            zone_code=code,
            zone_name=name,
            segment_price=round2(priced),
            discount_percent=transit_discount_percent,
            discount_amount=round2(discounted),
        )
        for code, (name, priced, discounted) in discounts_by_zone.items()
    ]
    return TransversalOutcome(decomposition=decomposition, rule=rule, discount_rules=discount_rules)
