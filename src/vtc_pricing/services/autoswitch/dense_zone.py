"""Dense-zone detection: slow intra-city transfers are better priced as hourly hire."""

from __future__ import annotations

import logging
from typing import Optional

from ...models.domain import OrganizationPricingSettings
from ...schemas.pricing import DenseZoneDetection, PricingMode, PricingRequest, PricingResult, TripType
from ...schemas.rules import AutoSwitchToMadRule
from ..costs.profitability import reprice
from ..rounding import round2
from .mad import build_suggestion, calculate_mad_price

logger = logging.getLogger(__name__)


def detect_dense_zone(
    pickup_zone_code: Optional[str],
    dropoff_zone_code: Optional[str],
    distance_km: float,
    duration_minutes: float,
    org: OrganizationPricingSettings,
) -> DenseZoneDetection:
    dense_codes = list(org.dense_zone_codes)
    is_intra_dense = pickup_zone_code in dense_codes and dropoff_zone_code in dense_codes
    speed = round2(distance_km / (duration_minutes / 60)) if duration_minutes > 0 else None
    return DenseZoneDetection(
        is_intra_dense_zone=is_intra_dense,
        pickup_zone_code=pickup_zone_code,
        dropoff_zone_code=dropoff_zone_code,
        dense_zone_codes=dense_codes,
        commercial_speed_kmh=speed,
        speed_threshold_kmh=org.dense_zone_speed_threshold,
        is_below_threshold=speed is not None and speed < org.dense_zone_speed_threshold,
    )


def apply_dense_zone_switch(
    result: PricingResult,
    request: PricingRequest,
    org: OrganizationPricingSettings,
    rate_per_hour: float,
) -> PricingResult:
    """Attach the dense-zone detection and, when enabled and more profitable, switch to hourly hire.

    Only one-way dynamic transfers are considered. With the organization flag off the price never
    changes; only the advisory suggestion is recorded.
    """
    if (
        result.pricing_mode is not PricingMode.DYNAMIC
        or request.trip_type is not TripType.TRANSFER
        or request.is_round_trip
    ):
        return result

    analysis = result.trip_analysis
    detection = detect_dense_zone(
        analysis.pickup_zone.code if analysis.pickup_zone else None,
        analysis.dropoff_zone.code if analysis.dropoff_zone else None,
        analysis.distance_km,
        analysis.duration_minutes,
        org,
    )
    if not (detection.is_intra_dense_zone and detection.is_below_threshold):
        return result.model_copy(update={"trip_analysis": analysis.model_copy(update={"dense_zone_detection": detection})})

    hours, mad_price = calculate_mad_price(analysis.duration_minutes, rate_per_hour, org.target_margin_percent)
    suggestion = build_suggestion("DENSE_ZONE_LOW_SPEED", result.price, mad_price, hours, org.auto_switch_to_mad)
    analysis = analysis.model_copy(
        update={
            "dense_zone_detection": detection,
            "mad_suggestions": [*analysis.mad_suggestions, suggestion],
        }
    )
    if not suggestion.auto_switched:
        return result.model_copy(update={"trip_analysis": analysis})

    logger.info(
        f"Auto-switched dense-zone transfer to hourly hire: {result.price:.2f} -> {mad_price:.2f} EUR "
        f"(speed {detection.commercial_speed_kmh} km/h)"
    )
    rule = AutoSwitchToMadRule(
        description=f"Commercial speed {detection.commercial_speed_kmh} km/h below {detection.speed_threshold_kmh} km/h",
        price_before=result.price,
        price_after=mad_price,
        price_difference=suggestion.price_difference,
        percentage_gain=suggestion.percentage_gain,
        commercial_speed_kmh=detection.commercial_speed_kmh,
        speed_threshold_kmh=detection.speed_threshold_kmh,
    )
    return reprice(result, mad_price, rules=[rule], trip_analysis=analysis)
