"""Round-trip detection: a driver who cannot return to base while waiting is effectively on hourly hire."""

from __future__ import annotations

import logging

from ...models.domain import OrganizationPricingSettings
from ...schemas.pricing import PricingMode, PricingRequest, PricingResult, RoundTripDetection, TripType
from ...schemas.rules import AutoSwitchRoundTripToMadRule
from ..costs.profitability import reprice
from ..rounding import round2
from .mad import build_suggestion, calculate_mad_price

logger = logging.getLogger(__name__)


def detect_round_trip_blocked(
    is_round_trip: bool,
    waiting_time_minutes: float,
    one_way_distance_km: float,
    one_way_duration_minutes: float,
    org: OrganizationPricingSettings,
) -> RoundTripDetection:
    """Decide whether waiting on site blocks the driver.

    The driver is blocked when the return leg is longer than the configured maximum, or when the
    wait cannot absorb a return trip to base and back plus a safety buffer. A blocked driver whose
    wait is also under the separate-transfers minimum is reported as WAITING_TIME_TOO_SHORT.
    """
    detection = dict(
        is_round_trip=is_round_trip,
        waiting_time_minutes=waiting_time_minutes,
        return_distance_km=one_way_distance_km,
        return_duration_minutes=one_way_duration_minutes,
    )
    if not is_round_trip:
        return RoundTripDetection(**detection, is_driver_blocked=False, reason="NOT_ROUND_TRIP")

    exceeds_distance = one_way_distance_km > org.max_return_distance_km
    cannot_return = waiting_time_minutes < 2 * one_way_duration_minutes + org.round_trip_buffer_minutes
    if not (exceeds_distance or cannot_return):
        return RoundTripDetection(**detection, is_driver_blocked=False, reason="DRIVER_CAN_RETURN")

    # The minimum wait only labels a blocked driver; it never blocks one on its own.
    if exceeds_distance:
        reason = "EXCEEDS_MAX_RETURN_DISTANCE"
    elif waiting_time_minutes < org.min_waiting_time_for_separate_transfers:
        reason = "WAITING_TIME_TOO_SHORT"
    else:
        reason = "CANNOT_RETURN_IN_TIME"
    blocked_window = round2(2 * one_way_duration_minutes + waiting_time_minutes)
    return RoundTripDetection(**detection, is_driver_blocked=True, reason=reason, blocked_window_minutes=blocked_window)


def apply_round_trip_switch(
    result: PricingResult,
    request: PricingRequest,
    org: OrganizationPricingSettings,
    rate_per_hour: float,
) -> PricingResult:
    """Attach the round-trip detection and, when enabled and more profitable, bill the blocked window hourly."""

    if (
        result.pricing_mode is not PricingMode.DYNAMIC
        or request.trip_type is not TripType.TRANSFER
        or not request.is_round_trip
    ):
        return result

    analysis = result.trip_analysis
    detection = detect_round_trip_blocked(
        True,
        request.waiting_time_minutes or 0.0,
        analysis.distance_km,
        analysis.duration_minutes,
        org,
    )
    analysis = analysis.model_copy(update={"round_trip_detection": detection})
    if not detection.is_driver_blocked:
        return result.model_copy(update={"trip_analysis": analysis})

    hours, mad_price = calculate_mad_price(detection.blocked_window_minutes, rate_per_hour, org.target_margin_percent)
    suggestion = build_suggestion(
        "ROUND_TRIP_DRIVER_BLOCKED", result.price, mad_price, hours, org.auto_switch_round_trip_to_mad
    )
    analysis = analysis.model_copy(update={"mad_suggestions": [*analysis.mad_suggestions, suggestion]})
    if not suggestion.auto_switched:
        return result.model_copy(update={"trip_analysis": analysis})

    logger.info(
        f"Auto-switched round trip to hourly hire ({detection.reason}): {result.price:.2f} -> {mad_price:.2f} EUR"
    )
    rule = AutoSwitchRoundTripToMadRule(
        description=f"Driver blocked for {detection.blocked_window_minutes} min ({detection.reason})",
        price_before=result.price,
        price_after=mad_price,
        price_difference=suggestion.price_difference,
        percentage_gain=suggestion.percentage_gain,
        reason=detection.reason,
        waiting_time_minutes=detection.waiting_time_minutes,
        return_distance_km=detection.return_distance_km,
        blocked_window_minutes=detection.blocked_window_minutes,
    )
    return reprice(result, mad_price, rules=[rule], trip_analysis=analysis)
