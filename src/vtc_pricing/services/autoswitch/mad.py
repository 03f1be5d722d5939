"""Hourly-hire (mise a disposition) price equivalents used by the auto-switch detectors."""

from __future__ import annotations

import math
from typing import Literal

from ...schemas.pricing import MadSuggestion
from ..rounding import round2


def billed_hours(minutes: float) -> int:
    """Hourly hire is billed per started hour, at least one."""

    return max(1, math.ceil(minutes / 60))


def calculate_mad_price(minutes: float, rate_per_hour: float, target_margin_percent: float) -> tuple[int, float]:
    hours = billed_hours(minutes)
    return hours, round2(hours * rate_per_hour * (1 + target_margin_percent / 100))


def build_suggestion(
    trigger: Literal["DENSE_ZONE_LOW_SPEED", "ROUND_TRIP_DRIVER_BLOCKED"],
    transfer_price: float,
    mad_price: float,
    hours: int,
    auto_switch_enabled: bool,
) -> MadSuggestion:
    difference = round2(mad_price - transfer_price)
    gain = round2(difference / transfer_price * 100) if transfer_price > 0 else 0.0
    if difference > 0:
        recommendation = f"Hourly hire recommended: +{difference:.2f} EUR (+{gain:.1f}%)"
    elif difference < 0:
        recommendation = f"Transfer pricing is optimal (hourly hire would be {abs(difference):.2f} EUR cheaper)"
    else:
        recommendation = "Transfer and hourly hire prices are equivalent"
    return MadSuggestion(
        trigger=trigger,
        transfer_price=transfer_price,
        mad_price=mad_price,
        price_difference=difference,
        percentage_gain=gain,
        billed_hours=hours,
        recommendation=recommendation,
        auto_switched=auto_switch_enabled and difference > 0,
    )
