"""Margin and profitability classification, plus helpers to reprice a result consistently."""

from __future__ import annotations

from typing import Any, Iterable

from ...schemas.pricing import CostBreakdown, PricingResult, ProfitabilityData, ProfitabilityIndicator
from ...schemas.rules import AppliedRule
from ..rounding import round2

DEFAULT_GREEN_THRESHOLD = 20.0
DEFAULT_ORANGE_THRESHOLD = 0.0

_LABELS = {
    ProfitabilityIndicator.GREEN: ("Profitable", "Margin at or above the target threshold"),
    ProfitabilityIndicator.ORANGE: ("Low margin", "Positive margin below the target threshold"),
    ProfitabilityIndicator.RED: ("Loss", "Price does not cover the internal cost"),
}


def calculate_margin(price: float, internal_cost: float) -> tuple[float, float]:
    """Return ``(margin, margin_percent)``; the percentage is 0 when the price is not positive."""

    margin = round2(price - internal_cost)
    margin_percent = round2(margin / price * 100) if price > 0 else 0.0
    return margin, margin_percent


def classify_profitability(
    margin_percent: float,
    green_threshold: float = DEFAULT_GREEN_THRESHOLD,
    orange_threshold: float = DEFAULT_ORANGE_THRESHOLD,
) -> ProfitabilityIndicator:
    if margin_percent >= green_threshold:
        return ProfitabilityIndicator.GREEN
    if margin_percent >= orange_threshold:
        return ProfitabilityIndicator.ORANGE
    return ProfitabilityIndicator.RED


def profitability_data(
    margin_percent: float,
    green_threshold: float = DEFAULT_GREEN_THRESHOLD,
    orange_threshold: float = DEFAULT_ORANGE_THRESHOLD,
) -> ProfitabilityData:
    indicator = classify_profitability(margin_percent, green_threshold, orange_threshold)
    label, description = _LABELS[indicator]
    return ProfitabilityData(
        indicator=indicator,
        label=label,
        description=description,
        margin_percent=margin_percent,
        green_threshold=green_threshold,
        orange_threshold=orange_threshold,
    )


def financial_fields(price: float, internal_cost: float, green: float, orange: float) -> dict[str, Any]:
    margin, margin_percent = calculate_margin(price, internal_cost)
    profitability = profitability_data(margin_percent, green, orange)
    return {
        "price": price,
        "internal_cost": internal_cost,
        "margin": margin,
        "margin_percent": margin_percent,
        "profitability_indicator": profitability.indicator,
        "profitability": profitability,
    }


def reprice(
    result: PricingResult,
    price: float,
    *,
    rules: Iterable[AppliedRule] = (),
    **updates: Any,
) -> PricingResult:
    """Return a copy of ``result`` at ``price`` with margin and profitability recomputed.

    The internal cost is left unchanged. ``rules`` are appended to the trail and ``updates`` are
    applied to the remaining fields in the same copy.
    """
    thresholds = result.profitability
    fields = financial_fields(round2(price), result.internal_cost, thresholds.green_threshold, thresholds.orange_threshold)
    fields["applied_rules"] = [*result.applied_rules, *rules]
    fields.update(updates)
    return result.model_copy(update=fields)


def recost(
    result: PricingResult,
    breakdown: CostBreakdown,
    *,
    rules: Iterable[AppliedRule] = (),
    **updates: Any,
) -> PricingResult:
    """Return a copy of ``result`` carrying a new cost breakdown, with margin recomputed at the same price."""

    thresholds = result.profitability
    fields = financial_fields(result.price, breakdown.total, thresholds.green_threshold, thresholds.orange_threshold)
    fields["applied_rules"] = [*result.applied_rules, *rules]
    fields["trip_analysis"] = updates.pop("trip_analysis", result.trip_analysis).model_copy(
        update={"cost_breakdown": breakdown}
    )
    fields.update(updates)
    return result.model_copy(update=fields)
