"""Sanity checks on a computed pricing result before it is shown to an operator."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..schemas.pricing import PricingResult
from ..schemas.rules import RuleType
from .rounding import round2

MAX_REASONABLE_MARGIN_PERCENT = 80.0
MIN_ZONE_MULTIPLIER = 0.5
MAX_ZONE_MULTIPLIER = 3.0


class ValidationReport(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def validate_pricing_result(result: PricingResult) -> ValidationReport:
    errors: list[str] = []
    warnings: list[str] = []

    if result.price <= 0:
        errors.append(f"Price must be positive, got {result.price:.2f}")
    if result.internal_cost < 0:
        errors.append(f"Internal cost cannot be negative, got {result.internal_cost:.2f}")
    if result.margin < 0:
        warnings.append(f"Negative margin: {result.margin:.2f} EUR ({result.margin_percent:.2f}%)")
    if result.margin_percent > MAX_REASONABLE_MARGIN_PERCENT:
        warnings.append(f"Unusually high margin: {result.margin_percent:.2f}%")
    if result.price < result.internal_cost:
        warnings.append(f"Price {result.price:.2f} is below internal cost {result.internal_cost:.2f}")

    for rule in result.applied_rules:
        if rule.type == RuleType.ZONE_MULTIPLIER and not (
            MIN_ZONE_MULTIPLIER <= rule.multiplier <= MAX_ZONE_MULTIPLIER
        ):
            warnings.append(f"Zone multiplier {rule.multiplier} outside [{MIN_ZONE_MULTIPLIER}, {MAX_ZONE_MULTIPLIER}]")

    breakdown = result.trip_analysis.cost_breakdown
    if breakdown is not None:
        components = round2(
            breakdown.fuel.amount
            + breakdown.tolls.amount
            + breakdown.wear.amount
            + breakdown.driver_cost.amount
            + breakdown.parking.amount
        )
        if abs(components - breakdown.total) > 0.01:
            errors.append(f"Cost components sum to {components:.2f} but total is {breakdown.total:.2f}")

    return ValidationReport(is_valid=not errors, errors=errors, warnings=warnings)
