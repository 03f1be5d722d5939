"""Manual price override with margin re-validation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from ..schemas.pricing import OverrideError, OverrideOutcome, PricingMode, PricingResult
from ..schemas.rules import ManualOverrideRule
from .costs.profitability import calculate_margin, reprice
from .rounding import round2

logger = logging.getLogger(__name__)


def override_price(
    result: PricingResult,
    new_price: float,
    *,
    reason: Optional[str] = None,
    minimum_margin_percent: Optional[float] = None,
    overridden_at: Optional[datetime] = None,
) -> OverrideOutcome:
    """Replace the price of a computed result, keeping its internal cost.

    Validation failures never raise: the outcome carries the error and the original result,
    untouched. Overriding a contract grid price is allowed and flagged in the rule and the log.
    """
    requested_price = new_price
    new_price = round2(new_price)
    if new_price <= 0:
        return OverrideOutcome(
            success=False,
            result=result,
            error=OverrideError(
                code="INVALID_PRICE",
                message="Price must be greater than zero",
                details={"requestedPrice": requested_price},
            ),
        )

    margin, margin_percent = calculate_margin(new_price, result.internal_cost)
    if minimum_margin_percent is not None and margin_percent < minimum_margin_percent:
        return OverrideOutcome(
            success=False,
            result=result,
            error=OverrideError(
                code="BELOW_MINIMUM_MARGIN",
                message=(
                    f"Resulting margin {margin_percent:.2f}% is below the minimum of {minimum_margin_percent:.2f}%"
                ),
                details={
                    "requestedPrice": new_price,
                    "internalCost": result.internal_cost,
                    "resultingMargin": margin,
                    "resultingMarginPercent": margin_percent,
                    "minimumMarginPercent": minimum_margin_percent,
                },
            ),
        )

    is_contract_override = result.pricing_mode is PricingMode.FIXED_GRID or (
        result.pricing_mode is PricingMode.MANUAL and result.matched_grid is not None
    )
    previous_price = result.price
    change = round2(new_price - previous_price)
    change_percent = round2(change / previous_price * 100) if previous_price > 0 else 0.0
    moment = overridden_at or datetime.now(timezone.utc)
    if is_contract_override:
        logger.warning(
            f"Contract price override on {result.matched_grid.type} {result.matched_grid.id}: "
            f"{previous_price:.2f} -> {new_price:.2f} EUR ({reason or 'no reason given'})"
        )
    else:
        logger.info(f"Manual price override: {previous_price:.2f} -> {new_price:.2f} EUR")

    rule = ManualOverrideRule(
        description="Contract price overridden manually" if is_contract_override else "Price overridden manually",
        price_before=previous_price,
        price_after=new_price,
        price_change=change,
        price_change_percent=change_percent,
        reason=reason,
        overridden_at=moment.isoformat(),
        is_contract_price_override=is_contract_override,
    )
    return OverrideOutcome(
        success=True,
        result=reprice(result, new_price, rules=[rule], pricing_mode=PricingMode.MANUAL),
    )
