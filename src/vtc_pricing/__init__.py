"""VTC pricing decision engine."""

from .errors import InvalidPricingInputError, PricingError
from .services.engine import PricingEngine
from .services.override import override_price

__all__ = ["PricingEngine", "override_price", "PricingError", "InvalidPricingInputError"]
