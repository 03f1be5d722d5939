"""Exceptions raised by the pricing engine."""


class PricingError(ValueError):
    """Base class for pricing failures that the caller should surface as a bad request."""


class InvalidPricingInputError(PricingError):
    pass
