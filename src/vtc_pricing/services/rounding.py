"""Half-up rounding used for every persisted monetary and distance value."""

from __future__ import annotations

import math


def round2(value: float) -> float:
    """Round to 2 decimals, halves rounded up (the invoicing convention, not banker's rounding)."""

    return math.floor(value * 100 + 0.5) / 100


def round3(value: float) -> float:
    return math.floor(value * 1000 + 0.5) / 1000
