"""Hourly-hire auto-switch detectors."""

from .dense_zone import apply_dense_zone_switch, detect_dense_zone
from .round_trip import apply_round_trip_switch, detect_round_trip_blocked

__all__ = [
    "detect_dense_zone",
    "apply_dense_zone_switch",
    "detect_round_trip_blocked",
    "apply_round_trip_switch",
]
