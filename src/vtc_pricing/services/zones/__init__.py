"""Zone lookup and conflict resolution."""

from .resolver import find_zones_for_point, resolve_zone, resolve_zone_conflict, zone_contains

__all__ = ["zone_contains", "find_zones_for_point", "resolve_zone_conflict", "resolve_zone"]
