"""Point-in-zone resolution and conflict handling for overlapping zones."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from ...models.domain import GeoPoint, Zone, ZoneConflictStrategy, ZoneKind
from ..geospatial import distance_between, point_in_polygon, polygon_area_km2, polygon_centroid


def zone_contains(zone: Zone, point: GeoPoint) -> bool:
    """Return True when ``point`` lies inside ``zone``.

    POINT zones are named waypoints and never contain arbitrary points; inactive zones never match.
    """
    if not zone.is_active:
        return False
    match zone.kind:
        case ZoneKind.POLYGON:
            return point_in_polygon(point.lat, point.lng, zone.coordinates)
        case ZoneKind.RADIUS:
            if zone.center is None or zone.radius_km is None:
                return False
            return distance_between(zone.center, point) <= zone.radius_km
        case ZoneKind.POINT:
            return False
        case _:
            raise ValueError(f"Unknown zone kind '{zone.kind}'.")


def find_zones_for_point(point: GeoPoint, zones: Sequence[Zone]) -> list[Zone]:
    """All zones containing the point, in snapshot order. Empty when the point is unzoned."""

    return [zone for zone in zones if zone_contains(zone, point)]


def zone_area_km2(zone: Zone) -> float:
    if zone.kind is ZoneKind.RADIUS and zone.radius_km is not None:
        return math.pi * zone.radius_km**2
    if zone.kind is ZoneKind.POLYGON:
        return polygon_area_km2(zone.coordinates)
    return 0.0


def zone_center(zone: Zone) -> Optional[GeoPoint]:
    if zone.center is not None:
        return zone.center
    if zone.kind is ZoneKind.POLYGON and len(zone.coordinates) >= 3:
        return polygon_centroid(zone.coordinates)
    return None


def _smallest_area_key(zone: Zone) -> tuple[float, str]:
    return (zone_area_km2(zone), zone.code)


def _closest_key(point: GeoPoint):
    def key(zone: Zone) -> tuple[float, float, str]:
        center = zone_center(zone)
        distance = distance_between(center, point) if center is not None else math.inf
        return (distance, zone_area_km2(zone), zone.code)

    return key


def resolve_zone_conflict(
    point: GeoPoint,
    candidates: Sequence[Zone],
    strategy: ZoneConflictStrategy | None = None,
) -> Optional[Zone]:
    """Pick a single zone among overlapping candidates.

    Without an explicit strategy the smallest zone wins, zone code breaking exact ties, so the
    outcome never depends on snapshot load order.
    """
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]

    match strategy:
        case None:
            return min(candidates, key=_smallest_area_key)
        case ZoneConflictStrategy.PRIORITY:
            return min(candidates, key=lambda zone: (-zone.priority, *_smallest_area_key(zone)))
        case ZoneConflictStrategy.MOST_EXPENSIVE:
            return min(candidates, key=lambda zone: (-zone.price_multiplier, *_smallest_area_key(zone)))
        case ZoneConflictStrategy.CLOSEST:
            return min(candidates, key=_closest_key(point))
        case ZoneConflictStrategy.COMBINED:
            return min(
                candidates,
                key=lambda zone: (-zone.priority, -zone.price_multiplier, *_smallest_area_key(zone)),
            )
        case _:
            raise ValueError(f"Unknown zone conflict strategy '{strategy}'.")


def resolve_zone(
    point: GeoPoint,
    zones: Sequence[Zone],
    strategy: ZoneConflictStrategy | None = None,
) -> Optional[Zone]:
    return resolve_zone_conflict(point, find_zones_for_point(point, zones), strategy)
