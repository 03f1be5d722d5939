"""Split a route polyline into contiguous per-zone spans."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ...models.domain import GeoPoint, Zone, ZoneConflictStrategy
from ...schemas.pricing import ZoneSegment, ZoneSegmentationInfo
from ..geospatial import decode_polyline, distance_between, interpolate
from ..rounding import round2, round3
from ..zones.resolver import resolve_zone

logger = logging.getLogger(__name__)

OUTSIDE_ZONES_CODE = "OUTSIDE_ZONES"
MIN_POINT_SPACING_KM = 0.05
BOUNDARY_PRECISION_KM = 0.01
MAX_BOUNDARY_ITERATIONS = 20


def simplify_path(points: Sequence[GeoPoint], min_spacing_km: float = MIN_POINT_SPACING_KM) -> list[GeoPoint]:
    """Drop points closer than ``min_spacing_km`` to the previously kept one; endpoints are always kept."""

    if len(points) <= 2:
        return list(points)
    kept = [points[0]]
    for point in points[1:-1]:
        if distance_between(kept[-1], point) >= min_spacing_km:
            kept.append(point)
    kept.append(points[-1])
    return kept


def _zone_key(zone: Optional[Zone]) -> Optional[str]:
    return zone.id if zone is not None else None


def find_boundary_crossing(
    start: GeoPoint,
    end: GeoPoint,
    start_zone: Optional[Zone],
    zones: Sequence[Zone],
    strategy: ZoneConflictStrategy | None = None,
) -> GeoPoint:
    """Bisect ``start``-``end`` until the zone change is located within the boundary precision."""

    low, high = 0.0, 1.0
    start_key = _zone_key(start_zone)
    for _ in range(MAX_BOUNDARY_ITERATIONS):
        if distance_between(interpolate(start, end, low), interpolate(start, end, high)) <= BOUNDARY_PRECISION_KM:
            break
        middle = (low + high) / 2
        if _zone_key(resolve_zone(interpolate(start, end, middle), zones, strategy)) == start_key:
            low = middle
        else:
            high = middle
    return interpolate(start, end, (low + high) / 2)


@dataclass(slots=True)
class _RawSegment:
    zone: Optional[Zone]
    distance_km: float
    entry_point: GeoPoint
    exit_point: GeoPoint


def _finalize(
    raw_segments: list[_RawSegment],
    total_duration_minutes: float,
    method: str,
) -> ZoneSegmentationInfo:
    total_distance = sum(raw.distance_km for raw in raw_segments)
    charged_zone_ids: set[str] = set()
    segments: list[ZoneSegment] = []
    traversed: list[str] = []
    for raw in raw_segments:
        zone = raw.zone
        distance_km = round3(raw.distance_km)
        share = raw.distance_km / total_distance if total_distance > 0 else 1.0 / len(raw_segments)
        surcharge = 0.0
        if zone is not None and zone.id not in charged_zone_ids:
            charged_zone_ids.add(zone.id)
            surcharge = round2(zone.surcharge_total)
        if zone is not None and zone.code not in traversed:
            traversed.append(zone.code)
        segments.append(
            ZoneSegment(
                zone_id=zone.id if zone else OUTSIDE_ZONES_CODE,
                zone_code=zone.code if zone else OUTSIDE_ZONES_CODE,
                zone_name=zone.name if zone else "Outside zones",
                distance_km=distance_km,
                duration_minutes=round2(total_duration_minutes * share),
                price_multiplier=zone.price_multiplier if zone else 1.0,
                surcharges_applied=surcharge,
                entry_point=raw.entry_point,
                exit_point=raw.exit_point,
            )
        )
    weighted_total = sum(segment.distance_km for segment in segments)
    if weighted_total > 0:
        weighted = round3(sum(s.distance_km * s.price_multiplier for s in segments) / weighted_total)
    else:
        weighted = round3(sum(s.price_multiplier for s in segments) / len(segments))
    return ZoneSegmentationInfo(
        segmentation_method=method,
        segments=segments,
        zones_traversed=traversed,
        weighted_multiplier=weighted,
        total_surcharges=round2(sum(s.surcharges_applied for s in segments)),
        total_distance_km=round3(total_distance),
        total_duration_minutes=round2(total_duration_minutes),
    )


def segment_route(
    points: Sequence[GeoPoint],
    zones: Sequence[Zone],
    total_duration_minutes: float,
    strategy: ZoneConflictStrategy | None = None,
) -> Optional[ZoneSegmentationInfo]:
    """Walk the route and cut it wherever the containing zone changes.

    Segment durations are proportional to segment distances. Points outside every zone are grouped
    under the ``OUTSIDE_ZONES`` pseudo zone at multiplier 1.0. Returns None for routes with fewer
    than two points.
    """
    path = simplify_path(points)
    if len(path) < 2:
        return None

    raw_segments: list[_RawSegment] = []
    current_zone = resolve_zone(path[0], zones, strategy)
    entry = path[0]
    distance = 0.0
    previous = path[0]
    for point in path[1:]:
        zone = resolve_zone(point, zones, strategy)
        if _zone_key(zone) == _zone_key(current_zone):
            distance += distance_between(previous, point)
        else:
            crossing = find_boundary_crossing(previous, point, current_zone, zones, strategy)
            distance += distance_between(previous, crossing)
            raw_segments.append(_RawSegment(current_zone, distance, entry, crossing))
            current_zone = zone
            entry = crossing
            distance = distance_between(crossing, point)
        previous = point
    raw_segments.append(_RawSegment(current_zone, distance, entry, previous))
    return _finalize(raw_segments, total_duration_minutes, "POLYLINE")


def segment_encoded_polyline(
    encoded_polyline: str,
    zones: Sequence[Zone],
    total_duration_minutes: float,
    strategy: ZoneConflictStrategy | None = None,
) -> Optional[ZoneSegmentationInfo]:
    """Segment an encoded route; an undecodable polyline yields None so callers fall back."""

    try:
        decoded = decode_polyline(encoded_polyline)
    except ValueError as e:
        logger.warning(f"Ignoring malformed route polyline: {e}")
        return None
    points = [GeoPoint(lat=lat, lng=lng) for lat, lng in decoded]
    return segment_route(points, zones, total_duration_minutes, strategy)


def fallback_segmentation(
    pickup: GeoPoint,
    dropoff: Optional[GeoPoint],
    pickup_zone: Optional[Zone],
    dropoff_zone: Optional[Zone],
    distance_km: float,
    duration_minutes: float,
) -> ZoneSegmentationInfo:
    """Segmentation from point-in-zone tests alone: one span, or a half/half pickup-dropoff split."""

    end = dropoff or pickup
    if pickup_zone is None or dropoff_zone is None or pickup_zone.id == dropoff_zone.id:
        zone = pickup_zone or dropoff_zone
        raw = [_RawSegment(zone, distance_km, pickup, end)]
    else:
        middle = interpolate(pickup, end, 0.5)
        raw = [
            _RawSegment(pickup_zone, distance_km / 2, pickup, middle),
            _RawSegment(dropoff_zone, distance_km / 2, middle, end),
        ]
    return _finalize(raw, duration_minutes, "FALLBACK")
