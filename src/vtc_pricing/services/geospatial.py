"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

from shapely.geometry import Point, Polygon

from ..models.domain import GeoPoint

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 110.574
KM_PER_DEGREE_LNG_AT_EQUATOR = 111.320


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_km(a.lat, a.lng, b.lat, b.lng)


def point_in_polygon(lat: float, lon: float, polygon_coords: Sequence[tuple[float, float]]) -> bool:
    """Return True if the point is inside the polygon denoted by (lat, lon) pairs."""

    if len(polygon_coords) < 3:
        return False
    polygon = Polygon([(lng, lat) for lat, lng in polygon_coords])
    return polygon.contains(Point(lon, lat))


def polygon_area_km2(polygon_coords: Sequence[tuple[float, float]]) -> float:
    """Approximate polygon area using an equirectangular projection around the ring's mean latitude."""

    if len(polygon_coords) < 3:
        return 0.0
    mean_lat = sum(lat for lat, _ in polygon_coords) / len(polygon_coords)
    lng_scale = KM_PER_DEGREE_LNG_AT_EQUATOR * math.cos(math.radians(mean_lat))
    projected = [(lng * lng_scale, lat * KM_PER_DEGREE_LAT) for lat, lng in polygon_coords]
    return Polygon(projected).area


def polygon_centroid(polygon_coords: Sequence[tuple[float, float]]) -> GeoPoint:
    centroid = Polygon([(lng, lat) for lat, lng in polygon_coords]).centroid
    return GeoPoint(lat=centroid.y, lng=centroid.x)


def interpolate(a: GeoPoint, b: GeoPoint, fraction: float) -> GeoPoint:
    """Linear interpolation between two nearby points."""

    return GeoPoint(lat=a.lat + (b.lat - a.lat) * fraction, lng=a.lng + (b.lng - a.lng) * fraction)


def decode_polyline(polyline: str) -> list[tuple[float, float]]:
    """Decode Google polyline string to list of (lat, lon) coordinates.

    OSRM and most route providers use Google's polyline encoding format for route geometry.

    Args:
        polyline: Encoded polyline string

    Returns:
        List of (latitude, longitude) tuples

    Raises:
        ValueError: if the string ends in the middle of a coordinate
    """
    coordinates = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        dlat, index = _decode_value(polyline, index)
        dlon, index = _decode_value(polyline, index)
        lat += dlat
        lon += dlon
        coordinates.append((lat / 1e5, lon / 1e5))

    return coordinates


def _decode_value(polyline: str, index: int) -> tuple[int, int]:
    shift = 0
    result = 0
    while True:
        if index >= len(polyline):
            raise ValueError(f"Truncated polyline at position {index}")
        b = ord(polyline[index]) - 63
        index += 1
        result |= (b & 0x1f) << shift
        shift += 5
        if b < 0x20:
            break
    return (~(result >> 1) if (result & 1) else (result >> 1)), index


def encode_polyline(coordinates: Sequence[tuple[float, float]]) -> str:
    """Encode (lat, lon) pairs with Google's polyline algorithm (5 decimal precision)."""

    def _encode_value(value: int) -> str:
        value = ~(value << 1) if value < 0 else value << 1
        chunks = []
        while value >= 0x20:
            chunks.append(chr((0x20 | (value & 0x1f)) + 63))
            value >>= 5
        chunks.append(chr(value + 63))
        return "".join(chunks)

    encoded = []
    prev_lat = 0
    prev_lon = 0
    for lat, lon in coordinates:
        lat_e5 = int(round(lat * 1e5))
        lon_e5 = int(round(lon * 1e5))
        encoded.append(_encode_value(lat_e5 - prev_lat))
        encoded.append(_encode_value(lon_e5 - prev_lon))
        prev_lat, prev_lon = lat_e5, lon_e5
    return "".join(encoded)
