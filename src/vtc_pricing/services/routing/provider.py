"""Routing providers returning distance/duration between two points, with haversine fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional, Protocol

import httpx

from ...config import settings
from ...models.domain import GeoPoint
from ..geospatial import distance_between
from ..rounding import round2
from .osrm_client import OSRMClient

logger = logging.getLogger(__name__)

RoutingSource = Literal["ROUTING_API", "HAVERSINE_ESTIMATE"]


@dataclass(slots=True, frozen=True)
class RouteQuote:
    distance_km: float
    duration_minutes: float
    source: RoutingSource
    encoded_polyline: Optional[str] = None


class RoutingProvider(Protocol):
    def route(self, origin: GeoPoint, destination: GeoPoint) -> RouteQuote:
        """Return a route quote. Implementations degrade to an estimate instead of raising."""


def estimate_route(
    origin: GeoPoint,
    destination: GeoPoint,
    *,
    average_speed_kmh: float | None = None,
    road_factor: float | None = None,
) -> RouteQuote:
    """Haversine distance stretched by a road factor, driven at an average speed."""

    factor = road_factor if road_factor is not None else settings.road_distance_factor
    speed = average_speed_kmh if average_speed_kmh and average_speed_kmh > 0 else settings.fallback_average_speed_kmh
    distance_km = distance_between(origin, destination) * factor
    duration_minutes = distance_km / speed * 60
    return RouteQuote(
        distance_km=round2(distance_km),
        duration_minutes=round2(duration_minutes),
        source="HAVERSINE_ESTIMATE",
    )


class HaversineRoutingProvider:
    def __init__(self, average_speed_kmh: float | None = None) -> None:
        self.average_speed_kmh = average_speed_kmh

    def route(self, origin: GeoPoint, destination: GeoPoint) -> RouteQuote:
        return estimate_route(origin, destination, average_speed_kmh=self.average_speed_kmh)


class OSRMRoutingProvider:
    """Real road routing through OSRM; any failure degrades to the haversine estimate."""

    def __init__(self, client: OSRMClient | None = None, average_speed_kmh: float | None = None) -> None:
        self.client = client or OSRMClient()
        self.average_speed_kmh = average_speed_kmh

    def route(self, origin: GeoPoint, destination: GeoPoint) -> RouteQuote:
        try:
            data = self.client.route([(origin.lat, origin.lng), (destination.lat, destination.lng)])
            best = data["routes"][0]
            return RouteQuote(
                distance_km=round2(float(best["distance"]) / 1000),
                duration_minutes=round2(float(best["duration"]) / 60),
                source="ROUTING_API",
                encoded_polyline=best.get("geometry"),
            )
        except (httpx.HTTPError, ConnectionError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"OSRM routing failed ({e}). Falling back to haversine estimate.")
            return estimate_route(origin, destination, average_speed_kmh=self.average_speed_kmh)


def route_or_estimate(
    routing_provider: Optional[RoutingProvider],
    origin: GeoPoint,
    destination: GeoPoint,
    average_speed_kmh: float | None = None,
) -> RouteQuote:
    """Route through the provider when there is one; any failure degrades to the haversine estimate."""

    if routing_provider is None:
        return estimate_route(origin, destination, average_speed_kmh=average_speed_kmh)
    try:
        return routing_provider.route(origin, destination)
    except Exception as e:
        logger.warning(f"Routing failed for {origin} -> {destination}, using haversine estimate: {e}")
        return estimate_route(origin, destination, average_speed_kmh=average_speed_kmh)
