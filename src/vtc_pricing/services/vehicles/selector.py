"""Vehicle selection by minimal total cost over approach, service and return legs."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Optional, Sequence

from ...config import settings
from ...models.domain import (
    GeoPoint,
    OrganizationPricingSettings,
    Vehicle,
    VehicleCategory,
    VehicleStatus,
)
from ...schemas.pricing import ParkingCost, RouteLeg, SegmentAnalysis, VehicleCandidate, VehicleSelectionInfo
from ..adapters.fuel import FuelPriceQuote
from ..adapters.toll import TollQuote
from ..costs.model import calculate_cost_breakdown, combine_breakdowns, resolve_cost_parameters, resolve_fuel_consumption
from ..geospatial import distance_between
from ..rounding import round2
from ..routing.provider import RoutingProvider, route_or_estimate

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SelectionRequest:
    pickup: GeoPoint
    return_origin: GeoPoint
    vehicle_category_id: str
    passenger_count: int
    luggage_count: int
    service_leg: RouteLeg
    service_toll: Optional[TollQuote] = None
    service_parking: Optional[ParkingCost] = None


def has_capacity(vehicle: Vehicle, passenger_count: int, luggage_count: int) -> bool:
    """Passengers and luggage are checked against their own capacity; unknown luggage capacity accepts any."""

    if passenger_count > vehicle.passenger_capacity:
        return False
    return vehicle.luggage_capacity is None or luggage_count <= vehicle.luggage_capacity


def filter_candidates(
    vehicles: Sequence[Vehicle],
    request: SelectionRequest,
    max_haversine_km: float,
) -> tuple[list[tuple[Vehicle, float]], VehicleSelectionInfo]:
    """Apply status, capacity, category and straight-line distance filters in that order.

    Returns the surviving vehicles with their base-to-pickup haversine distance (closest first) and
    a selection info carrying the filter counts, with a fallback reason when nothing survives.
    """
    info = VehicleSelectionInfo(total_vehicles=len(vehicles))
    if not vehicles:
        return [], info.model_copy(update={"fallback_used": True, "fallback_reason": "NO_VEHICLES_IN_FLEET"})

    active = [vehicle for vehicle in vehicles if vehicle.status is VehicleStatus.ACTIVE]
    info.candidates_after_status_filter = len(active)
    if not active:
        return [], info.model_copy(update={"fallback_used": True, "fallback_reason": "NO_ACTIVE_VEHICLES"})

    fitting = [v for v in active if has_capacity(v, request.passenger_count, request.luggage_count)]
    info.candidates_after_capacity_filter = len(fitting)
    if not fitting:
        return [], info.model_copy(update={"fallback_used": True, "fallback_reason": "NO_VEHICLES_MATCH_CAPACITY"})

    matching = [v for v in fitting if v.vehicle_category_id == request.vehicle_category_id]
    info.candidates_after_category_filter = len(matching)
    if not matching:
        return [], info.model_copy(update={"fallback_used": True, "fallback_reason": "NO_VEHICLES_MATCH_CATEGORY"})

    with_distance = [(vehicle, distance_between(vehicle.base.location, request.pickup)) for vehicle in matching]
    nearby = sorted(
        [(vehicle, km) for vehicle, km in with_distance if km <= max_haversine_km],
        key=lambda item: item[1],
    )
    info.candidates_after_distance_filter = len(nearby)
    if not nearby:
        return [], info.model_copy(update={"fallback_used": True, "fallback_reason": "ALL_BASES_TOO_FAR"})
    return nearby, info


def evaluate_candidate(
    vehicle: Vehicle,
    haversine_km: float,
    request: SelectionRequest,
    *,
    org: OrganizationPricingSettings,
    category: Optional[VehicleCategory],
    fuel_price: FuelPriceQuote,
    routing_provider: Optional[RoutingProvider] = None,
) -> VehicleCandidate:
    """Route and cost one vehicle's approach, service and return legs."""

    params = resolve_cost_parameters(org)
    consumption = resolve_fuel_consumption(vehicle, category, org)
    base = vehicle.base.location
    approach = route_or_estimate(routing_provider, base, request.pickup, vehicle.average_speed_kmh)
    back = route_or_estimate(routing_provider, request.return_origin, base, vehicle.average_speed_kmh)

    legs = [
        ("APPROACH", approach.distance_km, approach.duration_minutes, approach.source, None, None),
        (
            "SERVICE",
            request.service_leg.distance_km,
            request.service_leg.duration_minutes,
            request.service_leg.routing_source,
            request.service_toll,
            request.service_parking,
        ),
        ("RETURN", back.distance_km, back.duration_minutes, back.source, None, None),
    ]
    segments = [
        SegmentAnalysis(
            name=name,
            distance_km=distance_km,
            duration_minutes=duration_minutes,
            routing_source=source,
            cost=calculate_cost_breakdown(
                distance_km,
                duration_minutes,
                params=params,
                consumption=consumption,
                fuel_price=fuel_price,
                toll_quote=toll,
                parking=parking,
            ),
        )
        for name, distance_km, duration_minutes, source, toll, parking in legs
    ]
    total = combine_breakdowns([segment.cost for segment in segments])
    return VehicleCandidate(
        vehicle_id=vehicle.id,
        registration=vehicle.registration,
        base_id=vehicle.base.id,
        base_name=vehicle.base.name,
        haversine_distance_km=round2(haversine_km),
        segments=segments,
        total_distance_km=round2(sum(segment.distance_km for segment in segments)),
        total_duration_minutes=round2(sum(segment.duration_minutes for segment in segments)),
        internal_cost=total.total,
    )


def select_vehicle(
    vehicles: Sequence[Vehicle],
    request: SelectionRequest,
    *,
    org: OrganizationPricingSettings,
    category: Optional[VehicleCategory],
    fuel_price: FuelPriceQuote,
    routing_provider: Optional[RoutingProvider] = None,
    max_haversine_km: float | None = None,
    max_candidates: int | None = None,
    max_parallel_requests: int | None = None,
) -> VehicleSelectionInfo:
    """Pick the vehicle with the lowest total internal cost (MINIMAL_COST).

    Candidates are routed concurrently, bounded by ``max_parallel_requests``. A candidate whose
    routing fails is costed on haversine estimates instead of being dropped.
    """
    max_haversine_km = max_haversine_km if max_haversine_km is not None else settings.vehicle_max_haversine_km
    max_candidates = max_candidates if max_candidates is not None else settings.vehicle_max_candidates
    max_parallel_requests = (
        max_parallel_requests if max_parallel_requests is not None else settings.vehicle_max_parallel_routing
    )

    nearby, info = filter_candidates(vehicles, request, max_haversine_km)
    if info.fallback_used:
        logger.info(f"Vehicle selection fell back: {info.fallback_reason}")
        return info

    shortlisted = nearby[:max_candidates]
    candidates: list[VehicleCandidate] = []
    with ThreadPoolExecutor(max_workers=min(max_parallel_requests, len(shortlisted))) as executor:
        future_to_vehicle = {
            executor.submit(
                evaluate_candidate,
                vehicle,
                haversine_km,
                request,
                org=org,
                category=category,
                fuel_price=fuel_price,
                routing_provider=routing_provider,
            ): vehicle
            for vehicle, haversine_km in shortlisted
        }
        for future in as_completed(future_to_vehicle):
            candidates.append(future.result())

    candidates.sort(key=lambda c: (c.internal_cost, c.haversine_distance_km, c.vehicle_id))
    best = candidates[0]
    return info.model_copy(
        update={
            "selected_vehicle_id": best.vehicle_id,
            "selected_base_id": best.base_id,
            "candidates_evaluated": len(candidates),
            "candidates": candidates,
        }
    )
