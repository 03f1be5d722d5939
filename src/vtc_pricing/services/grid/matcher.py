"""Contract-grid matching: zone routes, excursion packages and dispo packages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ...models.domain import (
    AddressEndpoint,
    Contact,
    DispoPackage,
    ExcursionPackage,
    GeoPoint,
    RouteDirection,
    RouteEndpoint,
    Zone,
    ZoneRoute,
    ZonesEndpoint,
)
from ...schemas.pricing import GridCandidateCheck, GridSearchDetails, MatchedGrid, PricingRequest, TripType
from ...schemas.rules import GridMatchRule
from ..geospatial import haversine_km
from ..rounding import round2

logger = logging.getLogger(__name__)

ADDRESS_MATCH_TOLERANCE_KM = 0.1


@dataclass(slots=True)
class GridMatchResult:
    matched_grid: Optional[MatchedGrid] = None
    rule: Optional[GridMatchRule] = None
    fallback_reason: Optional[str] = None
    details: Optional[GridSearchDetails] = None

    @property
    def is_match(self) -> bool:
        return self.matched_grid is not None


def _contract_price(fixed_price: float, override_price: Optional[float]) -> tuple[float, bool]:
    if override_price is not None and override_price > 0:
        return round2(override_price), True
    return round2(fixed_price), False


def _endpoint_kind(endpoint: RouteEndpoint) -> str:
    return "ADDRESS" if isinstance(endpoint, AddressEndpoint) else "ZONES"


def endpoint_matches(
    endpoint: RouteEndpoint,
    point: Optional[GeoPoint],
    zone_ids: frozenset[str],
    place_id: Optional[str] = None,
) -> bool:
    """Membership of a trip endpoint in a route endpoint: zone-set membership or address proximity."""

    if isinstance(endpoint, ZonesEndpoint):
        return bool(endpoint.zone_ids & zone_ids)
    if point is None:
        return False
    if endpoint.place_id and place_id and endpoint.place_id == place_id:
        return True
    return haversine_km(endpoint.lat, endpoint.lng, point.lat, point.lng) <= ADDRESS_MATCH_TOLERANCE_KM


def _check_zone_route(
    route: ZoneRoute,
    request: PricingRequest,
    pickup_zone_ids: frozenset[str],
    dropoff_zone_ids: frozenset[str],
) -> GridCandidateCheck:
    check = dict(
        id=route.id,
        origin_kind=_endpoint_kind(route.origin),
        destination_kind=_endpoint_kind(route.destination),
    )
    if not route.is_active:
        return GridCandidateCheck(**check, matched=False, rejection_reason="INACTIVE")
    if route.vehicle_category_id != request.vehicle_category_id:
        return GridCandidateCheck(**check, matched=False, rejection_reason="CATEGORY_MISMATCH")

    forward = endpoint_matches(route.origin, request.pickup, pickup_zone_ids, request.pickup_place_id) and (
        endpoint_matches(route.destination, request.dropoff, dropoff_zone_ids, request.dropoff_place_id)
    )
    reverse = endpoint_matches(route.origin, request.dropoff, dropoff_zone_ids, request.dropoff_place_id) and (
        endpoint_matches(route.destination, request.pickup, pickup_zone_ids, request.pickup_place_id)
    )
    if not forward and not reverse:
        return GridCandidateCheck(**check, matched=False, rejection_reason="ZONE_MISMATCH")

    match route.direction:
        case RouteDirection.BIDIRECTIONAL:
            allowed = True
        case RouteDirection.A_TO_B:
            allowed = forward
        case RouteDirection.B_TO_A:
            allowed = reverse
        case _:
            raise ValueError(f"Unknown route direction '{route.direction}'.")
    if not allowed:
        return GridCandidateCheck(**check, matched=False, rejection_reason="DIRECTION_MISMATCH")
    return GridCandidateCheck(**check, matched=True)


def _check_excursion(
    package: ExcursionPackage,
    request: PricingRequest,
    pickup_zone_ids: frozenset[str],
    dropoff_zone_ids: frozenset[str],
) -> GridCandidateCheck:
    if not package.is_active:
        return GridCandidateCheck(id=package.id, name=package.name, matched=False, rejection_reason="INACTIVE")
    if package.vehicle_category_id != request.vehicle_category_id:
        return GridCandidateCheck(id=package.id, name=package.name, matched=False, rejection_reason="CATEGORY_MISMATCH")

    origin_ok = package.origin_zone_id is None or package.origin_zone_id in pickup_zone_ids
    if package.is_temporal_vector:
        # destination is a duration, not a zone
        if package.allowed_origin_zone_ids:
            origin_ok = bool(package.allowed_origin_zone_ids & pickup_zone_ids)
        destination_ok = True
    else:
        destination_ok = package.destination_zone_id is None or package.destination_zone_id in dropoff_zone_ids
    if not (origin_ok and destination_ok):
        return GridCandidateCheck(id=package.id, name=package.name, matched=False, rejection_reason="ZONE_MISMATCH")
    return GridCandidateCheck(id=package.id, name=package.name, matched=True)


def _check_dispo(package: DispoPackage, request: PricingRequest) -> GridCandidateCheck:
    if not package.is_active:
        return GridCandidateCheck(id=package.id, name=package.name, matched=False, rejection_reason="INACTIVE")
    if package.vehicle_category_id != request.vehicle_category_id:
        return GridCandidateCheck(id=package.id, name=package.name, matched=False, rejection_reason="CATEGORY_MISMATCH")
    return GridCandidateCheck(id=package.id, name=package.name, matched=True)


def _match_zone_routes(
    routes: Sequence[ZoneRoute],
    request: PricingRequest,
    pickup_zone_ids: frozenset[str],
    dropoff_zone_ids: frozenset[str],
    details: GridSearchDetails,
) -> GridMatchResult:
    for route in routes:
        check = _check_zone_route(route, request, pickup_zone_ids, dropoff_zone_ids)
        details.routes_checked.append(check)
        if not check.matched:
            continue
        price, is_override = _contract_price(route.fixed_price, route.override_price)
        rule = GridMatchRule(
            description=f"Contract zone route {route.id} ({route.direction.value})",
            grid_type="ZoneRoute",
            grid_id=route.id,
            price=price,
            is_override_price=is_override,
        )
        grid = MatchedGrid(type="ZoneRoute", id=route.id, price=price, is_override_price=is_override)
        return GridMatchResult(matched_grid=grid, rule=rule, details=details)
    return GridMatchResult(fallback_reason="NO_ROUTE_MATCH", details=details)


def _match_excursions(
    packages: Sequence[ExcursionPackage],
    request: PricingRequest,
    pickup_zone_ids: frozenset[str],
    dropoff_zone_ids: frozenset[str],
    estimated_duration_hours: float,
    details: GridSearchDetails,
) -> GridMatchResult:
    for package in packages:
        check = _check_excursion(package, request, pickup_zone_ids, dropoff_zone_ids)
        details.excursions_checked.append(check)
        if not check.matched:
            continue
        price, is_override = _contract_price(package.price, package.override_price)
        duration_used = None
        duration_source = None
        if package.is_temporal_vector:
            minimum = package.minimum_duration_hours or 0.0
            if minimum >= estimated_duration_hours:
                duration_used, duration_source = minimum, "TEMPORAL_VECTOR"
            else:
                duration_used, duration_source = round2(estimated_duration_hours), "ACTUAL_ESTIMATE"
        rule = GridMatchRule(
            description=f"Contract excursion package '{package.name}'",
            grid_type="ExcursionPackage",
            grid_id=package.id,
            grid_name=package.name,
            price=price,
            is_override_price=is_override,
            duration_used_hours=duration_used,
            duration_source=duration_source,
        )
        grid = MatchedGrid(
            type="ExcursionPackage", id=package.id, name=package.name, price=price, is_override_price=is_override
        )
        return GridMatchResult(matched_grid=grid, rule=rule, details=details)
    return GridMatchResult(fallback_reason="NO_EXCURSION_MATCH", details=details)


def _match_dispos(
    packages: Sequence[DispoPackage],
    request: PricingRequest,
    details: GridSearchDetails,
) -> GridMatchResult:
    for package in packages:
        check = _check_dispo(package, request)
        details.dispos_checked.append(check)
        if not check.matched:
            continue
        price, is_override = _contract_price(package.base_price, package.override_price)
        rule = GridMatchRule(
            description=f"Contract dispo package '{package.name}'",
            grid_type="DispoPackage",
            grid_id=package.id,
            grid_name=package.name,
            price=price,
            is_override_price=is_override,
        )
        grid = MatchedGrid(
            type="DispoPackage", id=package.id, name=package.name, price=price, is_override_price=is_override
        )
        return GridMatchResult(matched_grid=grid, rule=rule, details=details)
    return GridMatchResult(fallback_reason="NO_DISPO_MATCH", details=details)


def match_grid(
    request: PricingRequest,
    contact: Optional[Contact],
    pickup_zones: Sequence[Zone],
    dropoff_zones: Sequence[Zone],
    estimated_duration_hours: float = 0.0,
) -> GridMatchResult:
    """Search the contact's contract for a fixed price, gated by trip type.

    Transfers search zone routes, excursions search excursion packages and dispo trips search dispo
    packages; off-grid trips never match. The first matching entry of the gated kind wins. Zone
    membership uses every zone containing the point, so overlapping zones all count.
    """
    if contact is None or not contact.is_partner:
        return GridMatchResult(fallback_reason="PRIVATE_CLIENT")
    contract = contact.contract
    if contract is None:
        return GridMatchResult(fallback_reason="NO_CONTRACT")

    pickup_zone_ids = frozenset(zone.id for zone in pickup_zones)
    dropoff_zone_ids = frozenset(zone.id for zone in dropoff_zones)
    details = GridSearchDetails()

    match request.trip_type:
        case TripType.TRANSFER:
            result = _match_zone_routes(contract.zone_routes, request, pickup_zone_ids, dropoff_zone_ids, details)
        case TripType.EXCURSION:
            result = _match_excursions(
                contract.excursion_packages,
                request,
                pickup_zone_ids,
                dropoff_zone_ids,
                estimated_duration_hours,
                details,
            )
        case TripType.DISPO:
            result = _match_dispos(contract.dispo_packages, request, details)
        case TripType.OFF_GRID:
            result = GridMatchResult(fallback_reason="OFF_GRID", details=details)
        case _:
            raise ValueError(f"Unknown trip type '{request.trip_type}'.")

    if result.is_match:
        logger.info(
            f"Contract {contract.id} matched {result.matched_grid.type} {result.matched_grid.id} "
            f"at {result.matched_grid.price:.2f} EUR"
        )
    return result
