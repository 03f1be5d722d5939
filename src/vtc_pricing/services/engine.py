"""Pricing engine: resolves zones and trip metrics, then runs the pricing stages in a fixed order."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import settings
from ..errors import InvalidPricingInputError
from ..models.domain import OrganizationPricingSettings, PricingSnapshot, VehicleCategory, Zone
from ..schemas.pricing import (
    DispoDetails,
    MatchedGrid,
    PricingMode,
    PricingRequest,
    PricingResult,
    RouteLeg,
    SegmentAnalysis,
    TripAnalysis,
    TripType,
    ZoneRef,
    ZoneSegmentationInfo,
)
from ..schemas.rules import (
    AppliedRule,
    GridFallbackRule,
    RouteSegmentationRule,
    TollCostRule,
    VehicleSelectionRule,
)
from .adapters.fuel import FuelPriceProvider, FuelPriceQuery, FuelPriceQuote, resolve_fuel_price
from .adapters.toll import TollProvider, TollQuote, estimate_toll
from .autoswitch.dense_zone import apply_dense_zone_switch
from .autoswitch.round_trip import apply_round_trip_switch
from .costs.model import (
    calculate_cost_breakdown,
    calculate_zone_surcharges,
    combine_breakdowns,
    replace_toll,
    resolve_cost_parameters,
    resolve_fuel_consumption,
)
from .costs.profitability import financial_fields, recost, reprice
from .dynamic.calculator import calculate_dynamic_price, resolve_rates
from .grid.matcher import match_grid
from .rounding import round2
from .routing.provider import RoutingProvider, route_or_estimate
from .segmentation.route_segmentation import fallback_segmentation, segment_encoded_polyline
from .segmentation.transversal import chain_adjustment_factor, decompose_transversal_trip
from .vehicles.selector import SelectionRequest, select_vehicle
from .zones.resolver import find_zones_for_point, resolve_zone_conflict

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TripMetrics:
    """One-way service distance and duration, with where they came from."""

    distance_km: float
    duration_minutes: float
    source: str
    encoded_polyline: Optional[str] = None


@dataclass(slots=True, frozen=True)
class _ResolvedZones:
    pickup_candidates: list[Zone]
    dropoff_candidates: list[Zone]
    pickup: Optional[Zone]
    dropoff: Optional[Zone]


def _zone_ref(zone: Optional[Zone]) -> Optional[ZoneRef]:
    if zone is None:
        return None
    return ZoneRef(id=zone.id, code=zone.code, name=zone.name, price_multiplier=zone.price_multiplier)


def _doubles_service_leg(request: PricingRequest) -> bool:
    return request.is_round_trip and request.trip_type is TripType.TRANSFER


class PricingEngine:
    """Compute a price, its internal cost and its audit trail for one request.

    The engine is a pure computation over the request and a snapshot of organization data. External
    lookups go through the optional providers; each one degrades to an estimate, so ``calculate``
    never fails because a provider is down.
    """

    def __init__(
        self,
        routing_provider: Optional[RoutingProvider] = None,
        fuel_price_provider: Optional[FuelPriceProvider] = None,
        toll_provider: Optional[TollProvider] = None,
    ) -> None:
        self.routing_provider = routing_provider
        self.fuel_price_provider = fuel_price_provider
        self.toll_provider = toll_provider

    def calculate(self, request: PricingRequest, snapshot: PricingSnapshot) -> PricingResult:
        if snapshot.vehicle_category.id != request.vehicle_category_id:
            raise InvalidPricingInputError(
                f"Vehicle category '{request.vehicle_category_id}' does not match the snapshot category "
                f"'{snapshot.vehicle_category.id}'."
            )
        self._check_category_capacity(request, snapshot.vehicle_category)

        org = snapshot.settings
        zones = self._resolve_zones(request, snapshot)
        metrics = self.resolve_trip_metrics(request, org)
        fuel_price = self._fuel_price(request, snapshot)
        toll_quote = self._toll_quote(request, org, metrics)
        polyline = request.encoded_polyline or metrics.encoded_polyline or (
            toll_quote.encoded_polyline if toll_quote else None
        )
        segmentation = self._segment(request, snapshot, zones, metrics, polyline)

        result = self._initial_result(request, snapshot, zones, metrics, segmentation, fuel_price)
        result = self._apply_toll(result, toll_quote, _doubles_service_leg(request))
        result = self._select_vehicle(result, request, snapshot, zones, metrics, fuel_price, toll_quote)
        result = self._apply_segmentation(result, request, snapshot, zones, segmentation)

        rate_per_hour = resolve_rates(snapshot.vehicle_category, org).rate_per_hour
        result = apply_dense_zone_switch(result, request, org, rate_per_hour)
        result = apply_round_trip_switch(result, request, org, rate_per_hour)

        logger.info(
            f"Priced {request.trip_type.value} trip ({result.pricing_mode.value}): {result.price:.2f} EUR, "
            f"cost {result.internal_cost:.2f} EUR, margin {result.margin_percent:.2f}% "
            f"[{result.profitability_indicator.value}]"
        )
        return result

    @staticmethod
    def _check_category_capacity(request: PricingRequest, category: VehicleCategory) -> None:
        if request.passenger_count > category.max_passengers:
            raise InvalidPricingInputError(
                f"{request.passenger_count} passengers exceed the {category.max_passengers} allowed "
                f"in category '{category.code}'."
            )
        if category.max_luggage is not None and request.luggage_count > category.max_luggage:
            raise InvalidPricingInputError(
                f"{request.luggage_count} pieces of luggage exceed the {category.max_luggage} allowed "
                f"in category '{category.code}'."
            )

    def _resolve_zones(self, request: PricingRequest, snapshot: PricingSnapshot) -> _ResolvedZones:
        strategy = snapshot.settings.zone_conflict_strategy
        pickup_candidates = find_zones_for_point(request.pickup, snapshot.zones)
        dropoff_candidates = (
            find_zones_for_point(request.dropoff, snapshot.zones) if request.dropoff is not None else []
        )
        return _ResolvedZones(
            pickup_candidates=pickup_candidates,
            dropoff_candidates=dropoff_candidates,
            pickup=resolve_zone_conflict(request.pickup, pickup_candidates, strategy),
            dropoff=(
                resolve_zone_conflict(request.dropoff, dropoff_candidates, strategy)
                if request.dropoff is not None
                else None
            ),
        )

    def resolve_trip_metrics(self, request: PricingRequest, org: OrganizationPricingSettings) -> TripMetrics:
        """Distance and duration from the request first, then routing, then configured defaults.

        Dispo trips are billed on the booked hours, which always win over any routed duration.
        """
        distance = request.estimated_distance_km
        duration = request.estimated_duration_minutes
        booked_minutes = request.duration_hours * 60 if request.trip_type is TripType.DISPO else None
        if booked_minutes is not None:
            duration = booked_minutes

        if distance is not None and duration is not None:
            return TripMetrics(round2(distance), round2(duration), "REQUEST", request.encoded_polyline)

        if request.dropoff is not None:
            quote = route_or_estimate(self.routing_provider, request.pickup, request.dropoff)
            return TripMetrics(
                distance_km=round2(distance if distance is not None else quote.distance_km),
                duration_minutes=round2(duration if duration is not None else quote.duration_minutes),
                source=quote.source,
                encoded_polyline=request.encoded_polyline or quote.encoded_polyline,
            )

        if booked_minutes is not None:
            # Open-ended hourly hire: assume the full kilometre allowance is driven.
            return TripMetrics(
                distance_km=round2(request.duration_hours * org.dispo_included_km_per_hour),
                duration_minutes=round2(duration),
                source="DEFAULT",
            )
        return TripMetrics(
            distance_km=round2(distance if distance is not None else settings.default_distance_km),
            duration_minutes=round2(duration if duration is not None else settings.default_duration_minutes),
            source="DEFAULT",
        )

    def _fuel_price(self, request: PricingRequest, snapshot: PricingSnapshot) -> FuelPriceQuote:
        query = FuelPriceQuery(
            pickup=request.pickup,
            fuel_type=snapshot.vehicle_category.fuel_type,
            dropoff=request.dropoff,
        )
        return resolve_fuel_price(self.fuel_price_provider, query, snapshot.settings.fuel_price_per_liter)

    def _toll_quote(
        self, request: PricingRequest, org: OrganizationPricingSettings, metrics: TripMetrics
    ) -> Optional[TollQuote]:
        if self.toll_provider is None or request.dropoff is None:
            return None
        rate = resolve_cost_parameters(org).toll_cost_per_km
        try:
            return self.toll_provider.get_toll_cost(
                request.pickup, request.dropoff, distance_km=metrics.distance_km, fallback_rate_per_km=rate
            )
        except Exception as e:
            logger.warning(f"Toll lookup failed, using estimate: {e}")
            return estimate_toll(metrics.distance_km, rate)

    def _segment(
        self,
        request: PricingRequest,
        snapshot: PricingSnapshot,
        zones: _ResolvedZones,
        metrics: TripMetrics,
        polyline: Optional[str],
    ) -> Optional[ZoneSegmentationInfo]:
        if request.dropoff is None:
            return None
        if polyline:
            segmentation = segment_encoded_polyline(
                polyline, snapshot.zones, metrics.duration_minutes, snapshot.settings.zone_conflict_strategy
            )
            if segmentation is not None:
                return segmentation
        return fallback_segmentation(
            request.pickup, request.dropoff, zones.pickup, zones.dropoff, metrics.distance_km, metrics.duration_minutes
        )

    def _initial_result(
        self,
        request: PricingRequest,
        snapshot: PricingSnapshot,
        zones: _ResolvedZones,
        metrics: TripMetrics,
        segmentation: Optional[ZoneSegmentationInfo],
        fuel_price: FuelPriceQuote,
    ) -> PricingResult:
        """Grid price or dynamic price, costed on the service leg alone."""

        org = snapshot.settings
        estimated_hours = (
            request.duration_hours
            if request.trip_type is TripType.EXCURSION and request.duration_hours
            else metrics.duration_minutes / 60
        )
        grid = match_grid(request, snapshot.contact, zones.pickup_candidates, zones.dropoff_candidates, estimated_hours)

        rules: list[AppliedRule] = []
        dispo: Optional[DispoDetails] = None
        matched_grid: Optional[MatchedGrid] = None
        if grid.is_match:
            mode = PricingMode.FIXED_GRID
            price = grid.matched_grid.price
            matched_grid = grid.matched_grid
            rules.append(grid.rule)
        else:
            mode = PricingMode.DYNAMIC
            rules.append(
                GridFallbackRule(description=f"No contract price: {grid.fallback_reason}", reason=grid.fallback_reason)
            )
            weighted = (
                segmentation.weighted_multiplier
                if segmentation is not None and segmentation.segmentation_method == "POLYLINE"
                else None
            )
            outcome = calculate_dynamic_price(
                request,
                snapshot,
                distance_km=metrics.distance_km,
                duration_minutes=metrics.duration_minutes,
                pickup_zone=zones.pickup,
                dropoff_zone=zones.dropoff,
                weighted_zone_multiplier=weighted,
            )
            price = outcome.price
            dispo = outcome.dispo
            rules.extend(outcome.rules)

        factor = 2 if _doubles_service_leg(request) else 1
        breakdown = calculate_cost_breakdown(
            round2(metrics.distance_km * factor),
            round2(metrics.duration_minutes * factor),
            params=resolve_cost_parameters(org),
            consumption=resolve_fuel_consumption(None, snapshot.vehicle_category, org),
            fuel_price=fuel_price,
            parking=calculate_zone_surcharges(zones.pickup, zones.dropoff),
        )
        analysis = TripAnalysis(
            distance_km=metrics.distance_km,
            duration_minutes=metrics.duration_minutes,
            metrics_source=metrics.source,
            pickup_zone=_zone_ref(zones.pickup),
            dropoff_zone=_zone_ref(zones.dropoff),
            cost_breakdown=breakdown,
            dispo=dispo,
            regulatory_class=snapshot.vehicle_category.regulatory_class.value,
        )
        financials = financial_fields(
            round2(price), breakdown.total, org.green_margin_threshold, org.orange_margin_threshold
        )
        return PricingResult(
            pricing_mode=mode,
            trip_type=request.trip_type,
            matched_grid=matched_grid,
            fallback_reason=grid.fallback_reason,
            grid_search_details=grid.details,
            applied_rules=rules,
            trip_analysis=analysis,
            **financials,
        )

    def _apply_toll(self, result: PricingResult, quote: Optional[TollQuote], doubled: bool) -> PricingResult:
        """Replace the per-kilometre toll estimate with a real figure when the provider had one."""

        if quote is None or quote.source == "ESTIMATE":
            return result
        breakdown = result.trip_analysis.cost_breakdown
        service_quote = TollQuote(
            amount=round2(quote.amount * 2) if doubled else quote.amount,
            source=quote.source,
            is_from_cache=quote.is_from_cache,
        )
        rule = TollCostRule(
            description=f"Toll from {quote.source.lower()}: {service_quote.amount:.2f} EUR",
            source=quote.source,
            amount=service_quote.amount,
            estimated_amount=breakdown.tolls.amount,
            is_from_cache=quote.is_from_cache,
        )
        return recost(result, replace_toll(breakdown, service_quote), rules=[rule])

    def _select_vehicle(
        self,
        result: PricingResult,
        request: PricingRequest,
        snapshot: PricingSnapshot,
        zones: _ResolvedZones,
        metrics: TripMetrics,
        fuel_price: FuelPriceQuote,
        toll_quote: Optional[TollQuote],
    ) -> PricingResult:
        """Cost the trip on the cheapest vehicle's approach, service and return legs."""

        breakdown = result.trip_analysis.cost_breakdown
        service_leg = RouteLeg(
            distance_km=breakdown.fuel.distance_km,
            duration_minutes=breakdown.driver_cost.duration_minutes,
            routing_source=metrics.source,
        )
        service_segment = SegmentAnalysis(
            name="SERVICE",
            distance_km=service_leg.distance_km,
            duration_minutes=service_leg.duration_minutes,
            routing_source=service_leg.routing_source,
            cost=breakdown,
        )
        # Round trips and open hourly hires end where they started.
        if _doubles_service_leg(request) or request.dropoff is None:
            return_origin = request.pickup
        else:
            return_origin = request.dropoff
        service_toll = None
        if toll_quote is not None and toll_quote.source != "ESTIMATE":
            service_toll = TollQuote(
                amount=breakdown.tolls.amount, source=toll_quote.source, is_from_cache=toll_quote.is_from_cache
            )
        selection_request = SelectionRequest(
            pickup=request.pickup,
            return_origin=return_origin,
            vehicle_category_id=request.vehicle_category_id,
            passenger_count=request.passenger_count,
            luggage_count=request.luggage_count,
            service_leg=service_leg,
            service_toll=service_toll,
            service_parking=breakdown.parking,
        )
        info = select_vehicle(
            snapshot.vehicles,
            selection_request,
            org=snapshot.settings,
            category=snapshot.vehicle_category,
            fuel_price=fuel_price,
            routing_provider=self.routing_provider,
        )

        if info.fallback_used:
            rule = VehicleSelectionRule(
                description=f"No vehicle selected ({info.fallback_reason}); costed on the service leg only",
                fallback_used=True,
                fallback_reason=info.fallback_reason,
            )
            analysis = result.trip_analysis.model_copy(
                update={"vehicle_selection": info, "segments": [service_segment]}
            )
            return result.model_copy(update={"applied_rules": [*result.applied_rules, rule], "trip_analysis": analysis})

        selected = next(c for c in info.candidates if c.vehicle_id == info.selected_vehicle_id)
        rule = VehicleSelectionRule(
            description=f"Selected {selected.registration} from {selected.base_name}",
            selected_vehicle_id=selected.vehicle_id,
            selected_base_id=selected.base_id,
            candidates_evaluated=info.candidates_evaluated,
            internal_cost=selected.internal_cost,
        )
        analysis = result.trip_analysis.model_copy(update={"vehicle_selection": info, "segments": selected.segments})
        total = combine_breakdowns([segment.cost for segment in selected.segments])
        return recost(result, total, rules=[rule], trip_analysis=analysis)

    def _apply_segmentation(
        self,
        result: PricingResult,
        request: PricingRequest,
        snapshot: PricingSnapshot,
        zones: _ResolvedZones,
        segmentation: Optional[ZoneSegmentationInfo],
    ) -> PricingResult:
        """Attach the zone segmentation and reprice transversal one-way dynamic trips span by span."""

        if segmentation is None:
            return result
        rules: list[AppliedRule] = []
        if segmentation.segmentation_method == "POLYLINE":
            rules.append(
                RouteSegmentationRule(
                    description=f"Route crosses {len(segmentation.segments)} zone span(s)",
                    segmentation_method="POLYLINE",
                    segment_count=len(segmentation.segments),
                    zones_traversed=segmentation.zones_traversed,
                    weighted_multiplier=segmentation.weighted_multiplier,
                    total_surcharges=segmentation.total_surcharges,
                )
            )
        analysis = result.trip_analysis.model_copy(update={"zone_segmentation": segmentation})
        result = result.model_copy(update={"applied_rules": [*result.applied_rules, *rules], "trip_analysis": analysis})

        if result.pricing_mode is not PricingMode.DYNAMIC or _doubles_service_leg(request):
            return result

        org = snapshot.settings
        rates = resolve_rates(snapshot.vehicle_category, org)
        outcome = decompose_transversal_trip(
            segmentation,
            pickup_zone_code=zones.pickup.code if zones.pickup else None,
            dropoff_zone_code=zones.dropoff.code if zones.dropoff else None,
            rate_per_km=rates.rate_per_km,
            rate_per_hour=rates.rate_per_hour,
            target_margin_percent=org.target_margin_percent,
            transit_discount_enabled=org.transit_discount_enabled,
            transit_discount_percent=org.transit_discount_percent,
            allowed_transit_codes=org.transit_zone_codes,
            previous_price=result.price,
            chain_factor=chain_adjustment_factor(result.applied_rules),
        )
        analysis = result.trip_analysis.model_copy(update={"transversal": outcome.decomposition})
        if outcome.rule is None:
            return result.model_copy(update={"trip_analysis": analysis})
        logger.info(
            f"Transversal trip across {', '.join(outcome.decomposition.zones_traversed)}: "
            f"{result.price:.2f} -> {outcome.decomposition.price_after_discount:.2f} EUR"
        )
        return reprice(
            result,
            outcome.decomposition.price_after_discount,
            rules=[outcome.rule, *outcome.discount_rules],
            trip_analysis=analysis,
        )
