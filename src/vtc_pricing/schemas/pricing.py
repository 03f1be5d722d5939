"""Pydantic request/result models for the pricing engine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.domain import GeoPoint
from .rules import AppliedRule


class TripType(str, Enum):
    TRANSFER = "transfer"
    EXCURSION = "excursion"
    DISPO = "dispo"
    OFF_GRID = "off_grid"


class PricingMode(str, Enum):
    FIXED_GRID = "FIXED_GRID"
    DYNAMIC = "DYNAMIC"
    MANUAL = "MANUAL"


class ProfitabilityIndicator(str, Enum):
    GREEN = "green"
    ORANGE = "orange"
    RED = "red"


class PricingRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    pickup: GeoPoint
    dropoff: Optional[GeoPoint] = Field(default=None, description="Required for every trip type except dispo.")
    vehicle_category_id: str
    trip_type: TripType = TripType.TRANSFER
    pickup_at: Optional[datetime] = None
    passenger_count: int = Field(default=1, ge=1)
    luggage_count: int = Field(default=0, ge=0)
    is_round_trip: bool = False
    estimated_distance_km: Optional[float] = Field(default=None, ge=0.0)
    estimated_duration_minutes: Optional[float] = Field(default=None, ge=0.0)
    duration_hours: Optional[float] = Field(default=None, gt=0.0, description="Hours booked for dispo trips.")
    waiting_time_minutes: Optional[float] = Field(default=None, ge=0.0)
    encoded_polyline: Optional[str] = None
    pickup_place_id: Optional[str] = None
    dropoff_place_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_trip_type_fields(self) -> "PricingRequest":
        if self.trip_type is not TripType.DISPO and self.dropoff is None:
            raise ValueError(f"dropoff is required for '{self.trip_type.value}' trips")
        if self.trip_type is TripType.DISPO and self.duration_hours is None:
            raise ValueError("duration_hours is required for dispo trips")
        return self


class FuelCost(BaseModel):
    amount: float
    distance_km: float
    consumption_l100km: float
    consumption_source: Literal["VEHICLE", "CATEGORY", "ORGANIZATION", "DEFAULT"]
    price_per_liter: float
    price_source: Literal["REALTIME", "CACHE", "ORGANIZATION", "DEFAULT"]
    is_stale: bool = False


class TollCost(BaseModel):
    amount: float
    distance_km: float
    rate_per_km: float
    source: Literal["API", "CACHE", "ESTIMATE"] = "ESTIMATE"


class WearCost(BaseModel):
    amount: float
    distance_km: float
    rate_per_km: float


class DriverCost(BaseModel):
    amount: float
    duration_minutes: float
    hourly_rate: float


class ParkingCost(BaseModel):
    amount: float = 0.0
    description: str = ""


class CostBreakdown(BaseModel):
    fuel: FuelCost
    tolls: TollCost
    wear: WearCost
    driver_cost: DriverCost
    parking: ParkingCost
    total: float


class ProfitabilityData(BaseModel):
    indicator: ProfitabilityIndicator
    label: str
    description: str
    margin_percent: float
    green_threshold: float
    orange_threshold: float


class ZoneRef(BaseModel):
    id: str
    code: str
    name: str
    price_multiplier: float


class MatchedGrid(BaseModel):
    type: Literal["ZoneRoute", "ExcursionPackage", "DispoPackage"]
    id: str
    name: Optional[str] = None
    price: float
    is_override_price: bool = False


class GridCandidateCheck(BaseModel):
    id: str
    name: Optional[str] = None
    matched: bool
    rejection_reason: Optional[
        Literal["INACTIVE", "CATEGORY_MISMATCH", "ZONE_MISMATCH", "DIRECTION_MISMATCH", "TRIP_TYPE_MISMATCH"]
    ] = None
    origin_kind: Optional[Literal["ZONES", "ADDRESS"]] = None
    destination_kind: Optional[Literal["ZONES", "ADDRESS"]] = None


class GridSearchDetails(BaseModel):
    routes_checked: list[GridCandidateCheck] = Field(default_factory=list)
    excursions_checked: list[GridCandidateCheck] = Field(default_factory=list)
    dispos_checked: list[GridCandidateCheck] = Field(default_factory=list)


class RouteLeg(BaseModel):
    distance_km: float
    duration_minutes: float
    routing_source: Literal["ROUTING_API", "HAVERSINE_ESTIMATE", "REQUEST", "DEFAULT"]


class SegmentAnalysis(BaseModel):
    name: Literal["APPROACH", "SERVICE", "RETURN"]
    distance_km: float
    duration_minutes: float
    routing_source: Literal["ROUTING_API", "HAVERSINE_ESTIMATE", "REQUEST", "DEFAULT"]
    cost: CostBreakdown


class VehicleCandidate(BaseModel):
    vehicle_id: str
    registration: str
    base_id: str
    base_name: str
    haversine_distance_km: float
    segments: list[SegmentAnalysis]
    total_distance_km: float
    total_duration_minutes: float
    internal_cost: float


class VehicleSelectionInfo(BaseModel):
    selection_criterion: Literal["MINIMAL_COST"] = "MINIMAL_COST"
    selected_vehicle_id: Optional[str] = None
    selected_base_id: Optional[str] = None
    total_vehicles: int = 0
    candidates_after_status_filter: int = 0
    candidates_after_capacity_filter: int = 0
    candidates_after_category_filter: int = 0
    candidates_after_distance_filter: int = 0
    candidates_evaluated: int = 0
    fallback_used: bool = False
    fallback_reason: Optional[
        Literal["NO_VEHICLES_IN_FLEET", "NO_ACTIVE_VEHICLES", "NO_VEHICLES_MATCH_CAPACITY",
                "NO_VEHICLES_MATCH_CATEGORY", "ALL_BASES_TOO_FAR"]
    ] = None
    candidates: list[VehicleCandidate] = Field(default_factory=list)


class ZoneSegment(BaseModel):
    zone_id: str
    zone_code: str
    zone_name: str
    distance_km: float
    duration_minutes: float
    price_multiplier: float
    surcharges_applied: float = 0.0
    entry_point: GeoPoint
    exit_point: GeoPoint


class ZoneSegmentationInfo(BaseModel):
    segmentation_method: Literal["POLYLINE", "FALLBACK"]
    segments: list[ZoneSegment]
    zones_traversed: list[str]
    weighted_multiplier: float
    total_surcharges: float
    total_distance_km: float
    total_duration_minutes: float


class TransversalSegment(BaseModel):
    segment_index: int
    zone_code: str
    zone_name: str
    distance_km: float
    duration_minutes: float
    price_multiplier: float
    segment_price: float
    is_transit_zone: bool = False
    transit_discount_applied: float = 0.0


class TransversalDecomposition(BaseModel):
    is_transversal: bool
    segments: list[TransversalSegment] = Field(default_factory=list)
    zones_traversed: list[str] = Field(default_factory=list)
    total_transit_discount: float = 0.0
    price_before_discount: float = 0.0
    price_after_discount: float = 0.0


class DispoDetails(BaseModel):
    duration_hours: float
    included_distance_km: float
    actual_distance_km: float
    overage_distance_km: float
    overage_rate_per_km: float
    overage_amount: float


class DenseZoneDetection(BaseModel):
    is_intra_dense_zone: bool
    pickup_zone_code: Optional[str] = None
    dropoff_zone_code: Optional[str] = None
    dense_zone_codes: list[str]
    commercial_speed_kmh: Optional[float] = None
    speed_threshold_kmh: float
    is_below_threshold: bool = False


class RoundTripDetection(BaseModel):
    is_round_trip: bool
    is_driver_blocked: bool
    reason: Literal[
        "NOT_ROUND_TRIP",
        "DRIVER_CAN_RETURN",
        "EXCEEDS_MAX_RETURN_DISTANCE",
        "WAITING_TIME_TOO_SHORT",
        "CANNOT_RETURN_IN_TIME",
    ]
    waiting_time_minutes: float
    return_distance_km: float
    return_duration_minutes: float
    blocked_window_minutes: float = 0.0


class MadSuggestion(BaseModel):
    trigger: Literal["DENSE_ZONE_LOW_SPEED", "ROUND_TRIP_DRIVER_BLOCKED"]
    transfer_price: float
    mad_price: float
    price_difference: float
    percentage_gain: float
    billed_hours: float
    recommendation: str
    auto_switched: bool = False


class TripAnalysis(BaseModel):
    distance_km: float
    duration_minutes: float
    metrics_source: Literal["ROUTING_API", "HAVERSINE_ESTIMATE", "REQUEST", "DEFAULT"]
    pickup_zone: Optional[ZoneRef] = None
    dropoff_zone: Optional[ZoneRef] = None
    cost_breakdown: Optional[CostBreakdown] = None
    segments: list[SegmentAnalysis] = Field(default_factory=list)
    vehicle_selection: Optional[VehicleSelectionInfo] = None
    zone_segmentation: Optional[ZoneSegmentationInfo] = None
    transversal: Optional[TransversalDecomposition] = None
    dispo: Optional[DispoDetails] = None
    regulatory_class: Literal["LIGHT", "HEAVY"] = "LIGHT"
    dense_zone_detection: Optional[DenseZoneDetection] = None
    round_trip_detection: Optional[RoundTripDetection] = None
    mad_suggestions: list[MadSuggestion] = Field(default_factory=list)


class PricingResult(BaseModel):
    pricing_mode: PricingMode
    trip_type: TripType
    price: float
    currency: Literal["EUR"] = "EUR"
    internal_cost: float = 0.0
    margin: float = 0.0
    margin_percent: float = 0.0
    profitability_indicator: ProfitabilityIndicator
    profitability: ProfitabilityData
    matched_grid: Optional[MatchedGrid] = None
    fallback_reason: Optional[str] = None
    grid_search_details: Optional[GridSearchDetails] = None
    applied_rules: list[AppliedRule] = Field(default_factory=list)
    trip_analysis: TripAnalysis


class OverrideError(BaseModel):
    code: Literal["INVALID_PRICE", "BELOW_MINIMUM_MARGIN"]
    message: str
    details: dict[str, float] = Field(default_factory=dict)


class OverrideOutcome(BaseModel):
    success: bool
    result: PricingResult
    error: Optional[OverrideError] = None
