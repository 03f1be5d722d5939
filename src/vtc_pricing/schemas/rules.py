"""Applied-rule records forming the audit trail of a pricing decision.

Each rule is a pydantic model tagged by ``type``; ``AppliedRule`` is the closed union of all
kinds, discriminated on that tag so a serialized trail can be loaded back losslessly.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class RuleType(str, Enum):
    GRID_MATCH = "GRID_MATCH"
    GRID_FALLBACK = "GRID_FALLBACK"
    DYNAMIC_BASE_CALCULATION = "DYNAMIC_BASE_CALCULATION"
    ZONE_MULTIPLIER = "ZONE_MULTIPLIER"
    VEHICLE_CATEGORY_MULTIPLIER = "VEHICLE_CATEGORY_MULTIPLIER"
    ADVANCED_RATE = "ADVANCED_RATE"
    SEASONAL_MULTIPLIER = "SEASONAL_MULTIPLIER"
    ROUND_TRIP = "ROUND_TRIP"
    TARGET_MARGIN = "TARGET_MARGIN"
    TOLL_COST = "TOLL_COST"
    VEHICLE_SELECTION = "VEHICLE_SELECTION"
    ROUTE_SEGMENTATION = "ROUTE_SEGMENTATION"
    TRANSVERSAL_DECOMPOSITION = "TRANSVERSAL_DECOMPOSITION"
    TRANSIT_DISCOUNT = "TRANSIT_DISCOUNT"
    AUTO_SWITCH_TO_MAD = "AUTO_SWITCH_TO_MAD"
    AUTO_SWITCH_ROUND_TRIP_TO_MAD = "AUTO_SWITCH_ROUND_TRIP_TO_MAD"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"


class _Rule(BaseModel):
    description: str = ""


class _PriceStep(_Rule):
    price_before: float
    price_after: float


class GridMatchRule(_Rule):
    type: Literal["GRID_MATCH"] = "GRID_MATCH"
    grid_type: Literal["ZoneRoute", "ExcursionPackage", "DispoPackage"]
    grid_id: str
    grid_name: Optional[str] = None
    price: float
    is_override_price: bool = False
    duration_used_hours: Optional[float] = None
    duration_source: Optional[Literal["TEMPORAL_VECTOR", "ACTUAL_ESTIMATE"]] = None


class GridFallbackRule(_Rule):
    type: Literal["GRID_FALLBACK"] = "GRID_FALLBACK"
    reason: str


class DynamicBaseRule(_Rule):
    type: Literal["DYNAMIC_BASE_CALCULATION"] = "DYNAMIC_BASE_CALCULATION"
    distance_km: float
    duration_minutes: float
    rate_per_km: float
    rate_per_hour: float
    rate_per_km_source: str
    rate_per_hour_source: str
    distance_based_price: float
    duration_based_price: float
    selected_method: Literal["DISTANCE", "DURATION", "DISPO_HOURS"]
    base_price: float


class ZoneMultiplierRule(_PriceStep):
    type: Literal["ZONE_MULTIPLIER"] = "ZONE_MULTIPLIER"
    multiplier: float
    source: Literal["PICKUP", "DROPOFF", "AVERAGE", "ROUTE_SEGMENTATION"]
    aggregation: str
    pickup_zone_code: Optional[str] = None
    dropoff_zone_code: Optional[str] = None


class VehicleCategoryMultiplierRule(_PriceStep):
    type: Literal["VEHICLE_CATEGORY_MULTIPLIER"] = "VEHICLE_CATEGORY_MULTIPLIER"
    category_id: str
    category_name: str
    multiplier: float


class AdvancedRateRule(_PriceStep):
    type: Literal["ADVANCED_RATE"] = "ADVANCED_RATE"
    rate_id: str
    rate_name: str
    applies_to: Literal["NIGHT", "WEEKEND"]
    adjustment_type: Literal["PERCENTAGE", "FIXED_AMOUNT"]
    value: float
    priority: int


class SeasonalMultiplierRule(_PriceStep):
    type: Literal["SEASONAL_MULTIPLIER"] = "SEASONAL_MULTIPLIER"
    multiplier_id: str
    name: str
    multiplier: float
    priority: int


class RoundTripRule(_PriceStep):
    type: Literal["ROUND_TRIP"] = "ROUND_TRIP"
    multiplier: float = 2.0


class TargetMarginRule(_PriceStep):
    type: Literal["TARGET_MARGIN"] = "TARGET_MARGIN"
    target_margin_percent: float


class TollCostRule(_Rule):
    type: Literal["TOLL_COST"] = "TOLL_COST"
    source: Literal["API", "CACHE", "ESTIMATE"]
    amount: float
    estimated_amount: float
    is_from_cache: bool = False


class VehicleSelectionRule(_Rule):
    type: Literal["VEHICLE_SELECTION"] = "VEHICLE_SELECTION"
    selection_criterion: Literal["MINIMAL_COST"] = "MINIMAL_COST"
    selected_vehicle_id: Optional[str] = None
    selected_base_id: Optional[str] = None
    candidates_evaluated: int = 0
    fallback_used: bool = False
    fallback_reason: Optional[str] = None
    internal_cost: Optional[float] = None


class RouteSegmentationRule(_Rule):
    type: Literal["ROUTE_SEGMENTATION"] = "ROUTE_SEGMENTATION"
    segmentation_method: Literal["POLYLINE", "FALLBACK"]
    segment_count: int
    zones_traversed: list[str]
    weighted_multiplier: float
    total_surcharges: float


class TransversalDecompositionRule(_PriceStep):
    type: Literal["TRANSVERSAL_DECOMPOSITION"] = "TRANSVERSAL_DECOMPOSITION"
    zones_traversed: list[str]
    segment_count: int
    price_before_discount: float
    total_transit_discount: float


class TransitDiscountRule(_Rule):
    type: Literal["TRANSIT_DISCOUNT"] = "TRANSIT_DISCOUNT"
    zone_code: str
    zone_name: str
    segment_price: float
    discount_percent: float
    discount_amount: float


class AutoSwitchToMadRule(_PriceStep):
    type: Literal["AUTO_SWITCH_TO_MAD"] = "AUTO_SWITCH_TO_MAD"
    price_difference: float
    percentage_gain: float
    reason: Literal["DENSE_ZONE_LOW_SPEED"] = "DENSE_ZONE_LOW_SPEED"
    commercial_speed_kmh: float
    speed_threshold_kmh: float


class AutoSwitchRoundTripToMadRule(_PriceStep):
    type: Literal["AUTO_SWITCH_ROUND_TRIP_TO_MAD"] = "AUTO_SWITCH_ROUND_TRIP_TO_MAD"
    price_difference: float
    percentage_gain: float
    reason: str
    waiting_time_minutes: float
    return_distance_km: float
    blocked_window_minutes: float


class ManualOverrideRule(_PriceStep):
    type: Literal["MANUAL_OVERRIDE"] = "MANUAL_OVERRIDE"
    price_change: float
    price_change_percent: float
    reason: Optional[str] = None
    overridden_at: str
    is_contract_price_override: bool = False


AppliedRule = Annotated[
    Union[
        GridMatchRule,
        GridFallbackRule,
        DynamicBaseRule,
        ZoneMultiplierRule,
        VehicleCategoryMultiplierRule,
        AdvancedRateRule,
        SeasonalMultiplierRule,
        RoundTripRule,
        TargetMarginRule,
        TollCostRule,
        VehicleSelectionRule,
        RouteSegmentationRule,
        TransversalDecompositionRule,
        TransitDiscountRule,
        AutoSwitchToMadRule,
        AutoSwitchRoundTripToMadRule,
        ManualOverrideRule,
    ],
    Field(discriminator="type"),
]
