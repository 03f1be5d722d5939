"""Domain models for the pricing snapshot (zones, contracts, fleet and organization settings)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Optional, Union

from ..config import settings as engine_settings


class ZoneKind(str, Enum):
    POLYGON = "POLYGON"
    RADIUS = "RADIUS"
    POINT = "POINT"


class ZoneConflictStrategy(str, Enum):
    PRIORITY = "PRIORITY"
    MOST_EXPENSIVE = "MOST_EXPENSIVE"
    CLOSEST = "CLOSEST"
    COMBINED = "COMBINED"


class ZoneMultiplierAggregation(str, Enum):
    MAX = "MAX"
    PICKUP_ONLY = "PICKUP_ONLY"
    DROPOFF_ONLY = "DROPOFF_ONLY"
    AVERAGE = "AVERAGE"


class ContactType(str, Enum):
    PARTNER = "PARTNER"
    PRIVATE = "PRIVATE"


class RouteDirection(str, Enum):
    BIDIRECTIONAL = "BIDIRECTIONAL"
    A_TO_B = "A_TO_B"
    B_TO_A = "B_TO_A"


class RegulatoryClass(str, Enum):
    LIGHT = "LIGHT"
    HEAVY = "HEAVY"


class FuelType(str, Enum):
    DIESEL = "DIESEL"
    GASOLINE = "GASOLINE"
    LPG = "LPG"
    ELECTRIC = "ELECTRIC"


class VehicleStatus(str, Enum):
    ACTIVE = "ACTIVE"
    MAINTENANCE = "MAINTENANCE"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class AdvancedRateType(str, Enum):
    NIGHT = "NIGHT"
    WEEKEND = "WEEKEND"


class AdjustmentType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


@dataclass(slots=True, frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(slots=True, frozen=True)
class Zone:
    """A pricing zone. Polygon rings are stored as (lat, lng) pairs."""

    id: str
    code: str
    name: str
    kind: ZoneKind
    coordinates: tuple[tuple[float, float], ...] = ()
    center: Optional[GeoPoint] = None
    radius_km: Optional[float] = None
    price_multiplier: float = 1.0
    is_active: bool = True
    priority: int = 0
    fixed_parking_surcharge: float = 0.0
    fixed_access_fee: float = 0.0

    @property
    def surcharge_total(self) -> float:
        return self.fixed_parking_surcharge + self.fixed_access_fee


@dataclass(slots=True, frozen=True)
class ZonesEndpoint:
    zone_ids: frozenset[str]


@dataclass(slots=True, frozen=True)
class AddressEndpoint:
    lat: float
    lng: float
    place_id: Optional[str] = None


RouteEndpoint = Union[ZonesEndpoint, AddressEndpoint]


@dataclass(slots=True, frozen=True)
class ZoneRoute:
    id: str
    vehicle_category_id: str
    origin: RouteEndpoint
    destination: RouteEndpoint
    fixed_price: float
    direction: RouteDirection = RouteDirection.BIDIRECTIONAL
    is_active: bool = True
    override_price: Optional[float] = None


@dataclass(slots=True, frozen=True)
class ExcursionPackage:
    """A packaged excursion; temporal vectors bill a minimum duration instead of a destination zone."""

    id: str
    name: str
    vehicle_category_id: str
    price: float
    origin_zone_id: Optional[str] = None
    destination_zone_id: Optional[str] = None
    is_active: bool = True
    override_price: Optional[float] = None
    is_temporal_vector: bool = False
    minimum_duration_hours: Optional[float] = None
    allowed_origin_zone_ids: frozenset[str] = field(default_factory=frozenset)


@dataclass(slots=True, frozen=True)
class DispoPackage:
    id: str
    name: str
    vehicle_category_id: str
    base_price: float
    is_active: bool = True
    override_price: Optional[float] = None


@dataclass(slots=True, frozen=True)
class PartnerContract:
    id: str
    zone_routes: tuple[ZoneRoute, ...] = ()
    excursion_packages: tuple[ExcursionPackage, ...] = ()
    dispo_packages: tuple[DispoPackage, ...] = ()


@dataclass(slots=True, frozen=True)
class Contact:
    id: str
    display_name: str
    contact_type: ContactType = ContactType.PRIVATE
    contract: Optional[PartnerContract] = None

    @property
    def is_partner(self) -> bool:
        return self.contact_type is ContactType.PARTNER


@dataclass(slots=True, frozen=True)
class VehicleCategory:
    id: str
    code: str
    name: str
    max_passengers: int
    max_luggage: Optional[int] = None
    price_multiplier: float = 1.0
    default_rate_per_km: Optional[float] = None
    default_rate_per_hour: Optional[float] = None
    average_consumption_l100km: Optional[float] = None
    regulatory_class: RegulatoryClass = RegulatoryClass.LIGHT
    fuel_type: FuelType = FuelType.DIESEL


@dataclass(slots=True, frozen=True)
class OperatingBase:
    id: str
    name: str
    location: GeoPoint


@dataclass(slots=True, frozen=True)
class Vehicle:
    id: str
    registration: str
    vehicle_category_id: str
    base: OperatingBase
    passenger_capacity: int
    luggage_capacity: Optional[int] = None
    consumption_l100km: Optional[float] = None
    average_speed_kmh: Optional[float] = None
    status: VehicleStatus = VehicleStatus.ACTIVE


@dataclass(slots=True, frozen=True)
class AdvancedRate:
    """Night or weekend adjustment. ``days_of_week`` uses 0 for Sunday through 6 for Saturday."""

    id: str
    name: str
    applies_to: AdvancedRateType
    adjustment_type: AdjustmentType
    value: float
    priority: int = 0
    is_active: bool = True
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    days_of_week: Optional[tuple[int, ...]] = None
    min_distance_km: Optional[float] = None
    max_distance_km: Optional[float] = None
    zone_id: Optional[str] = None


@dataclass(slots=True, frozen=True)
class SeasonalMultiplier:
    id: str
    name: str
    start_date: date
    end_date: date
    multiplier: float
    priority: int = 0
    is_active: bool = True


@dataclass(slots=True, frozen=True)
class OrganizationPricingSettings:
    """Per-organization pricing configuration, defaults already merged by the caller."""

    base_rate_per_km: float
    base_rate_per_hour: float
    target_margin_percent: float = 20.0
    fuel_consumption_l100km: Optional[float] = None
    fuel_price_per_liter: Optional[float] = None
    toll_cost_per_km: Optional[float] = None
    wear_cost_per_km: Optional[float] = None
    driver_hourly_cost: Optional[float] = None
    green_margin_threshold: float = 20.0
    orange_margin_threshold: float = 0.0
    zone_conflict_strategy: Optional[ZoneConflictStrategy] = None
    zone_multiplier_aggregation: ZoneMultiplierAggregation = ZoneMultiplierAggregation.MAX
    dense_zone_speed_threshold: float = 15.0
    dense_zone_codes: tuple[str, ...] = field(default_factory=lambda: engine_settings.default_dense_zone_codes)
    auto_switch_to_mad: bool = False
    min_waiting_time_for_separate_transfers: float = 120.0
    max_return_distance_km: float = 30.0
    round_trip_buffer_minutes: float = 30.0
    auto_switch_round_trip_to_mad: bool = False
    transit_discount_enabled: bool = False
    transit_discount_percent: float = 10.0
    transit_zone_codes: tuple[str, ...] = field(default_factory=lambda: engine_settings.default_transit_zone_codes)
    dispo_included_km_per_hour: float = 50.0
    dispo_overage_rate_per_km: float = 0.50


@dataclass(slots=True, frozen=True)
class PricingSnapshot:
    """Everything one pricing call reads. Never mutated by the engine."""

    settings: OrganizationPricingSettings
    vehicle_category: VehicleCategory
    zones: tuple[Zone, ...] = ()
    contact: Optional[Contact] = None
    vehicles: tuple[Vehicle, ...] = ()
    advanced_rates: tuple[AdvancedRate, ...] = ()
    seasonal_multipliers: tuple[SeasonalMultiplier, ...] = ()
