"""Engine configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults.

    Organization pricing settings are not part of this object: they travel with each
    pricing call as an immutable snapshot. These knobs only tune the engine and its adapters.
    """

    model_config = SettingsConfigDict(
        env_prefix="VTC_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM profile to use when computing travel times.",
    )
    osrm_max_retries: int = Field(default=3, ge=0)
    osrm_backoff_seconds: float = Field(default=1.0, ge=0.0)
    routing_timeout_seconds: float = Field(default=10.0, gt=0.0)

    fuel_api_url: Optional[str] = Field(default=None, description="Endpoint returning fuel prices by GPS position.")
    toll_api_url: Optional[str] = Field(default=None, description="Route computation endpoint returning toll info.")
    toll_api_key: Optional[str] = Field(default=None, description="API key sent with toll requests.")
    adapter_timeout_seconds: float = Field(default=5.0, gt=0.0)
    fuel_price_staleness_hours: float = Field(default=48.0, gt=0.0)
    toll_cache_ttl_hours: float = Field(default=24.0, gt=0.0)
    adapter_cache_max_entries: int = Field(default=1024, ge=1)

    vehicle_max_haversine_km: float = Field(default=100.0, gt=0.0)
    vehicle_max_candidates: int = Field(default=5, ge=1)
    vehicle_max_parallel_routing: int = Field(default=5, ge=1)
    road_distance_factor: float = Field(default=1.3, ge=1.0)
    fallback_average_speed_kmh: float = Field(default=50.0, gt=0.0)

    default_distance_km: float = Field(default=10.0, ge=0.0)
    default_duration_minutes: float = Field(default=30.0, ge=0.0)

    default_dense_zone_codes: tuple[str, ...] = Field(default=("PARIS_0", "PARIS_10", "LA_DEFENSE"))
    default_transit_zone_codes: tuple[str, ...] = Field(default=("PARIS_0", "PARIS_10"))

    @field_validator("default_dense_zone_codes", "default_transit_zone_codes", mode="before")
    @classmethod
    def _parse_zone_codes(cls, value: Any) -> tuple[str, ...]:
        """Zone codes from a tuple, a list, a JSON array or a comma-separated string."""
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                value = value.split(",")
            if isinstance(value, str):
                value = [value]
        if isinstance(value, (list, tuple)):
            return tuple(code for code in (str(item).strip() for item in value) if code)
        return tuple()


settings = Settings()
