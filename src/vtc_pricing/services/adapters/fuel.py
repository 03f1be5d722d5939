"""Fuel price providers: real-time lookup by GPS with cache and default tiers."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal, Optional, Protocol

import httpx

from ...config import settings
from ...models.domain import FuelType, GeoPoint

logger = logging.getLogger(__name__)

DEFAULT_FUEL_PRICES: dict[FuelType, float] = {
    FuelType.DIESEL: 1.789,
    FuelType.GASOLINE: 1.899,
    FuelType.LPG: 0.999,
    FuelType.ELECTRIC: 0.25,
}

FuelPriceSource = Literal["REALTIME", "CACHE", "ORGANIZATION", "DEFAULT"]


@dataclass(slots=True, frozen=True)
class FuelPriceQuery:
    pickup: GeoPoint
    fuel_type: FuelType = FuelType.DIESEL
    dropoff: Optional[GeoPoint] = None
    stops: tuple[GeoPoint, ...] = ()


@dataclass(slots=True, frozen=True)
class FuelPriceQuote:
    price_per_liter: float
    source: FuelPriceSource
    currency: str = "EUR"
    is_stale: bool = False
    fetched_at: Optional[datetime] = None
    countries_on_route: tuple[str, ...] = ()


class FuelPriceProvider(Protocol):
    def get_fuel_price(self, query: FuelPriceQuery) -> FuelPriceQuote:
        """Return a quote. Implementations must never raise."""


def default_fuel_quote(fuel_type: FuelType) -> FuelPriceQuote:
    return FuelPriceQuote(price_per_liter=DEFAULT_FUEL_PRICES[fuel_type], source="DEFAULT")


class StaticFuelPriceProvider:
    """Provider without any external lookup; always answers from the default tier."""

    def get_fuel_price(self, query: FuelPriceQuery) -> FuelPriceQuote:
        return default_fuel_quote(query.fuel_type)


@dataclass(slots=True)
class _CacheEntry:
    price_per_liter: float
    fetched_at: datetime
    countries: tuple[str, ...] = field(default_factory=tuple)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HttpFuelPriceProvider:
    """Fetch fuel prices from an HTTP endpoint keyed by GPS position.

    The endpoint is expected to answer ``GET {base_url}/prices?lat=..&lng=..&fuel=DIESEL`` with
    ``{"price_per_liter": 1.82, "countries": ["FR"]}``. Successful answers are cached per fuel type
    and rounded position; when the endpoint fails the cached value is served, flagged stale once it
    is older than the freshness window, and without any cached value the default tier is returned.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        staleness_hours: float | None = None,
        client: httpx.Client | None = None,
        max_cache_entries: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.base_url = base_url or settings.fuel_api_url
        if not self.base_url:
            raise ValueError("Fuel price API URL is not configured.")
        self.timeout = timeout if timeout is not None else settings.adapter_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        hours = staleness_hours if staleness_hours is not None else settings.fuel_price_staleness_hours
        self.staleness_window = timedelta(hours=hours)
        self._client = client
        self._clock = clock
        self.max_cache_entries = max_cache_entries or settings.adapter_cache_max_entries
        self._cache: dict[tuple[FuelType, float, float], _CacheEntry] = {}

    def _get_client(self) -> httpx.Client:
        if self._client is not None:
            return self._client
        return httpx.Client(timeout=httpx.Timeout(self.timeout, connect=self.timeout))

    @staticmethod
    def _cache_key(query: FuelPriceQuery) -> tuple[FuelType, float, float]:
        return (query.fuel_type, round(query.pickup.lat, 2), round(query.pickup.lng, 2))

    def _fetch(self, query: FuelPriceQuery) -> _CacheEntry:
        params = {"lat": query.pickup.lat, "lng": query.pickup.lng, "fuel": query.fuel_type.value}
        if query.dropoff is not None:
            params["dest_lat"] = query.dropoff.lat
            params["dest_lng"] = query.dropoff.lng
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(f"{self.base_url}/prices", params=params)
                    response.raise_for_status()
                    data = response.json()
                    if not isinstance(data, dict):
                        raise ValueError(f"Fuel price response is a {type(data).__name__}, expected an object.")
                    price = float(data["price_per_liter"])
                    if price <= 0:
                        raise ValueError(f"Invalid fuel price {price}.")
                    countries = data.get("countries") or ()
                    if not isinstance(countries, (list, tuple)):
                        raise ValueError("Fuel price countries must be a list.")
                    countries = tuple(str(code) for code in countries)
                    return _CacheEntry(price_per_liter=price, fetched_at=self._clock(), countries=countries)
                except (httpx.TimeoutException, httpx.NetworkError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Fuel price request failed, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
        finally:
            if self._client is None:
                client.close()

    def _store(self, key: tuple[FuelType, float, float], entry: _CacheEntry) -> None:
        # Stale entries are kept; only the size bound evicts.
        self._cache.pop(key, None)
        while len(self._cache) >= self.max_cache_entries:
            self._cache.pop(next(iter(self._cache)))
        self._cache[key] = entry

    def get_fuel_price(self, query: FuelPriceQuery) -> FuelPriceQuote:
        key = self._cache_key(query)
        try:
            entry = self._fetch(query)
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            cached = self._cache.get(key)
            if cached is None:
                logger.warning(f"Fuel price lookup failed, using default price: {e}")
                return default_fuel_quote(query.fuel_type)
            is_stale = self._clock() - cached.fetched_at > self.staleness_window
            logger.warning(f"Fuel price lookup failed, using cached price (stale={is_stale}): {e}")
            return FuelPriceQuote(
                price_per_liter=cached.price_per_liter,
                source="CACHE",
                is_stale=is_stale,
                fetched_at=cached.fetched_at,
                countries_on_route=cached.countries,
            )
        self._store(key, entry)
        return FuelPriceQuote(
            price_per_liter=entry.price_per_liter,
            source="REALTIME",
            fetched_at=entry.fetched_at,
            countries_on_route=entry.countries,
        )


def resolve_fuel_price(
    provider: FuelPriceProvider | None,
    query: FuelPriceQuery,
    organization_price: float | None,
) -> FuelPriceQuote:
    """Resolve the fuel price through REALTIME, CACHE, ORGANIZATION then DEFAULT."""

    if provider is not None:
        quote = provider.get_fuel_price(query)
        if quote.source in ("REALTIME", "CACHE") and quote.price_per_liter > 0:
            return quote
    if organization_price is not None and organization_price > 0:
        return FuelPriceQuote(price_per_liter=organization_price, source="ORGANIZATION")
    return default_fuel_quote(query.fuel_type)
