"""Toll cost providers with a route-based HTTP lookup and a distance-rate estimate."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Literal, Optional, Protocol

import httpx

from ...config import settings
from ...models.domain import GeoPoint
from ..rounding import round2

logger = logging.getLogger(__name__)

TollSource = Literal["API", "CACHE", "ESTIMATE"]


@dataclass(slots=True, frozen=True)
class TollQuote:
    amount: float
    source: TollSource
    is_from_cache: bool = False
    encoded_polyline: Optional[str] = None


class TollProvider(Protocol):
    def get_toll_cost(
        self,
        pickup: GeoPoint,
        dropoff: GeoPoint,
        *,
        distance_km: float,
        fallback_rate_per_km: float,
    ) -> TollQuote:
        """Return a quote. Implementations must never raise."""


def estimate_toll(distance_km: float, fallback_rate_per_km: float) -> TollQuote:
    return TollQuote(amount=round2(distance_km * fallback_rate_per_km), source="ESTIMATE")


class EstimatedTollProvider:
    """Provider that only knows the per-kilometre estimate."""

    def get_toll_cost(
        self,
        pickup: GeoPoint,
        dropoff: GeoPoint,
        *,
        distance_km: float,
        fallback_rate_per_km: float,
    ) -> TollQuote:
        return estimate_toll(distance_km, fallback_rate_per_km)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_money(price: dict) -> float:
    return float(price.get("units", 0)) + float(price.get("nanos", 0)) / 1e9


def parse_toll_response(data: Any) -> TollQuote:
    """Read the EUR toll price and route polyline of the first route; any unexpected shape is a ValueError."""

    if not isinstance(data, dict):
        raise ValueError(f"Toll response is a {type(data).__name__}, expected an object.")
    routes = data.get("routes") or []
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
        raise ValueError("Toll response contains no route.")
    route = routes[0]
    polyline_info = route.get("polyline") or {}
    advisory = route.get("travelAdvisory") or {}
    if not isinstance(polyline_info, dict) or not isinstance(advisory, dict):
        raise ValueError("Toll route has an unexpected structure.")
    toll_info = advisory.get("tollInfo") or {}
    estimated = toll_info.get("estimatedPrice", []) if isinstance(toll_info, dict) else None
    if not isinstance(estimated, list) or not all(isinstance(price, dict) for price in estimated):
        raise ValueError("Toll info has an unexpected structure.")
    prices = [price for price in estimated if price.get("currencyCode", "EUR") == "EUR"]
    amount = round2(_parse_money(prices[0])) if prices else 0.0
    polyline = polyline_info.get("encodedPolyline")
    return TollQuote(amount=amount, source="API", encoded_polyline=polyline if isinstance(polyline, str) else None)


class HttpTollProvider:
    """Route-based toll lookup against a ``computeRoutes`` style endpoint.

    The request asks for toll info and the encoded route polyline; the EUR estimated price of the
    first route is used. A route without toll info costs nothing. Answers are cached per rounded
    origin/destination pair for the configured TTL; expired entries are dropped whenever a new
    answer is stored and the oldest entries go once the cache is full.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        cache_ttl_hours: float | None = None,
        client: httpx.Client | None = None,
        max_cache_entries: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.base_url = base_url or settings.toll_api_url
        if not self.base_url:
            raise ValueError("Toll API URL is not configured.")
        self.api_key = api_key or settings.toll_api_key
        self.timeout = timeout if timeout is not None else settings.adapter_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        ttl_hours = cache_ttl_hours if cache_ttl_hours is not None else settings.toll_cache_ttl_hours
        self.cache_ttl = timedelta(hours=ttl_hours)
        self._client = client
        self._clock = clock
        self.max_cache_entries = max_cache_entries or settings.adapter_cache_max_entries
        self._cache: dict[tuple[float, float, float, float], tuple[datetime, TollQuote]] = {}

    def _get_client(self) -> httpx.Client:
        if self._client is not None:
            return self._client
        return httpx.Client(timeout=httpx.Timeout(self.timeout, connect=self.timeout))

    @staticmethod
    def _cache_key(pickup: GeoPoint, dropoff: GeoPoint) -> tuple[float, float, float, float]:
        return (round(pickup.lat, 4), round(pickup.lng, 4), round(dropoff.lat, 4), round(dropoff.lng, 4))

    def _build_payload(self, pickup: GeoPoint, dropoff: GeoPoint) -> dict:
        return {
            "origin": {"location": {"latLng": {"latitude": pickup.lat, "longitude": pickup.lng}}},
            "destination": {"location": {"latLng": {"latitude": dropoff.lat, "longitude": dropoff.lng}}},
            "travelMode": "DRIVE",
            "extraComputations": ["TOLLS"],
        }

    def _request(self, pickup: GeoPoint, dropoff: GeoPoint) -> TollQuote:
        headers = {"X-Goog-FieldMask": "routes.travelAdvisory.tollInfo,routes.polyline.encodedPolyline"}
        if self.api_key:
            headers["X-Goog-Api-Key"] = self.api_key
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.post(self.base_url, json=self._build_payload(pickup, dropoff), headers=headers)
                    response.raise_for_status()
                    return parse_toll_response(response.json())
                except (httpx.TimeoutException, httpx.NetworkError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Toll request failed, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
        finally:
            if self._client is None:
                client.close()

    def _store(self, key: tuple[float, float, float, float], now: datetime, quote: TollQuote) -> None:
        expired = [k for k, (stored_at, _) in self._cache.items() if now - stored_at > self.cache_ttl]
        for k in expired:
            del self._cache[k]
        self._cache.pop(key, None)
        while len(self._cache) >= self.max_cache_entries:
            self._cache.pop(next(iter(self._cache)))
        self._cache[key] = (now, quote)

    def get_toll_cost(
        self,
        pickup: GeoPoint,
        dropoff: GeoPoint,
        *,
        distance_km: float,
        fallback_rate_per_km: float,
    ) -> TollQuote:
        key = self._cache_key(pickup, dropoff)
        cached = self._cache.get(key)
        now = self._clock()
        if cached is not None and now - cached[0] <= self.cache_ttl:
            quote = cached[1]
            return TollQuote(
                amount=quote.amount, source="CACHE", is_from_cache=True, encoded_polyline=quote.encoded_polyline
            )
        try:
            quote = self._request(pickup, dropoff)
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Toll lookup failed, estimating at {fallback_rate_per_km} EUR/km: {e}")
            return estimate_toll(distance_km, fallback_rate_per_km)
        self._store(key, now, quote)
        return quote
