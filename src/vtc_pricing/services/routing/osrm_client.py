"""Thin OSRM route client used by the routing provider."""

from __future__ import annotations

import logging
import time
from typing import Sequence

import httpx

from ...config import settings

logger = logging.getLogger(__name__)

# Paris centre to the Etoile; any two reachable points will do.
_HEALTH_CHECK_PATH = "2.352222,48.856613;2.295,48.8738"

_ROUTE_PARAMS = {"overview": "full", "geometries": "polyline", "steps": "false"}


def _lon_lat_path(coordinates: Sequence[tuple[float, float]]) -> str:
    return ";".join(f"{lng},{lat}" for lat, lng in coordinates)


class OSRMClient:
    """Fetch driving routes from an OSRM server.

    Transient failures (5xx, timeouts, dropped connections) are retried with exponential backoff.
    An OSRM answer whose ``code`` is not ``Ok`` is a ``ValueError`` and is not retried.
    """

    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.routing_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        self._client = client

    def _get_client(self) -> httpx.Client:
        # Candidates are routed from worker threads; never share a pool we did not receive.
        if self._client is not None:
            return self._client
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            limits=httpx.Limits(max_connections=1, max_keepalive_connections=0),
        )

    def _backoff(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** (attempt - 1))

    def _get_json(self, client: httpx.Client, url: str) -> dict:
        attempt = 0
        while True:
            try:
                response = client.get(url, params=_ROUTE_PARAMS)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500 or attempt >= self.max_retries:
                    raise
                reason = f"HTTP {e.response.status_code}"
            except httpx.TimeoutException as e:
                if attempt >= self.max_retries:
                    logger.warning(f"OSRM route request timed out after {attempt + 1} attempt(s): {e}")
                    raise
                reason = "timeout"
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    raise ConnectionError(f"Failed to reach OSRM at {self.base_url}: {e}") from e
                reason = str(e) or "transport error"
            attempt += 1
            delay = self._backoff(attempt)
            logger.debug(f"OSRM {reason}, retry {attempt}/{self.max_retries} in {delay:.1f}s")
            time.sleep(delay)

    def route(self, coordinates: Sequence[tuple[float, float]]) -> dict:
        """Route through ``coordinates`` given as (lat, lng) pairs.

        Returns the raw OSRM payload: ``routes[0]`` carries ``distance`` in metres, ``duration`` in
        seconds and ``geometry`` as an encoded polyline.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM route.")

        url = f"{self.base_url}/route/v1/{self.profile}/{_lon_lat_path(coordinates)}"
        client = self._get_client()
        try:
            data = self._get_json(client, url)
        finally:
            if self._client is None:
                client.close()

        if data.get("code") != "Ok":
            raise ValueError(f"OSRM route request failed: {data.get('message', data.get('code'))}")
        return data


def check_health(base_url: str | None = None) -> bool:
    """True when the OSRM server answers a short test route."""

    base = base_url or settings.osrm_base_url
    if not base:
        return False
    url = f"{base.rstrip('/')}/route/v1/{settings.osrm_profile}/{_HEALTH_CHECK_PATH}"
    try:
        response = httpx.get(url, params={"overview": "false"}, timeout=5.0)
        response.raise_for_status()
        return response.json().get("code") == "Ok"
    except (httpx.HTTPError, ValueError):
        return False
