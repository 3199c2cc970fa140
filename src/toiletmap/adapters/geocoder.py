"""
Reverse geocoding via Nominatim (OpenStreetMap).

Nominatim allows roughly one request per second and requires a User-Agent,
so calls are spaced out and results are cached by rounded coordinate.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import httpx

from ..config import GeocodeConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    address: str
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"address": self.address, "success": self.success}
        if self.error:
            data["error"] = self.error
        return data


def cache_key(lat: float, lng: float) -> str:
    # 6 decimals is about 0.1 m
    return f"{lat:.6f},{lng:.6f}"


def format_address(data: dict[str, Any]) -> str:
    """
    "ROAD HOUSE_NUMBER, POSTCODE CITY", falling back to display_name.
    """
    addr = data.get("address")
    if not addr:
        return data.get("display_name", "")

    parts = []
    road = addr.get("road")
    house_number = addr.get("house_number")
    if road and house_number:
        parts.append(f"{road} {house_number}")
    elif road:
        parts.append(road)

    location = [v for v in (addr.get("postcode"), addr.get("city")) if v]
    if location:
        parts.append(" ".join(location))

    return ", ".join(parts) if parts else data.get("display_name", "")


class NominatimGeocoder:
    def __init__(
        self,
        config: GeocodeConfig,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)
        self._clock = clock
        self._sleep = sleep
        self._cache: dict[str, tuple[float, GeocodeResult]] = {}
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "NominatimGeocoder":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def clear_cache(self) -> None:
        self._cache.clear()

    def _cached(self, key: str) -> GeocodeResult | None:
        hit = self._cache.get(key)
        if hit is None:
            return None
        cached_at, result = hit
        ttl = self.config.cache_ttl if result.success else self.config.failure_ttl
        if self._clock() - cached_at >= ttl:
            del self._cache[key]
            return None
        return result

    async def _rate_limit(self) -> None:
        if self._last_request is not None:
            wait = self.config.min_interval - (self._clock() - self._last_request)
            if wait > 0:
                await self._sleep(wait)
        self._last_request = self._clock()

    async def reverse_geocode(self, lat: float, lng: float) -> GeocodeResult:
        """Look up an address for a coordinate. Never raises; failures come back as success=False."""
        key = cache_key(lat, lng)
        cached = self._cached(key)
        if cached is not None:
            return cached

        async with self._lock:
            await self._rate_limit()
            result = await self._fetch(lat, lng)

        self._cache[key] = (self._clock(), result)
        return result

    async def _fetch(self, lat: float, lng: float) -> GeocodeResult:
        params = {
            "format": "json",
            "lat": str(lat),
            "lon": str(lng),
            "addressdetails": "1",
            "zoom": "18",
        }
        if self.config.email:
            params["email"] = self.config.email
        try:
            response = await self._client.get(
                self.config.base_url,
                params=params,
                headers={"User-Agent": self.config.user_agent},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            return self._failure(lat, lng, f"HTTP error! status: {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            return self._failure(lat, lng, str(e) or type(e).__name__)

        if not isinstance(data, dict) or not data.get("display_name"):
            return self._failure(lat, lng, "No address found for these coordinates")
        return GeocodeResult(address=format_address(data), success=True)

    @staticmethod
    def _failure(lat: float, lng: float, message: str) -> GeocodeResult:
        logger.warning("Reverse geocoding %s,%s failed: %s", lat, lng, message)
        return GeocodeResult(address="", success=False, error=message)
