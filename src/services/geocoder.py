"""Nominatim geocoder: best-effort address and country lookups."""

from typing import Optional
import httpx

from src.models.listing import UNKNOWN_COUNTRY
from src.utils.config import ServiceConfig
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class NominatimGeocoder:
    """Single-attempt lookups with a short timeout; failures yield defaults."""

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        user_agent: str = "SecondServe/1.0",
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "NominatimGeocoder":
        return cls(
            base_url=config.geocoder_url,
            user_agent=config.geocoder_user_agent,
            timeout_seconds=config.geocoder_timeout_seconds,
        )

    async def _get(self, path: str, params: dict):
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds,
            transport=self.transport,
            headers={"User-Agent": self.user_agent},
        ) as client:
            response = await client.get(f"{self.base_url}{path}", params=params)
            response.raise_for_status()
            return response.json()

    async def country_for(self, address: str) -> str:
        """Country name for an address, or "Unknown"."""
        if not address:
            return UNKNOWN_COUNTRY
        try:
            results = await self._get(
                "/search",
                {"q": address, "format": "json", "addressdetails": 1, "limit": 1},
            )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.warning("Country lookup failed", error=str(e) or e.__class__.__name__)
            return UNKNOWN_COUNTRY

        if isinstance(results, list) and results:
            details = results[0].get("address") or {}
            return details.get("country") or UNKNOWN_COUNTRY
        return UNKNOWN_COUNTRY

    async def reverse(self, latitude: float, longitude: float) -> Optional[str]:
        """Display address for coordinates, or None."""
        try:
            result = await self._get(
                "/reverse",
                {"lat": latitude, "lon": longitude, "format": "json"},
            )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.warning("Reverse geocoding failed", error=str(e) or e.__class__.__name__)
            return None

        if isinstance(result, dict):
            return result.get("display_name") or None
        return None
