"""External ZIP geocoding collaborators and the first-success race over them"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
import structlog

from power_pricing.cache import TTLCache
from power_pricing.observability import GEOCODER_RESULTS

logger = structlog.get_logger()

USER_AGENT = "ChooseMyPower-ZIP-Lookup/1.0 (Texas Electricity Comparison)"


@dataclass
class GeocodeResult:
    """A Texas city returned by one of the geocoders"""
    zip_code: str
    city: str
    state: str
    county: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    source: str = ""


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class Geocoder:
    """Base class for a single geocoding provider.

    Subclasses build the request URL and parse the JSON payload into a
    ``GeocodeResult``; ``parse`` returns None for anything that is not a
    Texas city.
    """

    name = "geocoder"

    def __init__(
        self,
        timeout: float = 10.0,
        cache_ttl_seconds: float = 86400,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.timeout = timeout
        self.http_client = http_client
        cache_kwargs = {"clock": clock} if clock is not None else {}
        self.cache = TTLCache(f"geocoder:{self.name}", cache_ttl_seconds, **cache_kwargs)

    def build_url(self, zip_code: str) -> str:
        raise NotImplementedError

    def parse(self, zip_code: str, data: Any) -> Optional[GeocodeResult]:
        raise NotImplementedError

    async def _get_json(self, url: str) -> Any:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.http_client is not None:
            response = await self.http_client.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return response.json()

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
            return response.json()

    async def lookup(self, zip_code: str) -> Optional[GeocodeResult]:
        """Look up a ZIP code; failures of any kind come back as None"""
        cached = self.cache.get(zip_code)
        if cached is not None:
            return cached

        try:
            data = await self._get_json(self.build_url(zip_code))
            result = self.parse(zip_code, data)
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            GEOCODER_RESULTS.labels(provider=self.name, outcome="error").inc()
            logger.warning("Geocoder lookup failed", provider=self.name, zip_code=zip_code, error=str(e))
            return None

        if result is None:
            GEOCODER_RESULTS.labels(provider=self.name, outcome="no_match").inc()
            return None

        GEOCODER_RESULTS.labels(provider=self.name, outcome="match").inc()
        self.cache.put(zip_code, result)
        return result


class USPSGeocoder(Geocoder):
    name = "usps"
    base_url = "https://tools.usps.com/tools/app/ziplookup/cityByZip"

    def build_url(self, zip_code: str) -> str:
        return f"{self.base_url}?zip={zip_code}"

    def parse(self, zip_code: str, data: Any) -> Optional[GeocodeResult]:
        if data.get("resultStatus") != "SUCCESS" or not data.get("cityName") or data.get("state") != "TX":
            return None
        return GeocodeResult(
            zip_code=zip_code,
            city=data["cityName"],
            state="TX",
            county=data.get("countyName") or "",
            source=self.name,
        )


class ZipCodeAPIGeocoder(Geocoder):
    name = "zipcodeapi"
    base_url = "https://www.zipcodeapi.com/rest/demo/info.json"

    def build_url(self, zip_code: str) -> str:
        return f"{self.base_url}/{zip_code}/degrees"

    def parse(self, zip_code: str, data: Any) -> Optional[GeocodeResult]:
        if data.get("state") != "TX" or not data.get("city"):
            return None
        return GeocodeResult(
            zip_code=zip_code,
            city=data["city"],
            state="TX",
            latitude=_to_float(data.get("lat")),
            longitude=_to_float(data.get("lng")),
            source=self.name,
        )


class GeoNamesGeocoder(Geocoder):
    name = "geonames"
    base_url = "http://api.geonames.org/postalCodeSearchJSON"

    def __init__(self, *args, username: str = "demo", **kwargs):
        super().__init__(*args, **kwargs)
        self.username = username

    def build_url(self, zip_code: str) -> str:
        return f"{self.base_url}?postalcode={zip_code}&countryCode=US&username={self.username}"

    def parse(self, zip_code: str, data: Any) -> Optional[GeocodeResult]:
        for place in data.get("postalCodes") or []:
            if place.get("adminCode1") != "TX" or not place.get("placeName"):
                continue
            return GeocodeResult(
                zip_code=zip_code,
                city=place["placeName"],
                state="TX",
                county=place.get("adminName2") or "",
                latitude=_to_float(place.get("lat")),
                longitude=_to_float(place.get("lng")),
                source=self.name,
            )
        return None


def default_geocoders(
    timeout: float = 10.0,
    cache_ttl_seconds: float = 86400,
    http_client: Optional[httpx.AsyncClient] = None,
) -> List[Geocoder]:
    kwargs: Dict[str, Any] = {"timeout": timeout, "cache_ttl_seconds": cache_ttl_seconds, "http_client": http_client}
    return [USPSGeocoder(**kwargs), ZipCodeAPIGeocoder(**kwargs), GeoNamesGeocoder(**kwargs)]


async def first_successful_lookup(geocoders: Sequence[Geocoder], zip_code: str) -> Optional[GeocodeResult]:
    """Query every geocoder concurrently and return the first Texas match.

    A failing provider never cancels the race; the slower providers are
    cancelled once a winner is found.
    """
    if not geocoders:
        return None

    tasks = [asyncio.create_task(geocoder.lookup(zip_code)) for geocoder in geocoders]
    try:
        for next_done in asyncio.as_completed(tasks):
            result = await next_done
            if result is not None:
                logger.info("Geocoder race won", zip_code=zip_code, provider=result.source, city=result.city)
                return result
        return None
    finally:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
