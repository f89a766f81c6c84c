"""Geographic fallback for ZIP codes missing from the static map"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import structlog

from power_pricing.cache import TTLCache
from power_pricing.observability import CACHE_HITS, CACHE_MISSES
from power_pricing.services.distance import haversine_distance
from power_pricing.services.geocoders import GeocodeResult, Geocoder, first_successful_lookup
from power_pricing.services.territory import (
    AEP_CENTRAL_DUNS,
    CENTERPOINT_DUNS,
    LPL_DUNS,
    ONCOR_DUNS,
)

logger = structlog.get_logger()

MAX_HUB_DISTANCE_MILES = 200


@dataclass(frozen=True)
class HubCity:
    name: str
    slug: str
    latitude: float
    longitude: float
    tdsp_duns: Optional[str] = None  # None when the city is not in the competitive market


HUB_CITIES: List[HubCity] = [
    HubCity("Houston", "houston-tx", 29.7604, -95.3698, CENTERPOINT_DUNS),
    HubCity("Dallas", "dallas-tx", 32.7767, -96.7970, ONCOR_DUNS),
    HubCity("Austin", "austin-tx", 30.2672, -97.7431),
    HubCity("San Antonio", "san-antonio-tx", 29.4241, -98.4936),
    HubCity("Fort Worth", "fort-worth-tx", 32.7555, -97.3308, ONCOR_DUNS),
    HubCity("El Paso", "el-paso-tx", 31.7619, -106.4850),
    HubCity("Arlington", "arlington-tx", 32.7357, -97.1081, ONCOR_DUNS),
    HubCity("Corpus Christi", "corpus-christi-tx", 27.8006, -97.3964, AEP_CENTRAL_DUNS),
    HubCity("Plano", "plano-tx", 33.0198, -96.6989, ONCOR_DUNS),
    HubCity("Lubbock", "lubbock-tx", 33.5779, -101.8552, LPL_DUNS),
    HubCity("Irving", "irving-tx", 32.8140, -96.9489, ONCOR_DUNS),
    HubCity("Garland", "garland-tx", 32.9126, -96.6389),
    HubCity("Frisco", "frisco-tx", 33.1507, -96.8236, ONCOR_DUNS),
    HubCity("McKinney", "mckinney-tx", 33.1972, -96.6397, ONCOR_DUNS),
    HubCity("Tyler", "tyler-tx", 32.3513, -95.3011, ONCOR_DUNS),
    HubCity("Amarillo", "amarillo-tx", 35.2220, -101.8313),
    HubCity("Waco", "waco-tx", 31.5494, -97.1467, ONCOR_DUNS),
]

HUBS_BY_SLUG = {hub.slug: hub for hub in HUB_CITIES}

REGIONAL_KEYWORDS = (
    ("houston-tx", ("houston", "katy", "cypress", "spring", "humble", "sugar", "stafford", "missouri city")),
    ("dallas-tx", ("dallas", "plano", "richardson", "carrollton", "farmers branch", "addison")),
    ("austin-tx", ("austin", "round rock", "pflugerville", "cedar park", "leander")),
)

DEFAULT_HUB_SLUG = "houston-tx"


@dataclass
class HubMatch:
    """Hub city a geocoded city was mapped to"""
    hub: HubCity
    distance_miles: float
    confidence: int
    method: str


@dataclass
class UniversalZipResult:
    zip_code: str
    geocode: GeocodeResult
    match: HubMatch


def map_to_hub_city(
    city: str,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    hubs: Sequence[HubCity] = HUB_CITIES,
) -> HubMatch:
    """Map an arbitrary Texas city to the closest supported hub city.

    Tried in order: exact name, substring either way, nearest hub under
    200 miles, suburb keywords, and finally the default hub.
    """
    normalized = city.strip().lower()

    for hub in hubs:
        if hub.name.lower() == normalized:
            return HubMatch(hub, 0.0, 95, "exact")

    for hub in hubs:
        hub_name = hub.name.lower()
        if normalized and (hub_name in normalized or normalized in hub_name):
            return HubMatch(hub, 0.0, 85, "substring")

    if latitude is not None and longitude is not None:
        nearest = min(hubs, key=lambda h: haversine_distance(latitude, longitude, h.latitude, h.longitude))
        distance = haversine_distance(latitude, longitude, nearest.latitude, nearest.longitude)
        if distance < MAX_HUB_DISTANCE_MILES:
            confidence = round(max(50, 90 - distance / 10))
            return HubMatch(nearest, round(distance, 1), confidence, "distance")

    by_slug = {hub.slug: hub for hub in hubs}
    for slug, keywords in REGIONAL_KEYWORDS:
        if slug in by_slug and any(keyword in normalized for keyword in keywords):
            return HubMatch(by_slug[slug], 50.0, 70, "keyword")

    return HubMatch(by_slug.get(DEFAULT_HUB_SLUG, hubs[0]), 100.0, 50, "default")


class UniversalZipResolver:
    """Resolve unknown ZIP codes through the geocoder race and hub mapping"""

    def __init__(
        self,
        geocoders: Sequence[Geocoder],
        cache_ttl_seconds: float = 21600,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.geocoders = list(geocoders)
        cache_kwargs = {"clock": clock} if clock is not None else {}
        self.cache = TTLCache("universal_zip", cache_ttl_seconds, **cache_kwargs)

    async def resolve(self, zip_code: str) -> Optional[UniversalZipResult]:
        """Return the hub-city resolution, or None when no geocoder matched"""
        cached = self.cache.get(zip_code)
        if cached is not None:
            CACHE_HITS.labels(tier="universal_zip").inc()
            return cached
        CACHE_MISSES.labels(tier="universal_zip").inc()

        geocode = await first_successful_lookup(self.geocoders, zip_code)
        if geocode is None:
            logger.warning("No geocoder resolved ZIP", zip_code=zip_code, providers=len(self.geocoders))
            return None

        match = map_to_hub_city(geocode.city, geocode.latitude, geocode.longitude)
        logger.info(
            "ZIP mapped to hub city",
            zip_code=zip_code,
            city=geocode.city,
            hub=match.hub.slug,
            method=match.method,
            confidence=match.confidence,
        )

        result = UniversalZipResult(zip_code=zip_code, geocode=geocode, match=match)
        self.cache.put(zip_code, result)
        return result
