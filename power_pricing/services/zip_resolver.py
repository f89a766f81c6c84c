"""ZIP code validation and resolution to city and TDSP territory"""

import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from power_pricing.observability import ZIP_RESOLUTIONS
from power_pricing.services.exclusions import COOPERATIVE, ExclusionList, get_municipal_utility_info
from power_pricing.services.territory import (
    REGION_NAMES,
    TDSP_REGISTRY,
    MarketZone,
    StaticZipMap,
    TdspServiceTerritory,
    ZipCodeMapping,
    format_tdsp_name,
)
from power_pricing.services.universal_zip import UniversalZipResolver, UniversalZipResult

logger = structlog.get_logger()

ZIP_PATTERN = re.compile(r"^\d{5}$")
TEXAS_ZIP_MIN = 75000
TEXAS_ZIP_MAX = 79999

# Estimated plan counts for cities with no plan data loaded yet
_PLAN_ESTIMATE_TIERS = (
    (("houston", "dallas", "austin", "san antonio"), 120),
    (("fort worth", "el paso", "arlington", "corpus christi"), 80),
    (("tyler", "lubbock", "waco", "college station"), 42),
)
_DEFAULT_PLAN_ESTIMATE = 25


class ZipErrorCode(str, Enum):
    INVALID_FORMAT = "INVALID_FORMAT"
    NOT_TEXAS = "NOT_TEXAS"
    NOT_FOUND = "NOT_FOUND"
    NOT_DEREGULATED = "NOT_DEREGULATED"
    MUNICIPAL_UTILITY = "MUNICIPAL_UTILITY"
    COOPERATIVE = "COOPERATIVE"
    API_ERROR = "API_ERROR"


@dataclass
class ZipValidationResult:
    """Outcome of resolving one ZIP code"""
    zip_code: str
    is_valid: bool
    is_texas: bool
    is_deregulated: bool
    city_data: Optional[Dict[str, Any]] = None
    tdsp_data: Optional[Dict[str, Any]] = None
    error_code: Optional[ZipErrorCode] = None
    error_message: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)
    confidence: Optional[int] = None
    source: str = "static"
    validation_time_ms: int = 0
    processed_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def success(self) -> bool:
        return self.error_code is None

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape used by the HTTP layer"""
        payload: Dict[str, Any] = {
            "zipCode": self.zip_code,
            "isValid": self.is_valid,
            "isTexas": self.is_texas,
            "isDeregulated": self.is_deregulated,
            "validationTime": self.validation_time_ms,
            "processedAt": self.processed_at.isoformat(),
            "source": self.source,
        }
        if self.city_data is not None:
            payload["cityData"] = self.city_data
        if self.tdsp_data is not None:
            payload["tdspData"] = self.tdsp_data
        if self.error_code is not None:
            payload["errorCode"] = self.error_code.value
            payload["errorMessage"] = self.error_message
            payload["suggestions"] = self.suggestions
        if self.confidence is not None:
            payload["confidence"] = self.confidence
        return payload


def error_result(
    zip_code: str,
    code: ZipErrorCode,
    message: str,
    suggestions: Optional[List[str]] = None,
    source: str = "static",
) -> ZipValidationResult:
    return ZipValidationResult(
        zip_code=zip_code,
        is_valid=code != ZipErrorCode.INVALID_FORMAT,
        is_texas=code not in (ZipErrorCode.NOT_TEXAS, ZipErrorCode.INVALID_FORMAT),
        is_deregulated=False,
        error_code=code,
        error_message=message,
        suggestions=suggestions or [],
        source=source,
    )


def normalize_zip(zip_code: str) -> str:
    return (zip_code or "").strip()


def is_valid_format(zip_code: str) -> bool:
    return bool(ZIP_PATTERN.match(zip_code))


def is_texas_zip(zip_code: str) -> bool:
    """Numeric range check against the Texas ZIP prefix range"""
    return is_valid_format(zip_code) and TEXAS_ZIP_MIN <= int(zip_code) <= TEXAS_ZIP_MAX


def estimate_plan_count(city_name: str) -> int:
    city = city_name.lower()
    for cities, estimate in _PLAN_ESTIMATE_TIERS:
        if any(name in city for name in cities):
            return estimate
    return _DEFAULT_PLAN_ESTIMATE


def _city_data(city_name: str, city_slug: str, county: str) -> Dict[str, Any]:
    return {
        "name": city_name,
        "slug": city_slug,
        "county": county,
        "redirectUrl": f"/electricity-plans/{city_slug}/",
    }


def _tdsp_data(territory: str, duns: str) -> Dict[str, Any]:
    return {
        "name": format_tdsp_name(territory),
        "duns": duns,
        "territory": territory,
    }


class ZipResolver:
    """Resolve a ZIP code to a city and TDSP, or a structured failure.

    The pipeline runs the format check, the Texas range check, the
    municipal/cooperative exclusion table, and the static map. ZIP codes
    missing from the map fall back to the geocoder-based resolver.
    """

    def __init__(
        self,
        zip_map: StaticZipMap,
        exclusions: Optional[ExclusionList] = None,
        fallback: Optional[UniversalZipResolver] = None,
    ):
        self.zip_map = zip_map
        self.exclusions = exclusions or ExclusionList()
        self.fallback = fallback

    async def resolve_zip(self, zip_code: str) -> ZipValidationResult:
        """
        Resolve ZIP code to market territory

        Args:
            zip_code: 5-digit ZIP code, surrounding whitespace allowed

        Returns:
            ZipValidationResult with city and TDSP data on success
        """
        start_time = time.time()
        zip_code = normalize_zip(zip_code)

        try:
            result = await self._resolve(zip_code)
        except Exception as e:
            logger.error("ZIP resolution failed", zip_code=zip_code, error=str(e), exc_info=True)
            result = error_result(
                zip_code,
                ZipErrorCode.API_ERROR,
                "Unable to validate ZIP code at this time",
                ["Please try again in a few moments"],
            )

        result.validation_time_ms = int((time.time() - start_time) * 1000)
        ZIP_RESOLUTIONS.labels(outcome=result.error_code.value if result.error_code else "SUCCESS").inc()
        logger.info(
            "ZIP resolved",
            zip_code=zip_code,
            error_code=result.error_code.value if result.error_code else None,
            source=result.source,
            duration_ms=result.validation_time_ms,
        )
        return result

    async def _resolve(self, zip_code: str) -> ZipValidationResult:
        if not is_valid_format(zip_code):
            return error_result(
                zip_code,
                ZipErrorCode.INVALID_FORMAT,
                "Please enter a valid 5-digit ZIP code",
                ["ZIP codes must be exactly 5 digits"],
            )

        if not is_texas_zip(zip_code):
            return error_result(
                zip_code,
                ZipErrorCode.NOT_TEXAS,
                "This ZIP code is not in Texas",
                ["Texas ZIP codes range from 75000 to 79999"],
            )

        excluded = self.exclusions.lookup(zip_code)
        if excluded is not None:
            code = ZipErrorCode.COOPERATIVE if excluded.kind == COOPERATIVE else ZipErrorCode.MUNICIPAL_UTILITY
            label = "an electric cooperative" if excluded.kind == COOPERATIVE else "a municipal utility"
            return error_result(
                zip_code,
                code,
                f"This area is served by {label} ({excluded.name})",
                excluded.suggestions(),
            )

        mapping = self.zip_map.get(zip_code)
        if mapping is not None:
            return self._from_mapping(mapping)

        if self.fallback is None:
            return self._not_found(zip_code)

        resolved = await self.fallback.resolve(zip_code)
        if resolved is None:
            return self._not_found(zip_code, source="geocoder")
        return self._from_fallback(resolved)

    def _from_mapping(self, mapping: ZipCodeMapping) -> ZipValidationResult:
        if not mapping.is_deregulated:
            return error_result(
                mapping.zip_code,
                ZipErrorCode.NOT_DEREGULATED,
                f"{mapping.city_name} is served by {mapping.tdsp_territory}, which is not in the deregulated market",
                [f"Contact {mapping.tdsp_territory} for electricity service"],
            )

        return ZipValidationResult(
            zip_code=mapping.zip_code,
            is_valid=True,
            is_texas=True,
            is_deregulated=True,
            city_data=_city_data(mapping.city_name, mapping.city_slug, mapping.county_name),
            tdsp_data=_tdsp_data(mapping.tdsp_territory, mapping.tdsp_duns),
            confidence=100,
            source="static",
        )

    def _from_fallback(self, resolved: UniversalZipResult) -> ZipValidationResult:
        hub = resolved.match.hub
        geocode = resolved.geocode
        source = f"geocoder:{geocode.source}"

        # The geocoded town can have its own municipal utility even when its hub is deregulated
        municipal = get_municipal_utility_info(geocode.city)
        if municipal is not None:
            result = error_result(
                resolved.zip_code,
                ZipErrorCode.MUNICIPAL_UTILITY,
                f"{geocode.city} is served by {municipal['name']}, a municipal utility. "
                "Residents cannot choose their electricity provider.",
                [f"Contact {municipal['name']} for electricity service"],
                source=source,
            )
            result.city_data = {**_city_data(geocode.city, hub.slug, geocode.county),
                                "redirectUrl": f"/electricity-plans/{hub.slug}/municipal-utility"}
            result.confidence = resolved.match.confidence
            return result

        if hub.tdsp_duns is None:
            municipal = get_municipal_utility_info(hub.slug)
            if municipal is not None:
                result = error_result(
                    resolved.zip_code,
                    ZipErrorCode.MUNICIPAL_UTILITY,
                    municipal["description"],
                    [f"Contact {municipal['name']} for electricity service"],
                    source=source,
                )
                result.city_data = {**_city_data(hub.name, hub.slug, geocode.county),
                                    "redirectUrl": municipal["redirectUrl"]}
            else:
                result = error_result(
                    resolved.zip_code,
                    ZipErrorCode.NOT_DEREGULATED,
                    f"The {hub.name} area is not in the deregulated market",
                    ["Contact your local utility for electricity service"],
                    source=source,
                )
            result.confidence = resolved.match.confidence
            return result

        tdsp = TDSP_REGISTRY[hub.tdsp_duns]
        return ZipValidationResult(
            zip_code=resolved.zip_code,
            is_valid=True,
            is_texas=True,
            is_deregulated=True,
            city_data=_city_data(hub.name, hub.slug, resolved.geocode.county),
            tdsp_data=_tdsp_data(tdsp.name, tdsp.duns),
            confidence=resolved.match.confidence,
            source=source,
        )

    def _not_found(self, zip_code: str, source: str = "static") -> ZipValidationResult:
        return error_result(
            zip_code,
            ZipErrorCode.NOT_FOUND,
            "We could not find electricity service information for this ZIP code",
            ["Check if this area is served by a municipal utility or electric cooperative"],
            source=source,
        )

    def get_zip_codes_for_city(self, city_slug: str) -> List[str]:
        return self.zip_map.zip_codes_for_city(city_slug)

    def get_tdsp_territories(self) -> List[TdspServiceTerritory]:
        """TDSP territories of the static map, most ZIP codes first"""
        territories = self.zip_map.territories().values()
        return sorted(territories, key=lambda t: (-len(t.zip_codes), t.name))

    def get_deregulated_areas(self, plan_counts: Optional[Dict[str, int]] = None) -> List[Dict[str, Any]]:
        """Deregulated cities with ZIP counts, plan counts and region.

        ``plan_counts`` maps city slugs to known plan totals; cities without
        one get a size-based estimate.
        """
        plan_counts = plan_counts or {}
        areas: Dict[str, Dict[str, Any]] = {}

        for mapping in self.zip_map.all():
            if not mapping.is_deregulated:
                continue
            area = areas.get(mapping.city_slug)
            if area is None:
                area = {
                    "cityName": mapping.city_name,
                    "citySlug": mapping.city_slug,
                    "zipCodeCount": 0,
                    "planCount": plan_counts.get(mapping.city_slug, estimate_plan_count(mapping.city_name)),
                    "tdspName": format_tdsp_name(mapping.tdsp_territory),
                    "region": REGION_NAMES.get(MarketZone(mapping.market_zone), "Texas"),
                }
                areas[mapping.city_slug] = area
            area["zipCodeCount"] += 1

        return sorted(areas.values(), key=lambda a: (-a["zipCodeCount"], a["cityName"]))
