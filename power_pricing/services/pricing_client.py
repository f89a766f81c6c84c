"""HTTP client for the upstream electricity pricing API"""

import asyncio
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
import structlog
from pydantic import ValidationError

from power_pricing.cache import TTLCache
from power_pricing.observability import CACHE_HITS, CACHE_MISSES, PRICING_API_CALLS
from power_pricing.schemas.plans import (
    FreeTime,
    Plan,
    PlanContract,
    PlanDeposit,
    PlanFeatures,
    PlanPricing,
    PlanProvider,
    PlanSearchParams,
)

logger = structlog.get_logger()

USER_AGENT = "ChooseMyPower.org/1.0"
PLANS_PATH = "/api/plans/current"
HEALTH_PATH = "/health"

TIME_WINDOW_PATTERN = re.compile(
    r"(\d{1,2}:\d{2}\s*(?:am|pm))\s*to\s*(\d{1,2}:\d{2}\s*(?:am|pm))",
    re.IGNORECASE,
)


class PricingAPIError(Exception):
    """Upstream pricing API failure with no cached fallback"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(PricingAPIError):
    """Upstream answered with something other than a JSON list of plans"""


def determine_rate_type(name: str, headline: Optional[str]) -> str:
    """Infer the rate type from free text; most plans are fixed"""
    text = f"{name or ''} {headline or ''}".lower()
    if "variable" in text:
        return "variable"
    if "indexed" in text:
        return "indexed"
    return "fixed"


def parse_time_of_use(headline: Optional[str]) -> FreeTime:
    """Extract the free-hours window from a headline like 'FREE from 9:00 pm to 6:00 am'"""
    headline = headline or ""
    weekend = "weekend" in headline.lower()
    match = TIME_WINDOW_PATTERN.search(headline)
    if match:
        return FreeTime(
            hours=f"{match.group(1)}-{match.group(2)}",
            days=["Saturday", "Sunday"] if weekend else ["All"],
        )
    return FreeTime(hours="Off-peak hours", days=["All"])


def _rate_cents(tier: Optional[Dict[str, Any]]) -> float:
    if not tier:
        return 0.0
    if tier.get("avg_cents"):
        return float(tier["avg_cents"])
    if tier.get("avg"):
        return round(float(tier["avg"]) * 100, 4)
    return 0.0


def _total(tier: Optional[Dict[str, Any]]) -> float:
    return float((tier or {}).get("total") or 0)


def _document_links(links: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    found: Dict[str, str] = {}
    for doc in sorted(links or [], key=lambda d: d.get("language") != "en"):
        doc_type = (doc.get("type") or "").lower()
        if doc_type in ("efl", "tos", "yrac") and doc_type not in found and doc.get("link"):
            found[doc_type] = doc["link"]
    return found


def transform_plan(raw: Dict[str, Any]) -> Plan:
    """Normalize one upstream plan object into the internal Plan shape"""
    product = raw.get("product") or {}
    brand = product.get("brand") or {}
    tdsp = raw.get("tdsp") or {}
    support = (brand.get("contact_info") or {}).get("support") or {}
    links = _document_links(raw.get("document_links"))
    rate_1000 = _rate_cents(raw.get("display_pricing_1000"))
    is_time_of_use = bool(product.get("is_time_of_use"))

    return Plan(
        id=str(raw["_id"]),
        name=product.get("name") or "",
        family=product.get("family"),
        headline=product.get("headline"),
        description=product.get("description"),
        provider=PlanProvider(
            name=brand.get("name") or "",
            puct_number=brand.get("puct_number"),
            legal_name=brand.get("legal_name"),
            support_phone=support.get("phone_number"),
            support_email=support.get("email"),
        ),
        pricing=PlanPricing(
            rate_500kwh=_rate_cents(raw.get("display_pricing_500")),
            rate_1000kwh=rate_1000,
            rate_2000kwh=_rate_cents(raw.get("display_pricing_2000")),
            rate_per_kwh=rate_1000,
            total_500kwh=_total(raw.get("display_pricing_500")),
            total_1000kwh=_total(raw.get("display_pricing_1000")),
            total_2000kwh=_total(raw.get("display_pricing_2000")),
        ),
        contract=PlanContract(
            length=int(product.get("term") or 0),
            type=determine_rate_type(product.get("name") or "", product.get("headline")),
            early_termination_fee=float(product.get("early_termination_fee") or 0),
        ),
        features=PlanFeatures(
            green_energy=int(product.get("percent_green") or 0),
            free_time=parse_time_of_use(product.get("headline")) if is_time_of_use else None,
            deposit=PlanDeposit(required=bool(product.get("is_pre_pay"))),
            requires_auto_pay=bool(product.get("requires_auto_pay")),
        ),
        tdsp_duns=tdsp.get("duns_number"),
        service_areas=[tdsp["name"]] if tdsp.get("name") else [],
        efl_link=links.get("efl"),
        tos_link=links.get("tos"),
        yrac_link=links.get("yrac"),
        is_time_of_use=is_time_of_use,
    )


class PricingClient:
    """Fetches plans from the pricing API with retry, TTL cache and stale fallback.

    Responses are cached per serialized parameter set. After the last retry
    fails, an expired entry for the same parameters is served if one exists.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        cache_ttl_seconds: float = 3600,
        max_cache_entries: int = 100,
        retry_delays: Sequence[float] = (1, 2, 4),
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.retry_delays = list(retry_delays)
        self.cache = TTLCache("pricing", cache_ttl_seconds, max_items=max_cache_entries, clock=clock)
        self._sleep = sleep
        self._client = http_client
        self._owns_client = http_client is None

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_plans(self, params: PlanSearchParams) -> List[Plan]:
        """
        Fetch plans for a TDSP and filter set

        Args:
            params: Search parameters; the serialized set is the cache key

        Returns:
            List of normalized plans

        Raises:
            PricingAPIError: upstream failed on every attempt and nothing is cached,
                or the payload was not a list of plans
        """
        cache_key = params.cache_key()
        cached = self.cache.get(cache_key)
        if cached is not None:
            CACHE_HITS.labels(tier="pricing").inc()
            logger.debug("Pricing cache hit", tdsp_duns=params.tdsp_duns)
            return cached
        CACHE_MISSES.labels(tier="pricing").inc()

        try:
            data = await self._request_with_retry(params)
        except MalformedResponseError:
            raise
        except PricingAPIError as e:
            stale = self.cache.get_stale(cache_key)
            if stale is None:
                raise
            logger.warning(
                "Serving stale pricing data after upstream failure",
                tdsp_duns=params.tdsp_duns,
                error=str(e),
                plan_count=len(stale),
            )
            return stale

        try:
            plans = [transform_plan(raw) for raw in data]
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise MalformedResponseError(f"Unexpected plan shape in pricing API response: {e}") from e
        self.cache.put(cache_key, plans)
        logger.info("Fetched plans from pricing API", tdsp_duns=params.tdsp_duns, plan_count=len(plans))
        return plans

    async def _request_with_retry(self, params: PlanSearchParams) -> List[Dict[str, Any]]:
        last_error: Optional[Exception] = None
        attempts = len(self.retry_delays) + 1

        for attempt in range(attempts):
            try:
                return await self._request(params)
            except httpx.HTTPError as e:
                last_error = e
                PRICING_API_CALLS.labels(outcome="error").inc()
                logger.warning(
                    "Pricing API attempt failed",
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    tdsp_duns=params.tdsp_duns,
                    error=str(e),
                )
                if attempt < len(self.retry_delays):
                    await self._sleep(self.retry_delays[attempt])

        status_code = None
        if isinstance(last_error, httpx.HTTPStatusError):
            status_code = last_error.response.status_code
        logger.error("Pricing API failed after retries", tdsp_duns=params.tdsp_duns, error=str(last_error))
        raise PricingAPIError(f"Pricing API request failed: {last_error}", status_code=status_code)

    async def _request(self, params: PlanSearchParams) -> List[Dict[str, Any]]:
        response = await self._get_client().get(
            f"{self.base_url}{PLANS_PATH}",
            params=params.to_query_params(),
            headers=self._headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            PRICING_API_CALLS.labels(outcome="malformed").inc()
            raise MalformedResponseError(f"Malformed pricing API response: {e}") from e

        if not isinstance(data, list):
            PRICING_API_CALLS.labels(outcome="malformed").inc()
            raise MalformedResponseError("Pricing API response is not a list of plans")

        PRICING_API_CALLS.labels(outcome="success").inc()
        return data

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()

    def clear_cache(self):
        self.cache.clear()
        logger.info("Pricing cache cleared")

    async def health_check(self) -> bool:
        """True when the pricing API answers its health endpoint"""
        try:
            response = await self._get_client().get(
                f"{self.base_url}{HEALTH_PATH}",
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("Pricing API health check failed", error=str(e))
            return False
        return response.is_success
