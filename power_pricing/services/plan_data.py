"""Plan lookup across the SQL cache, the pricing API and file-backed data"""

import json
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import ValidationError

from power_pricing.schemas.plans import Plan, PlanSearchParams
from power_pricing.services.plan_repository import PlanRepository
from power_pricing.services.pricing_client import PLANS_PATH, PricingAPIError, PricingClient
from power_pricing.services.territory import StaticZipMap

logger = structlog.get_logger()

CITY_NOT_FOUND = "CITY_NOT_FOUND"
NO_PLANS_AVAILABLE = "NO_PLANS_AVAILABLE"
TDSP_NOT_SUPPORTED = "TDSP_NOT_SUPPORTED"


@dataclass
class PlanLookup:
    plans: List[Plan]
    source: str


class PlanDataService:
    """Serve plans from the freshest source available.

    Order: fresh SQL cache, the pricing API (results are written back to
    the SQL cache and plan tables), last-known active plans in SQL, and
    finally the generated per-city JSON files.
    """

    def __init__(
        self,
        pricing_client: PricingClient,
        repository: PlanRepository,
        zip_map: StaticZipMap,
        generated_dir: Union[str, Path],
        cache_ttl_hours: float = 1,
    ):
        self.pricing_client = pricing_client
        self.repository = repository
        self.zip_map = zip_map
        self.generated_dir = Path(generated_dir)
        self.cache_ttl_hours = cache_ttl_hours

    async def get_plans(self, params: PlanSearchParams, city_slug: Optional[str] = None) -> PlanLookup:
        cached = self.repository.get_plans_from_cache(params)
        if cached is not None:
            logger.info("Plans served from SQL cache", tdsp_duns=params.tdsp_duns, plan_count=len(cached))
            return PlanLookup(cached, "sql_cache")

        start_time = time.time()
        try:
            plans = await self.pricing_client.fetch_plans(params)
        except PricingAPIError as e:
            self.repository.log_api_call(
                PLANS_PATH,
                params.model_dump(exclude_none=True),
                e.status_code,
                int((time.time() - start_time) * 1000),
                error_message=str(e),
            )
            logger.warning("Pricing API unavailable, using stored plans", tdsp_duns=params.tdsp_duns, error=str(e))
        else:
            self.repository.log_api_call(
                PLANS_PATH,
                params.model_dump(exclude_none=True),
                200,
                int((time.time() - start_time) * 1000),
            )
            self.repository.set_plans_cache(params, plans, ttl_hours=self.cache_ttl_hours)
            self.repository.store_plans(plans, params.tdsp_duns)
            return PlanLookup(plans, "api")

        active = self.repository.get_active_plans(
            params.tdsp_duns,
            {"term": params.term, "percent_green": params.percent_green, "is_pre_pay": params.is_pre_pay},
        )
        if active:
            return PlanLookup(active, "sql_active")

        slug = city_slug or self._city_for_tdsp(params.tdsp_duns)
        file_plans = self.load_city_plans(slug) if slug else []
        if file_plans:
            logger.info("Plans served from file data", city_slug=slug, plan_count=len(file_plans))
            return PlanLookup(file_plans, "file")

        return PlanLookup([], "none")

    def _city_for_tdsp(self, tdsp_duns: str) -> Optional[str]:
        candidates = [m for m in self.zip_map.all() if m.tdsp_duns == tdsp_duns and m.is_deregulated]
        if not candidates:
            return None
        return max(candidates, key=lambda m: m.priority).city_slug

    def _city_file(self, city_slug: str) -> Path:
        return self.generated_dir / f"{city_slug}.json"

    def _read_city_file(self, city_slug: str) -> Optional[Dict[str, Any]]:
        path = self._city_file(city_slug)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Unreadable city plan file", path=str(path), error=str(e))
            return None

    def load_city_plans(self, city_slug: str) -> List[Plan]:
        """Plans from ``<generated_dir>/<city_slug>.json``"""
        data = self._read_city_file(city_slug)
        if data is None:
            return []

        raw_plans = (data.get("filters") or {}).get("no-filters", {}).get("plans")
        if raw_plans is None:
            raw_plans = data.get("plans") or []

        plans = []
        for raw in raw_plans:
            try:
                plans.append(Plan.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping invalid plan in city file", city_slug=city_slug, error=str(e))
        return plans

    def get_city_plans_availability(self, city_slug: str) -> Dict[str, Any]:
        """Whether plans can be shown for a city, and why not when they cannot"""
        mapping = self.zip_map.mapping_for_city(city_slug)
        file_data = self._read_city_file(city_slug)

        if mapping is None and file_data is None:
            return {"plansAvailable": False, "reason": CITY_NOT_FOUND}

        if mapping is not None and (not mapping.is_deregulated or not mapping.tdsp_duns):
            return {"plansAvailable": False, "citySlug": city_slug, "reason": TDSP_NOT_SUPPORTED}

        if mapping is not None:
            summary = self.repository.get_active_plan_summary(mapping.tdsp_duns)
            if summary["count"] > 0:
                last_updated = summary["last_updated"]
                return {
                    "plansAvailable": True,
                    "planCount": summary["count"],
                    "citySlug": city_slug,
                    "lastUpdated": last_updated.isoformat() if isinstance(last_updated, datetime) else None,
                }

        file_plans = self.load_city_plans(city_slug)
        if file_plans:
            return {
                "plansAvailable": True,
                "planCount": len(file_plans),
                "citySlug": city_slug,
                "lastUpdated": (file_data or {}).get("lastUpdated"),
            }

        return {"plansAvailable": False, "citySlug": city_slug, "reason": NO_PLANS_AVAILABLE}
