"""Process-scoped service container and FastAPI dependencies"""

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from power_pricing.config import Settings
from power_pricing.database import get_db
from power_pricing.services.exclusions import ExclusionList
from power_pricing.services.geocoders import default_geocoders
from power_pricing.services.idempotency import IdempotencyManager
from power_pricing.services.plan_data import PlanDataService
from power_pricing.services.plan_repository import PlanRepository
from power_pricing.services.pricing_client import PricingClient
from power_pricing.services.rate_limit import RateLimitManager, generate_client_id
from power_pricing.services.territory import StaticZipMap
from power_pricing.services.universal_zip import UniversalZipResolver
from power_pricing.services.zip_resolver import ZipResolver


@dataclass
class ServiceContainer:
    """Services constructed once per process and shared by requests"""
    settings: Settings
    zip_map: StaticZipMap
    zip_resolver: ZipResolver
    pricing_client: PricingClient
    rate_limiter: RateLimitManager
    idempotency: IdempotencyManager

    @classmethod
    def from_settings(cls, settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> "ServiceContainer":
        zip_map = StaticZipMap.from_file(settings.zip_mappings_path)
        fallback = UniversalZipResolver(
            default_geocoders(
                timeout=settings.geocoder_timeout_seconds,
                cache_ttl_seconds=settings.geocoder_cache_ttl_seconds,
                http_client=http_client,
            ),
            cache_ttl_seconds=settings.zip_result_cache_ttl_seconds,
        )
        idempotency = IdempotencyManager(ttl_seconds=settings.idempotency_ttl_seconds)

        return cls(
            settings=settings,
            zip_map=zip_map,
            zip_resolver=ZipResolver(zip_map, ExclusionList(), fallback),
            pricing_client=PricingClient(
                base_url=settings.pricing_api_url,
                api_key=settings.pricing_api_key,
                timeout=settings.pricing_timeout_seconds,
                cache_ttl_seconds=settings.pricing_cache_ttl_seconds,
                max_cache_entries=settings.pricing_cache_max_entries,
                http_client=http_client,
            ),
            rate_limiter=RateLimitManager(
                cleanup_interval=settings.rate_limit_cleanup_seconds,
                idempotency=idempotency,
            ),
            idempotency=idempotency,
        )

    async def startup(self):
        self.rate_limiter.start()

    async def shutdown(self):
        await self.rate_limiter.stop()
        await self.pricing_client.aclose()


def get_services(request: Request) -> ServiceContainer:
    """Dependency to get the process-scoped services"""
    return request.app.state.services


def get_plan_data_service(
    db: Session = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
) -> PlanDataService:
    return PlanDataService(
        pricing_client=services.pricing_client,
        repository=PlanRepository(db),
        zip_map=services.zip_map,
        generated_dir=services.settings.generated_plans_dir,
        cache_ttl_hours=services.settings.plan_cache_ttl_hours,
    )


def get_client_id(request: Request) -> str:
    return generate_client_id(request.headers, request.client.host if request.client else None)
