"""Operational endpoints for request guards and caches"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from power_pricing.auth import is_admin_key, verify_api_key
from power_pricing.database import get_db
from power_pricing.dependencies import ServiceContainer, get_services
from power_pricing.services.plan_repository import PlanRepository

router = APIRouter()


async def require_admin(api_key: str = Depends(verify_api_key)) -> str:
    if not is_admin_key(api_key):
        raise HTTPException(status_code=403, detail="Admin API key required")
    return api_key


@router.get("/rate-limits")
async def rate_limit_stats(
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(require_admin)
):
    return {
        "rateLimits": services.rate_limiter.get_stats(),
        "idempotency": services.idempotency.get_stats(),
    }


@router.delete("/rate-limits/{client_id}")
async def clear_client_rate_limits(
    client_id: str,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(require_admin)
):
    return {"cleared": services.rate_limiter.clear_client(client_id)}


@router.get("/cache")
async def cache_stats(
    db: Session = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(require_admin)
):
    return {
        "memory": services.pricing_client.get_cache_stats(),
        "database": PlanRepository(db).get_cache_stats(),
    }


@router.delete("/cache")
async def clear_cache(
    db: Session = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(require_admin)
):
    """Clear the in-memory pricing cache and expired SQL cache rows"""
    services.pricing_client.clear_cache()
    expired = PlanRepository(db).clean_expired_cache()
    return {"memoryCleared": True, "expiredRowsDeleted": expired}
