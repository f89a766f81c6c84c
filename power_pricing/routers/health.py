"""Health check endpoints"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from power_pricing.database import get_db
from power_pricing.dependencies import ServiceContainer, get_services

router = APIRouter()


@router.get("/healthz")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "power-pricing-api"}


@router.get("/readyz")
async def readiness_check(
    db: Session = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    """Readiness check with dependencies"""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Service not ready: {str(e)}"
        )

    return {
        "status": "ready",
        "service": "power-pricing-api",
        "dependencies": {
            "database": "healthy",
            "zip_map": {"zip_codes": len(services.zip_map)},
            "pricing_cache": services.pricing_client.get_cache_stats(),
        }
    }
