"""ZIP validation and deregulated area endpoints"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from power_pricing.auth import verify_api_key
from power_pricing.dependencies import ServiceContainer, get_client_id, get_services
from power_pricing.observability import GUARD_REJECTIONS
from power_pricing.schemas.common import RateLimitedResponse
from power_pricing.schemas.zip import DeregulatedArea, TdspTerritory, ZipValidateRequest, ZipValidationResponse
from power_pricing.services.exclusions import get_municipal_utility_info
from power_pricing.services.rate_limit import SEARCH_LIMIT, rate_limit_headers
from power_pricing.services.territory import format_tdsp_name

router = APIRouter()

ZIP_VALIDATE_ENDPOINT = "zip-validate"


@router.post("/zip/validate", response_model=ZipValidationResponse)
async def validate_zip(
    payload: ZipValidateRequest,
    request: Request,
    response: Response,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """
    Validate a ZIP code and resolve its city and TDSP.

    Failures (not in Texas, municipal utility, cooperative, ...) are
    returned as a 200 with ``errorCode`` set; only the rate limiter
    produces a non-200 response.
    """
    client_id = get_client_id(request)
    decision = services.rate_limiter.check_rate_limit(client_id, ZIP_VALIDATE_ENDPOINT, SEARCH_LIMIT)
    headers = rate_limit_headers(decision)

    if not decision.allowed:
        GUARD_REJECTIONS.labels(guard="rate_limit").inc()
        return JSONResponse(
            status_code=429,
            content=RateLimitedResponse(retryAfter=decision.retry_after).model_dump(),
            headers=headers,
        )

    result = await services.zip_resolver.resolve_zip(payload.zipCode)
    services.rate_limiter.update_rate_limit_result(client_id, ZIP_VALIDATE_ENDPOINT, result.success, SEARCH_LIMIT)

    response.headers.update(headers)
    return result.to_dict()


@router.get("/zip/{zip_code}", response_model=ZipValidationResponse)
async def resolve_zip(
    zip_code: str,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Resolve a ZIP code without request guards"""
    result = await services.zip_resolver.resolve_zip(zip_code)
    return result.to_dict()


@router.get("/areas/deregulated", response_model=List[DeregulatedArea])
async def deregulated_areas(
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Cities in the competitive market, largest first"""
    return services.zip_resolver.get_deregulated_areas()


@router.get("/tdsp/territories", response_model=List[TdspTerritory])
async def tdsp_territories(
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """TDSPs of the static map with the ZIP codes each serves"""
    return [
        TdspTerritory(
            duns=territory.duns,
            name=territory.name,
            displayName=format_tdsp_name(territory.name),
            abbreviation=territory.abbreviation,
            isDeregulated=territory.is_deregulated,
            marketZone=territory.market_zone.value if territory.market_zone else None,
            zipCodes=sorted(territory.zip_codes),
            zipCodeCount=len(territory.zip_codes),
        )
        for territory in services.zip_resolver.get_tdsp_territories()
    ]


@router.get("/cities/{city_slug}/zip-codes")
async def city_zip_codes(
    city_slug: str,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    zip_codes = services.zip_resolver.get_zip_codes_for_city(city_slug)
    if not zip_codes:
        raise HTTPException(status_code=404, detail=f"No ZIP codes known for {city_slug}")
    return {"citySlug": city_slug, "zipCodes": zip_codes, "count": len(zip_codes)}


@router.get("/cities/{city_slug}/municipal-utility")
async def city_municipal_utility(
    city_slug: str,
    api_key: str = Depends(verify_api_key)
):
    info = get_municipal_utility_info(city_slug)
    if info is None:
        raise HTTPException(status_code=404, detail=f"{city_slug} is not served by a municipal utility")
    return info
