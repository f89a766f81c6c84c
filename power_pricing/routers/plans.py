"""Plan search and availability endpoints"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from power_pricing.auth import verify_api_key
from power_pricing.database import get_db
from power_pricing.dependencies import ServiceContainer, get_client_id, get_plan_data_service, get_services
from power_pricing.observability import GUARD_REJECTIONS
from power_pricing.schemas.common import RateLimitedResponse
from power_pricing.schemas.plans import PlanSearchParams, PlanSearchResponse, StoredPlanResponse
from power_pricing.schemas.zip import CityPlansAvailability
from power_pricing.services.idempotency import (
    IdempotencyStatus,
    extract_idempotency_key,
    idempotency_headers,
)
from power_pricing.services.plan_data import PlanDataService
from power_pricing.services.plan_repository import PlanRepository
from power_pricing.services.rate_limit import SEARCH_LIMIT, rate_limit_headers

logger = structlog.get_logger()

router = APIRouter()

PLAN_SEARCH_ENDPOINT = "plans-search"
IN_PROGRESS_RETRY_AFTER = "5"


@router.post("/plans/search", response_model=PlanSearchResponse)
async def search_plans(
    params: PlanSearchParams,
    request: Request,
    city_slug: Optional[str] = Query(None, description="City used for file-backed fallback data"),
    services: ServiceContainer = Depends(get_services),
    plan_data: PlanDataService = Depends(get_plan_data_service),
    api_key: str = Depends(verify_api_key)
):
    """
    Search plans for a TDSP.

    Guarded by the per-client rate limiter and, when the request carries an
    ``X-Idempotency-Key`` (or ``Idempotency-Key``) header, by the
    idempotency guard: a completed key replays its stored response and a
    key still in flight gets a 409.
    """
    client_id = get_client_id(request)
    decision = services.rate_limiter.check_rate_limit(client_id, PLAN_SEARCH_ENDPOINT, SEARCH_LIMIT)
    headers = rate_limit_headers(decision)

    if not decision.allowed:
        GUARD_REJECTIONS.labels(guard="rate_limit").inc()
        return JSONResponse(
            status_code=429,
            content=RateLimitedResponse(retryAfter=decision.retry_after).model_dump(),
            headers=headers,
        )

    idempotency_key = extract_idempotency_key(request.headers)
    check = services.idempotency.check_idempotency(idempotency_key, client_id, params.model_dump())

    if not check.should_process:
        if check.status == IdempotencyStatus.COMPLETED:
            services.rate_limiter.update_rate_limit_result(client_id, PLAN_SEARCH_ENDPOINT, True, SEARCH_LIMIT)
            return JSONResponse(
                content=check.existing_response,
                headers={**headers, **idempotency_headers(idempotency_key, replay=True)},
            )

        GUARD_REJECTIONS.labels(guard="idempotency").inc()
        services.rate_limiter.update_rate_limit_result(client_id, PLAN_SEARCH_ENDPOINT, False, SEARCH_LIMIT)
        return JSONResponse(
            status_code=409,
            content={
                "error": "A request with this idempotency key is already being processed",
                "code": "REQUEST_IN_PROGRESS",
            },
            headers={**headers, **idempotency_headers(idempotency_key), "Retry-After": IN_PROGRESS_RETRY_AFTER},
        )

    try:
        lookup = await plan_data.get_plans(params, city_slug=city_slug)
    except Exception:
        services.idempotency.mark_failed(idempotency_key, client_id)
        services.rate_limiter.update_rate_limit_result(client_id, PLAN_SEARCH_ENDPOINT, False, SEARCH_LIMIT)
        raise

    body = PlanSearchResponse(
        plans=lookup.plans,
        count=len(lookup.plans),
        source=lookup.source,
        tdsp_duns=params.tdsp_duns,
    ).model_dump(mode="json")

    services.idempotency.store_idempotent_response(idempotency_key, client_id, body)
    services.rate_limiter.update_rate_limit_result(client_id, PLAN_SEARCH_ENDPOINT, True, SEARCH_LIMIT)

    if idempotency_key:
        headers.update(idempotency_headers(idempotency_key))
    return JSONResponse(content=body, headers=headers)


@router.get("/plans/{plan_id}", response_model=StoredPlanResponse)
async def get_plan(
    plan_id: str,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Get a stored plan by its external id"""
    plan = PlanRepository(db).get_plan_by_id(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")

    return StoredPlanResponse(
        id=plan.id,
        external_id=plan.external_id,
        name=plan.name,
        provider_name=plan.provider.name if plan.provider else None,
        tdsp_duns=plan.tdsp_duns,
        term_months=plan.term_months,
        rate_type=plan.rate_type,
        percent_green=plan.percent_green,
        rate_1000kwh=plan.rate_1000kwh,
        total_1000kwh=plan.total_1000kwh,
        is_pre_pay=plan.is_pre_pay,
        is_active=plan.is_active,
    )


@router.get("/cities/{city_slug}/plans/availability", response_model=CityPlansAvailability)
async def city_plans_availability(
    city_slug: str,
    plan_data: PlanDataService = Depends(get_plan_data_service),
    api_key: str = Depends(verify_api_key)
):
    """Whether plans can be shown for a city"""
    return plan_data.get_city_plans_availability(city_slug)
