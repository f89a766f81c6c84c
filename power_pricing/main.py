"""Main FastAPI application for the Texas Power Pricing API"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response as StarletteResponse

from power_pricing.config import settings
from power_pricing.database import engine, Base
from power_pricing.dependencies import ServiceContainer
from power_pricing.log_config import configure_logging
from power_pricing.middleware import LoggingMiddleware, SecurityMiddleware
from power_pricing.observability import REQUEST_COUNT, REQUEST_DURATION
from power_pricing.routers import admin, health, plans, zip_codes

# Import models so their tables are registered on Base.metadata
import power_pricing.models  # noqa: F401

configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger()

# Per-IP ceiling across all endpoints
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[lambda: f"{settings.rate_limit_per_minute}/minute"]
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Texas Power Pricing API", version=settings.app_version)

    Base.metadata.create_all(bind=engine)

    # Tests install their own container before startup
    if getattr(app.state, "services", None) is None:
        app.state.services = ServiceContainer.from_settings(settings)
    services: ServiceContainer = app.state.services
    await services.startup()

    logger.info("Texas Power Pricing API started successfully", zip_codes=len(services.zip_map))

    yield

    logger.info("Shutting down Texas Power Pricing API")
    await services.shutdown()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Texas electricity ZIP resolution and plan pricing API",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(LoggingMiddleware)
app.add_middleware(SecurityMiddleware)

app.include_router(zip_codes.router, prefix="/api", tags=["zip"])
app.include_router(plans.router, prefix="/api", tags=["plans"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(health.router, prefix="", tags=["health"])


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Middleware to collect Prometheus metrics"""
    start_time = time.time()

    response = await call_next(request)

    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    REQUEST_DURATION.labels(
        method=request.method,
        endpoint=endpoint
    ).observe(time.time() - start_time)
    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=endpoint,
        status_code=response.status_code
    ).inc()

    return response


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return StarletteResponse(
        generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Health checks and metric scrapes do not count against the per-IP ceiling
for _endpoint in (health.health_check, health.readiness_check, metrics):
    limiter.exempt(_endpoint)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Global HTTP exception handler"""
    run_id = getattr(request.state, 'run_id', str(uuid.uuid4()))

    logger.error(
        "HTTP exception",
        run_id=run_id,
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "code": f"HTTP_{exc.status_code}",
            "trace_id": run_id
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    run_id = getattr(request.state, 'run_id', str(uuid.uuid4()))

    logger.error(
        "Unhandled exception",
        run_id=run_id,
        exception=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "code": "INTERNAL_ERROR",
            "trace_id": run_id
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "power_pricing.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
