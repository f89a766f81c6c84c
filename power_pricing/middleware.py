"""Custom middleware for the Texas Power Pricing API"""

import time
import uuid
from typing import Callable
import structlog

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from power_pricing.config import settings

logger = structlog.get_logger()

PUBLIC_PATHS = ("/healthz", "/readyz", "/docs", "/redoc", "/openapi.json")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for structured request/response logging"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        run_id = str(uuid.uuid4())
        request.state.run_id = run_id

        start_time = time.time()
        logger.info(
            "Request started",
            run_id=run_id,
            method=request.method,
            path=request.url.path,
            query_params=dict(request.query_params),
            client_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request failed",
                run_id=run_id,
                exception=str(exc),
                duration_ms=int((time.time() - start_time) * 1000),
                exc_info=True
            )
            raise

        logger.info(
            "Request completed",
            run_id=run_id,
            status_code=response.status_code,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        response.headers["X-Run-ID"] = run_id
        return response


class SecurityMiddleware(BaseHTTPMiddleware):
    """Middleware for API key authentication and security headers"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key")
        if not api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "API key required", "code": "MISSING_API_KEY"}
            )

        if api_key not in settings.get_api_keys():
            return JSONResponse(
                status_code=401,
                content={"error": "Invalid API key", "code": "INVALID_API_KEY"}
            )

        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        if request.url.path.startswith("/api/"):
            response.headers["Access-Control-Allow-Origin"] = "*"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-API-Key, X-Idempotency-Key, Idempotency-Key"
            response.headers["Access-Control-Expose-Headers"] = (
                "X-RateLimit-Remaining, X-RateLimit-Reset, Retry-After, X-Idempotency-Key, X-Idempotency-Replay"
            )

        return response
