"""FastAPI app factory for the CrowdShield API."""

import logging
import time
from typing import Dict, List

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from crowdshield.api.actions import router as actions_router
from crowdshield.api.alerts import router as alerts_router
from crowdshield.api.protection import router as protection_router
from crowdshield.api.reports import router as reports_router
from crowdshield.api.risk import router as risk_router
from crowdshield.errors import (
    NotFoundError,
    PartialDispatchFailure,
    RateLimitedError,
    TransientStoreError,
    ValidationError,
)
from crowdshield.settings import get_settings

LOGGER = logging.getLogger(__name__)

# ----------------------------------------
# Per-client rate limiting
# ----------------------------------------

# Timestamps of recent requests keyed by client IP.
REQUEST_LOG: Dict[str, List[float]] = {}


async def rate_limit_middleware(request: Request, call_next):
    """Reject clients that exceed ``api.max_requests_per_minute`` in a rolling 60s window."""

    limit = get_settings().api.max_requests_per_minute
    client_ip = request.headers.get("x-forwarded-for") or (request.client.host if request.client else "unknown")
    now = time.time()
    window_start = now - 60

    timestamps = REQUEST_LOG.setdefault(client_ip, [])
    timestamps[:] = [t for t in timestamps if t > window_start]
    if len(timestamps) >= limit:
        retry_after = max(int(timestamps[0] - window_start) + 1, 1)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": "Rate limit exceeded. Try again later."},
            headers={"Retry-After": str(retry_after)},
        )

    timestamps.append(now)
    return await call_next(request)


# ----------------------------------------
# Domain error mapping
# ----------------------------------------


async def _validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc), "field": exc.field})


async def _not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def _rate_limited_handler(request: Request, exc: RateLimitedError):
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": str(exc), "retry_after_seconds": exc.retry_after_seconds},
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )


async def _unavailable_handler(request: Request, exc: Exception):
    LOGGER.warning("Request %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance.
    """

    app = FastAPI(title="CrowdShield API", version="0.1")
    app.include_router(risk_router)
    app.include_router(reports_router)
    app.include_router(protection_router)
    app.include_router(alerts_router)
    app.include_router(actions_router)

    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(RateLimitedError, _rate_limited_handler)
    app.add_exception_handler(TransientStoreError, _unavailable_handler)
    app.add_exception_handler(PartialDispatchFailure, _unavailable_handler)
    app.middleware("http")(rate_limit_middleware)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


# For uvicorn, expose `app` at module level
app = create_app()

__all__ = ["app", "create_app", "REQUEST_LOG"]
