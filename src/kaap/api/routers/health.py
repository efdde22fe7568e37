"""Health check endpoints."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from kaap.cache import get_redis

from ..config import get_api_settings, get_cache_settings

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str = "0.1.0"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check API health status.

    Returns:
        Health status response
    """
    return HealthResponse(status="healthy", version=get_api_settings().version)


@router.get("/ready", response_model=HealthResponse)
async def readiness_check() -> HealthResponse | JSONResponse:
    """Check API readiness.

    With the Redis backend the service is ready only while Redis answers
    a ping.

    Returns:
        Readiness status response (503 when not ready)
    """
    version = get_api_settings().version
    if get_cache_settings().backend == "redis" and not await get_redis().ping():
        return JSONResponse(
            status_code=503,
            content=HealthResponse(status="not_ready", version=version).model_dump(),
        )
    return HealthResponse(status="ready", version=version)
