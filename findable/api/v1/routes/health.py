"""Health check endpoints for load balancer and monitoring."""

import sqlalchemy
from fastapi import APIRouter
from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from findable.core.config import get_settings
from findable.core.database import AsyncSessionLocal
from findable.core.redis import get_redis_client

router = APIRouter()


class ScannerInfo(BaseModel):
    user_agent: str
    page_timeout_s: float
    robots_timeout_s: float
    sitemap_timeout_s: float
    max_page_bytes: int


class HealthResponse(BaseModel):
    status: str
    version: str
    checks: dict[str, str]
    scanner: ScannerInfo


async def _check_record_store() -> str:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(sqlalchemy.text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return f"unhealthy: {e}"
    return "healthy"


async def _check_rate_limiter() -> str:
    try:
        redis = await get_redis_client()
        await redis.ping()
    except (RedisError, OSError) as e:
        return f"unhealthy: {e}"
    return "healthy"


@router.get("", response_model=HealthResponse, include_in_schema=False)
async def health_check() -> HealthResponse:
    """
    Scans cannot be recorded without the record store, so losing it makes the
    service unhealthy. The rate limiter fails open, so losing Redis only
    degrades it.
    """
    settings = get_settings()

    checks = {
        "record_store": await _check_record_store(),
        "rate_limiter": await _check_rate_limiter(),
    }

    if checks["record_store"] != "healthy":
        overall = "unhealthy"
    elif checks["rate_limiter"] != "healthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=settings.APP_VERSION,
        checks=checks,
        scanner=ScannerInfo(
            user_agent=settings.SCANNER_USER_AGENT,
            page_timeout_s=settings.SCANNER_PAGE_TIMEOUT,
            robots_timeout_s=settings.SCANNER_ROBOTS_TIMEOUT,
            sitemap_timeout_s=settings.SCANNER_SITEMAP_TIMEOUT,
            max_page_bytes=settings.SCANNER_MAX_PAGE_BYTES,
        ),
    )


@router.get("/ready", include_in_schema=False)
async def readiness() -> dict:
    """Kubernetes readiness probe."""
    return {"ready": True}


@router.get("/live", include_in_schema=False)
async def liveness() -> dict:
    """Kubernetes liveness probe."""
    return {"alive": True}
