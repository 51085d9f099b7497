"""
Operations endpoints: Prometheus scrape target and health check.

    GET /metrics      Prometheus text exposition format
    GET /api/health   data store + Redis reachability, outbound client configuration
"""

import time

import redis.asyncio as aioredis
from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from permitflow.config import settings
from permitflow.database import engine

router = APIRouter(tags=["ops"])

HEALTH_CACHE_TTL = 10.0  # seconds

_health: dict = {"result": None, "checked_at": 0.0}


@router.get("/metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


async def _database_status() -> dict:
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return {"status": "disconnected", "error": str(exc)}
    return {"status": "connected"}


async def _redis_status() -> dict:
    if settings.rate_limit_per_minute <= 0:
        return {"status": "disabled"}
    try:
        client = aioredis.from_url(settings.redis_url, decode_responses=True)
        await client.ping()
        await client.aclose()
    except (RedisError, OSError) as exc:
        return {"status": "disconnected", "error": str(exc)}
    return {"status": "connected"}


def _configured(value: str) -> dict:
    return {"status": "configured" if value else "not_configured"}


@router.get("/api/health")
async def health_check() -> dict:
    """Healthy when the data store and Redis answer; degraded when only Redis is down."""
    now = time.time()
    if _health["result"] is not None and now - _health["checked_at"] < HEALTH_CACHE_TTL:
        return _health["result"]

    components = {
        "database": await _database_status(),
        "redis": await _redis_status(),
        "payment_gateway": _configured(settings.payment_gateway_secret_key),
        "notifications": _configured(settings.notification_webhook_url),
    }

    if components["database"]["status"] != "connected":
        overall = "unhealthy"
    elif components["redis"]["status"] == "disconnected":
        overall = "degraded"
    else:
        overall = "healthy"

    result = {"status": overall, "environment": settings.environment, "components": components}
    _health.update(result=result, checked_at=now)
    return result
