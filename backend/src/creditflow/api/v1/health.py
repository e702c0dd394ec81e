"""Liveness and readiness probes for the API process."""
from datetime import datetime

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis import asyncio as aioredis
from sqlalchemy import text

from creditflow.config import settings
from creditflow.database import engine

logger = structlog.get_logger(__name__)

router = APIRouter()


async def probe_database() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("database_health_check_failed", error=str(exc))
        return False
    return True


async def probe_queue() -> bool:
    """Ping the Redis instance backing the arq job queue."""
    client = aioredis.from_url(settings.arq_redis_url)
    try:
        await client.ping()
    except Exception as exc:
        logger.error("redis_health_check_failed", error=str(exc))
        return False
    finally:
        await client.aclose()
    return True


@router.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    """Liveness probe; external dependencies are not checked."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": "0.1.0",
    }


@router.get("/health/ready", tags=["Health"])
async def readiness_check() -> JSONResponse:
    """
    Readiness probe.

    The database and the job queue's Redis must both answer. Whether the
    payment provider is configured is reported but does not affect
    readiness; the webhook endpoint answers 503 on its own when it is not.
    """
    database_ok = await probe_database()
    queue_ok = await probe_queue()
    ready = database_ok and queue_ok

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "ready": ready,
            "checks": {
                "database": "connected" if database_ok else "disconnected",
                "redis": "connected" if queue_ok else "disconnected",
                "payments": "configured" if settings.payments_configured else "disabled",
            },
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
