"""Health check endpoint. Redis ping reuses the app.state async client."""

import asyncio
import logging

from fastapi import APIRouter, Request
from sqlalchemy import text

from cinecrawl.core.database import get_async_session_maker

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)

HEALTH_REDIS_PING_TIMEOUT = 2.0


async def _check_db() -> str:
    """SELECT 1. 'ok' or 'error'. Uninitialized DB counts as 'error'."""
    maker = get_async_session_maker()
    if not maker:
        return "error"
    try:
        async with maker() as session:
            await session.execute(text("SELECT 1"))
        return "ok"
    except Exception as e:
        logger.warning("Health DB check failed: %s", e)
        return "error"


async def _check_redis(request: Request) -> str:
    """PING with a short timeout. No client configured counts as 'ok' (locks disabled)."""
    client = getattr(request.app.state, "redis_trigger_lock_client", None)
    if client is None:
        return "ok"
    try:
        await asyncio.wait_for(client.ping(), timeout=HEALTH_REDIS_PING_TIMEOUT)
        return "ok"
    except Exception as e:
        logger.warning("Health Redis check failed: %s", e)
        return "error"


@router.get("/health")
async def get_health(request: Request) -> dict[str, str]:
    """status: ok | degraded."""
    db_status = await _check_db()
    redis_status = await _check_redis(request)
    status = "ok" if db_status == "ok" and redis_status == "ok" else "degraded"
    return {
        "status": status,
        "db": db_status,
        "redis": redis_status,
    }
