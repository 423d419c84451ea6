"""FastAPI dependencies. Lifespan-owned objects (trigger lock Redis client) and the admin secret check."""

import secrets
from typing import Any

from fastapi import Header, HTTPException, Request

from cinecrawl.core.config import settings


def get_redis_trigger_lock(request: Request) -> Any:
    """Async Redis client for trigger locks, created in the lifespan. None when unset."""
    return getattr(request.app.state, "redis_trigger_lock_client", None)


def require_admin_secret(
    x_crawler_admin_secret: str | None = Header(None, alias="X-Crawler-Admin-Secret"),
    authorization: str | None = Header(None),
) -> None:
    """
    CRAWLER_ADMIN_SECRET check. Header only (no query string: keeps it out of access logs).
    Timing-safe compare. 503 when unset, 401 on mismatch.
    """
    if settings.crawler_admin_secret is None or not settings.crawler_admin_secret.get_secret_value():
        raise HTTPException(
            status_code=503,
            detail="Crawler admin API not configured (CRAWLER_ADMIN_SECRET missing)",
        )
    provided = (
        x_crawler_admin_secret
        or (authorization and authorization.startswith("Bearer ") and authorization[7:].strip())
    ) or ""
    expected = settings.crawler_admin_secret.get_secret_value()
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid or missing crawler admin secret")
