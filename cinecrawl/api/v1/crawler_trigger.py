"""
Crawler trigger and run history. Trigger answers as soon as the job is enqueued:
true = dispatched, false = deduplicated (already in flight).
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cinecrawl.core.database import get_db
from cinecrawl.core.deps import get_redis_trigger_lock, require_admin_secret
from cinecrawl.repositories.crawl_run_repository import list_recent_runs
from cinecrawl.schemas.crawl_run import CrawlRunList, CrawlRunResponse
from cinecrawl.services.trigger_service import trigger_crawler

router = APIRouter(tags=["crawler-trigger"], dependencies=[Depends(require_admin_secret)])


@router.post("/crawler-trigger")
async def post_crawler_trigger(
    payload: dict[str, Any] = Body(...),
    redis_client: Any = Depends(get_redis_trigger_lock),
) -> bool:
    """Body {name, slug?}. slug -> crawl exactly that movie."""
    result = await trigger_crawler(payload, lock_client=redis_client)
    return result.dispatched


@router.get("/crawler-runs", response_model=CrawlRunList)
async def get_crawler_runs(
    name: str | None = Query(None, description="Crawler name filter"),
    limit: int = Query(50, ge=1, le=200, description="Latest N runs"),
    session: AsyncSession = Depends(get_db),
) -> CrawlRunList:
    runs = await list_recent_runs(session, crawler_name=name, limit=limit)
    return CrawlRunList(runs=[CrawlRunResponse.model_validate(r) for r in runs], limit=limit)
