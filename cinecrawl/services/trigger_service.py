"""
Trigger protocol. Validates the request, applies the enabled/duplicate policies,
snapshots the settings into the job and enqueues it. Never waits for the crawl.
The API goes through trigger_crawler (async DB and lock client); the beat dispatcher
through dispatch_crawl_sync (worker-side sync session and client). Both share the
policy decisions and the job shape below.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from cinecrawl.core.config import settings
from cinecrawl.core.database import transaction
from cinecrawl.core.errors import (
    ConflictError,
    CrawlerDisabledError,
    EngineDispatchError,
    NotFoundError,
)
from cinecrawl.core.redis import (
    RedisLockUnavailableError,
    acquire_trigger_lock,
    acquire_trigger_lock_sync,
    release_trigger_lock,
    release_trigger_lock_sync,
)
from cinecrawl.models.crawl_run import RUN_STATUS_FAILED
from cinecrawl.repositories import crawl_run_repository, crawler_settings_repository
from cinecrawl.schemas.crawler_settings import CrawlerSettingsResponse, TriggerCrawlerInput
from cinecrawl.services.crawl_engine import MODE_FULL, MODE_SLUG
from cinecrawl.services.crawler_settings_service import parse_input

logger = logging.getLogger(__name__)

SOURCE_MANUAL = "manual"
SOURCE_SCHEDULE = "schedule"


@dataclass(frozen=True)
class TriggerResult:
    """dispatched False means deduplicated or skipped; reason says which."""

    dispatched: bool
    task_id: str | None = None
    reason: str = "dispatched"


def snapshot_settings(row: Any) -> dict[str, Any]:
    """Settings row -> JSON-safe dict carried in the job message (copy-on-start)."""
    return CrawlerSettingsResponse.model_validate(row).model_dump(mode="json")


def build_crawl_job(
    snapshot: dict[str, Any], *, slug: str | None = None, trigger_source: str = SOURCE_MANUAL
) -> dict[str, Any]:
    """Job message. Later edits of the settings row do not reach a queued job."""
    return {
        "settings": snapshot,
        "mode": MODE_SLUG if slug else MODE_FULL,
        "slug": slug,
        "trigger_source": trigger_source,
    }


def _disabled_outcome(snapshot: dict[str, Any], source: str) -> TriggerResult | None:
    """None when the crawler may run. Scheduled runs of a disabled crawler are skipped."""
    if snapshot["enabled"]:
        return None
    if source != SOURCE_MANUAL:
        logger.info("Skip trigger: crawler=%s disabled", snapshot["name"])
        return TriggerResult(False, reason="disabled")
    if not settings.crawl_allow_manual_trigger_when_disabled:
        raise CrawlerDisabledError(f"Crawler {snapshot['name']!r} is disabled")
    return None


def _busy_outcome(name: str, source: str) -> TriggerResult:
    """Lock already held. The reject policy only applies to manual triggers."""
    if source == SOURCE_MANUAL and settings.crawl_duplicate_trigger_policy == "reject":
        raise ConflictError(f"Crawler {name!r} is already running")
    logger.info("Skip trigger: crawler=%s already in flight", name)
    return TriggerResult(False, reason="already_running")


def _log_enqueued(job: dict[str, Any], task_id: str) -> None:
    logger.info(
        "Crawl enqueued: crawler=%s mode=%s slug=%s task_id=%s source=%s",
        job["settings"]["name"],
        job["mode"],
        job["slug"],
        task_id,
        job["trigger_source"],
    )


async def trigger_crawler(
    data: dict[str, Any] | TriggerCrawlerInput,
    *,
    lock_client: Any = None,
    source: str = SOURCE_MANUAL,
) -> TriggerResult:
    """
    triggerCrawler. Returns once the job is enqueued.
    NotFoundError: unknown name. CrawlerDisabledError: disabled and manual override off.
    ConflictError: in flight under the reject policy. EngineDispatchError: lock store or broker down.
    """
    from cinecrawl.services.tasks import run_crawler_task

    payload: TriggerCrawlerInput = parse_input(TriggerCrawlerInput, data, "Invalid trigger input")

    async with transaction() as session:
        row = await crawler_settings_repository.get_by_name(session, payload.name)
        if row is None:
            raise NotFoundError(f"Crawler {payload.name!r} not found")
        snapshot = snapshot_settings(row)

    skipped = _disabled_outcome(snapshot, source)
    if skipped is not None:
        return skipped

    try:
        acquired, lock_token = await acquire_trigger_lock(lock_client, payload.name)
    except RedisLockUnavailableError as e:
        logger.exception("Trigger lock unavailable (Redis error) for crawler=%s", payload.name)
        raise EngineDispatchError("Crawl lock store unavailable") from e
    if not acquired:
        return _busy_outcome(payload.name, source)

    task_id = str(uuid.uuid4())
    job = build_crawl_job(snapshot, slug=payload.slug, trigger_source=source)
    try:
        async with transaction() as session:
            await crawl_run_repository.create_queued_run(
                session,
                payload.name,
                task_id,
                mode=job["mode"],
                slug=payload.slug,
                trigger_source=source,
            )
    except Exception:
        await release_trigger_lock(lock_client, payload.name, lock_token)
        raise

    try:
        await asyncio.to_thread(
            run_crawler_task.apply_async,
            args=[job, lock_token],
            task_id=task_id,
        )
    except Exception as e:
        logger.exception("trigger apply_async failed: crawler=%s", payload.name)
        await release_trigger_lock(lock_client, payload.name, lock_token)
        async with transaction() as session:
            await crawl_run_repository.mark_enqueue_failed(session, task_id, f"Enqueue failed: {e}")
        raise EngineDispatchError("Crawl task enqueue failed") from e

    _log_enqueued(job, task_id)
    return TriggerResult(True, task_id=task_id)


def dispatch_crawl_sync(
    session: Session,
    lock_client: Any,
    row: Any,
    *,
    slug: str | None = None,
    source: str = SOURCE_SCHEDULE,
) -> TriggerResult:
    """
    Same protocol as trigger_crawler for callers that already hold the settings row
    and a sync session (beat dispatcher). Commits the queued run before enqueueing.
    EngineDispatchError when the lock store or the broker is down.
    """
    from cinecrawl.services.tasks import run_crawler_task

    snapshot = snapshot_settings(row)
    skipped = _disabled_outcome(snapshot, source)
    if skipped is not None:
        return skipped

    try:
        acquired, lock_token = acquire_trigger_lock_sync(lock_client, row.name)
    except RedisLockUnavailableError as e:
        raise EngineDispatchError("Crawl lock store unavailable") from e
    if not acquired:
        return _busy_outcome(row.name, source)

    task_id = str(uuid.uuid4())
    job = build_crawl_job(snapshot, slug=slug, trigger_source=source)
    try:
        crawl_run_repository.create_queued_run_sync(
            session, row.name, task_id, mode=job["mode"], slug=slug, trigger_source=source
        )
        session.commit()
    except Exception:
        session.rollback()
        release_trigger_lock_sync(row.name, lock_token, lock_client)
        raise

    try:
        run_crawler_task.apply_async(args=[job, lock_token], task_id=task_id)
    except Exception as e:
        logger.exception("%s apply_async failed: crawler=%s", source, row.name)
        release_trigger_lock_sync(row.name, lock_token, lock_client)
        crawl_run_repository.finish_run_sync(
            session, task_id, status=RUN_STATUS_FAILED, error_message=f"Enqueue failed: {e}"
        )
        session.commit()
        raise EngineDispatchError("Crawl task enqueue failed") from e

    _log_enqueued(job, task_id)
    return TriggerResult(True, task_id=task_id)
