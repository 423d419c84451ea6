"""
Celery tasks run by the worker.
Sync DB (psycopg) and the sync crawl engine. Retries live inside the engine, not in Celery.
"""

import logging
from datetime import UTC, datetime
from typing import Any

import sentry_sdk
from celery import shared_task

from cinecrawl.core.config import settings
from cinecrawl.core.cron import is_dispatch_due, parse_cron
from cinecrawl.core.crawler_config import get_source
from cinecrawl.core.database_sync import get_sync_session
from cinecrawl.core.errors import EngineDispatchError
from cinecrawl.core.redis import (
    RedisLockUnavailableError,
    RedisPageProgress,
    TriggerLockHeartbeat,
    create_sync_client,
    in_auto_stop_cooldown_sync,
    release_trigger_lock_sync,
    set_auto_stop_mark_sync,
)
from cinecrawl.models.crawl_run import RUN_STATUS_ABORTED, RUN_STATUS_FAILED
from cinecrawl.repositories.crawl_run_repository import (
    finish_run_sync,
    get_last_scheduled_at_sync,
    mark_running_sync,
)
from cinecrawl.repositories.crawler_settings_repository import list_enabled_sync
from cinecrawl.repositories.movie_repository import as_utc
from cinecrawl.services.crawl_engine import MODE_FULL, CrawlEngine, SqlMovieCatalog
from cinecrawl.services.crawl_policy import CrawlPolicy
from cinecrawl.services.trigger_service import SOURCE_SCHEDULE, dispatch_crawl_sync

logger = logging.getLogger(__name__)


def _set_task_context(task_id: str | None, crawler_name: str | None = None):
    """Sentry/log context. Tag by task_id and crawler name."""
    if task_id:
        sentry_sdk.set_tag("celery.task_id", task_id)
    if crawler_name:
        sentry_sdk.set_tag("crawler_name", crawler_name)


def _close(client: Any) -> None:
    if client is not None:
        client.close()


# Acked on receipt. A redelivered message would start a second run of the same crawler.
@shared_task(name="cinecrawl.services.tasks.run_crawler_task", acks_late=False)
def run_crawler_task(job: dict[str, Any], lock_token: str | None = None):
    """
    Run one crawl from its snapshot. The trigger lock is kept alive for the whole
    run and released when it ends or fails.
    """
    task_id = str(getattr(run_crawler_task.request, "id", None) or "")
    snapshot = job["settings"]
    name = snapshot["name"]
    mode = job.get("mode") or MODE_FULL
    slug = job.get("slug")
    _set_task_context(task_id or None, name)
    logger.info("Task Started: task_id=%s crawler=%s mode=%s slug=%s", task_id, name, mode, slug)

    client = create_sync_client()
    heartbeat = TriggerLockHeartbeat(client, name, lock_token)
    source = None
    try:
        heartbeat.start()
        with get_sync_session() as session:
            mark_running_sync(session, task_id, name, mode=mode, slug=slug)
            session.commit()
            try:
                source = get_source(name, snapshot["host"], snapshot.get("img_host"))
                progress = None
                if mode == MODE_FULL and client is not None and settings.crawl_resume_pages_same_day:
                    progress = RedisPageProgress(client, name)
                engine = CrawlEngine(
                    source,
                    SqlMovieCatalog(session, name),
                    CrawlPolicy.from_snapshot(snapshot),
                    progress=progress,
                )
                outcome = engine.run(mode=mode, slug=slug)
            except Exception as e:
                session.rollback()
                finish_run_sync(
                    session,
                    task_id,
                    status=RUN_STATUS_FAILED,
                    error_message=str(e),
                )
                session.commit()
                raise
            finish_run_sync(
                session,
                task_id,
                status=outcome.status,
                items_processed=outcome.stats.processed,
                items_skipped=outcome.stats.skipped,
                items_failed=outcome.stats.failed,
            )
            session.commit()

        if outcome.status == RUN_STATUS_ABORTED:
            set_auto_stop_mark_sync(client, name)
        logger.info("Crawling %s finished: %s", name, outcome.as_dict())
        return outcome.as_dict()
    finally:
        heartbeat.stop()
        if source is not None:
            source.close()
        release_trigger_lock_sync(name, lock_token, client)
        _close(client)


def dispatch_due_crawlers(now: datetime, client: Any) -> list[str]:
    """
    Enqueue every enabled crawler with a cron occurrence inside the dispatch window,
    counting from its last scheduled run (or created_at). Occurrences missed while the
    crawler sat out its auto-stop cooldown or was still running are not caught up.
    Returns the dispatched names.
    """
    dispatched: list[str] = []
    with get_sync_session() as session:
        for row in list_enabled_sync(session):
            try:
                schedule = parse_cron(row.cron_schedule)
            except ValueError as e:
                logger.warning("Skip schedule for %s: %s", row.name, e)
                continue
            last = as_utc(get_last_scheduled_at_sync(session, row.name)) or as_utc(row.created_at)
            if not is_dispatch_due(schedule, last, now):
                continue
            try:
                if in_auto_stop_cooldown_sync(
                    client, row.name, settings.crawl_auto_stop_cooldown_hours
                ):
                    logger.info("Skip schedule for %s: auto-stop cooldown", row.name)
                    continue
            except RedisLockUnavailableError:
                logger.exception("Redis unavailable; scheduled dispatch stopped for this tick")
                break
            try:
                result = dispatch_crawl_sync(session, client, row, source=SOURCE_SCHEDULE)
            except EngineDispatchError as e:
                if isinstance(e.__cause__, RedisLockUnavailableError):
                    logger.exception("Trigger lock unavailable; scheduled dispatch stopped")
                    break
                logger.warning("Scheduled dispatch of %s failed: %s", row.name, e)
                continue
            if result.dispatched:
                dispatched.append(row.name)
    return dispatched


@shared_task(name="cinecrawl.services.tasks.dispatch_due_crawlers_task")
def dispatch_due_crawlers_task():
    """Beat entry (every minute)."""
    client = create_sync_client()
    try:
        dispatched = dispatch_due_crawlers(datetime.now(UTC), client)
    finally:
        _close(client)
    if dispatched:
        logger.info("Scheduled dispatch: %s", dispatched)
    return {"dispatched": dispatched}
