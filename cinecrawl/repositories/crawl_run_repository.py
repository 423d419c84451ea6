"""CrawlRun Repository. Records and reads crawl run history."""

from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from cinecrawl.models.crawl_run import RUN_STATUS_QUEUED, RUN_STATUS_RUNNING, CrawlRun


def _queued_run(
    crawler_name: str,
    celery_task_id: str,
    *,
    mode: str,
    slug: str | None,
    trigger_source: str,
) -> CrawlRun:
    return CrawlRun(
        crawler_name=crawler_name,
        celery_task_id=celery_task_id,
        mode=mode,
        slug=slug,
        trigger_source=trigger_source,
        status=RUN_STATUS_QUEUED,
        queued_at=datetime.now(UTC),
        items_processed=0,
        items_skipped=0,
        items_failed=0,
    )


async def create_queued_run(
    session: AsyncSession,
    crawler_name: str,
    celery_task_id: str,
    *,
    mode: str = "full",
    slug: str | None = None,
    trigger_source: str = "manual",
) -> CrawlRun:
    """Row for a run about to be enqueued. Written before apply_async so the worker always finds it."""
    row = _queued_run(
        crawler_name, celery_task_id, mode=mode, slug=slug, trigger_source=trigger_source
    )
    session.add(row)
    await session.flush()
    return row


async def mark_enqueue_failed(session: AsyncSession, celery_task_id: str, error: str) -> None:
    """Enqueue to the broker failed; the queued row ends as failed."""
    result = await session.execute(
        select(CrawlRun).where(CrawlRun.celery_task_id == celery_task_id).limit(1)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return
    row.status = "failed"
    row.finished_at = datetime.now(UTC)
    row.error_message = error[:2000]
    await session.flush()


async def list_recent_runs(
    session: AsyncSession,
    *,
    crawler_name: str | None = None,
    limit: int = 50,
) -> list[CrawlRun]:
    """Latest runs first. GET /v1/crawler-runs."""
    stmt = select(CrawlRun)
    if crawler_name:
        stmt = stmt.where(CrawlRun.crawler_name == crawler_name)
    stmt = stmt.order_by(CrawlRun.queued_at.desc(), CrawlRun.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


def create_queued_run_sync(
    session: Session,
    crawler_name: str,
    celery_task_id: str,
    *,
    mode: str = "full",
    slug: str | None = None,
    trigger_source: str = "schedule",
) -> CrawlRun:
    """Sync counterpart for the beat dispatcher."""
    row = _queued_run(
        crawler_name, celery_task_id, mode=mode, slug=slug, trigger_source=trigger_source
    )
    session.add(row)
    session.flush()
    return row


def mark_running_sync(
    session: Session,
    celery_task_id: str,
    crawler_name: str,
    *,
    mode: str = "full",
    slug: str | None = None,
) -> CrawlRun:
    """Worker picked the job up. Creates the row when the queued one is missing (legacy/manual enqueue)."""
    now = datetime.now(UTC)
    row = session.execute(
        select(CrawlRun).where(CrawlRun.celery_task_id == celery_task_id).limit(1)
    ).scalar_one_or_none()
    if row is None:
        row = _queued_run(crawler_name, celery_task_id, mode=mode, slug=slug, trigger_source="manual")
        session.add(row)
    row.status = RUN_STATUS_RUNNING
    row.started_at = now
    row.finished_at = None
    row.error_message = None
    session.flush()
    return row


def finish_run_sync(
    session: Session,
    celery_task_id: str,
    *,
    status: str,
    items_processed: int | None = None,
    items_skipped: int | None = None,
    items_failed: int | None = None,
    error_message: str | None = None,
) -> CrawlRun | None:
    """Terminal update by celery_task_id (sync, worker side)."""
    row = session.execute(
        select(CrawlRun).where(CrawlRun.celery_task_id == celery_task_id).limit(1)
    ).scalar_one_or_none()
    if not row:
        return None
    row.status = status
    row.finished_at = datetime.now(UTC)
    if items_processed is not None:
        row.items_processed = items_processed
    if items_skipped is not None:
        row.items_skipped = items_skipped
    if items_failed is not None:
        row.items_failed = items_failed
    if error_message is not None:
        row.error_message = error_message[:2000]
    session.flush()
    return row


def get_last_scheduled_at_sync(session: Session, crawler_name: str) -> datetime | None:
    """queued_at of the latest scheduled run. The cron due-check counts from here."""
    return session.execute(
        select(func.max(CrawlRun.queued_at)).where(
            CrawlRun.crawler_name == crawler_name,
            CrawlRun.trigger_source == "schedule",
        )
    ).scalar_one_or_none()
