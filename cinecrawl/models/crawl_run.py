"""CrawlRun (crawl run history) model. Job state keyed by crawler name."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cinecrawl.models.base import Base

RUN_STATUS_QUEUED = "queued"
RUN_STATUS_RUNNING = "running"
RUN_STATUS_COMPLETED = "completed"
RUN_STATUS_ABORTED = "aborted"
RUN_STATUS_FAILED = "failed"


class CrawlRun(Base):
    """
    One dispatched crawl. Created `queued` by the trigger, then driven by the worker.
    No FK to crawler_settings: deleting a setting keeps its history.
    """

    __tablename__ = "crawl_runs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    crawler_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    celery_task_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    mode: Mapped[str] = mapped_column(String(16), nullable=False, default="full")  # full | slug
    slug: Mapped[str | None] = mapped_column(String(512), nullable=True)
    trigger_source: Mapped[str] = mapped_column(  # manual | schedule
        String(16), nullable=False, default="manual"
    )
    # queued | running | completed | aborted | failed
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=RUN_STATUS_QUEUED)
    queued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), index=True
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    items_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
