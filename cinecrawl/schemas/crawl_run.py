"""CrawlRun Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CrawlRunResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    crawler_name: str
    celery_task_id: str
    mode: str
    slug: str | None = None
    trigger_source: str
    status: str
    queued_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    items_processed: int = 0
    items_skipped: int = 0
    items_failed: int = 0
    error_message: str | None = None


class CrawlRunList(BaseModel):
    runs: list[CrawlRunResponse]
    limit: int
