"""CrawlerSettings model. One row per named crawler; drives scheduling and the crawl engine."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cinecrawl.core.cron import DEFAULT_CRON_SCHEDULE
from cinecrawl.core.text import fold_diacritics
from cinecrawl.models.base import Base

DEFAULT_MAX_RETRIES = 3
DEFAULT_RATE_LIMIT_DELAY_MS = 1000
DEFAULT_MAX_CONCURRENT_REQUESTS = 5
DEFAULT_MAX_CONTINUOUS_SKIPS = 10


def _new_id() -> str:
    return uuid.uuid4().hex


def _search_name(context) -> str:
    # NFKD can lengthen a name (ligatures); keep within the column.
    return fold_diacritics(context.get_current_parameters()["name"])[:255]


class CrawlerSettings(Base):
    """Crawler configuration. `name` is unique and immutable after creation."""

    __tablename__ = "crawler_settings"
    __table_args__ = (Index("ix_crawler_settings_updated_at_id", "updated_at", "id"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    # Accent-folded lowercase name for `search`. Derived on insert; name never changes.
    search_name: Mapped[str] = mapped_column(String(255), nullable=False, default=_search_name)
    host: Mapped[str] = mapped_column(String(2048), nullable=False)
    img_host: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    cron_schedule: Mapped[str] = mapped_column(
        String(255), nullable=False, default=DEFAULT_CRON_SCHEDULE
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # True disables skip-on-unchanged: every visited movie is re-fetched and re-written.
    force_update: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_MAX_RETRIES)
    rate_limit_delay: Mapped[int] = mapped_column(  # milliseconds between request starts
        Integer, nullable=False, default=DEFAULT_RATE_LIMIT_DELAY_MS
    )
    max_concurrent_requests: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_MAX_CONCURRENT_REQUESTS
    )
    # 0 disables the early exit.
    max_continuous_skips: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_MAX_CONTINUOUS_SKIPS
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
