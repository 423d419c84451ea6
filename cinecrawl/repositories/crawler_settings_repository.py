"""CrawlerSettings Repository. DB queries only; validation lives in the service."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from cinecrawl.core.text import fold_diacritics
from cinecrawl.models.crawler_settings import CrawlerSettings


async def get_by_id(session: AsyncSession, settings_id: str) -> CrawlerSettings | None:
    result = await session.execute(
        select(CrawlerSettings).where(CrawlerSettings.id == settings_id).limit(1)
    )
    return result.scalar_one_or_none()


async def get_by_name(session: AsyncSession, name: str) -> CrawlerSettings | None:
    result = await session.execute(
        select(CrawlerSettings).where(CrawlerSettings.name == name).limit(1)
    )
    return result.scalar_one_or_none()


async def create(session: AsyncSession, values: dict[str, Any]) -> CrawlerSettings:
    """Insert one row. IntegrityError on duplicate name surfaces at flush."""
    row = CrawlerSettings(**values)
    session.add(row)
    await session.flush()
    await session.refresh(row)
    return row


async def update(
    session: AsyncSession, row: CrawlerSettings, values: dict[str, Any]
) -> CrawlerSettings:
    """Apply values and bump updated_at even when nothing else changed."""
    for key, value in values.items():
        setattr(row, key, value)
    row.updated_at = datetime.now(UTC)
    await session.flush()
    await session.refresh(row)
    return row


async def delete(session: AsyncSession, row: CrawlerSettings) -> None:
    await session.delete(row)
    await session.flush()


async def list_settings(
    session: AsyncSession,
    *,
    page: int = 1,
    limit: int = 20,
    name: str | None = None,
    search: str | None = None,
) -> tuple[list[CrawlerSettings], int]:
    """One page ordered by updated_at desc, id desc. Returns (rows, total matching)."""
    conditions = []
    if name:
        conditions.append(CrawlerSettings.name == name)
    if search:
        conditions.append(
            CrawlerSettings.search_name.contains(fold_diacritics(search), autoescape=True)
        )

    count_stmt = select(func.count()).select_from(CrawlerSettings).where(*conditions)
    total = (await session.execute(count_stmt)).scalar_one()

    stmt = (
        select(CrawlerSettings)
        .where(*conditions)
        .order_by(CrawlerSettings.updated_at.desc(), CrawlerSettings.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all()), int(total)


def list_enabled_sync(session: Session) -> list[CrawlerSettings]:
    """Enabled crawlers for the beat dispatcher."""
    result = session.execute(
        select(CrawlerSettings)
        .where(CrawlerSettings.enabled.is_(True))
        .order_by(CrawlerSettings.name)
    )
    return list(result.scalars().all())
