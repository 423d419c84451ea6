"""Movie Repository. Catalog reads/writes for the crawl engine (sync, worker side)."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from cinecrawl.models.movie import Movie


def as_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes (SQLite) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def get_by_slug_sync(session: Session, slug: str) -> Movie | None:
    result = session.execute(select(Movie).where(Movie.slug == slug).limit(1))
    return result.scalar_one_or_none()


def upsert_movie_sync(session: Session, values: dict[str, Any]) -> Movie:
    """Insert or update by slug. Caller commits."""
    row = get_by_slug_sync(session, values["slug"])
    if row is None:
        row = Movie(**values)
        session.add(row)
    else:
        for key, value in values.items():
            setattr(row, key, value)
        row.updated_at = datetime.now(UTC)
    session.flush()
    return row
