"""
Sync DB access for Celery workers. SQLAlchemy 2.0 + psycopg (sync).
The API uses asyncpg; workers use only this module to keep connection counts low.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from cinecrawl.core.config import settings

logger = logging.getLogger(__name__)


class _SyncDbHolder:
    engine = None
    session_factory: sessionmaker[Session] | None = None


_sync_holder = _SyncDbHolder()

SYNC_DRIVERS = {"postgresql": "postgresql+psycopg", "sqlite": "sqlite"}


def sync_database_url(raw: str) -> str:
    """Same database, sync driver: postgresql(+anything) -> +psycopg (v3). Also used by alembic."""
    url = make_url(raw.strip())
    driver = SYNC_DRIVERS.get(url.get_backend_name())
    if driver is None:
        raise ValueError(f"Unsupported DATABASE_URL backend: {url.get_backend_name()!r}")
    return url.set(drivername=driver).render_as_string(hide_password=False)


def init_sync_db() -> None:
    """Build the sync engine and session factory when DATABASE_URL is set (worker side)."""
    if not settings.database_url:
        logger.warning("DATABASE_URL not set. Sync DB features disabled.")
        return
    url = sync_database_url(settings.database_url)
    # Few connections per worker process; the crawl holds one session for the whole run.
    pool = {} if url.startswith("sqlite") else {"pool_pre_ping": True, "pool_size": 2, "max_overflow": 0}
    _sync_holder.engine = create_engine(url, **pool)
    _sync_holder.session_factory = sessionmaker(
        bind=_sync_holder.engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


def override_sync_db_for_testing(session_factory: sessionmaker[Session] | None) -> None:
    """Test hook. Point workers at a test session factory."""
    _sync_holder.session_factory = session_factory


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Sync session context for worker tasks: `with get_sync_session() as session:`."""
    if not _sync_holder.session_factory:
        init_sync_db()
    if not _sync_holder.session_factory:
        raise RuntimeError("Sync database not initialized. Set DATABASE_URL.")
    session = _sync_holder.session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
