"""
API-side database access: one async engine (asyncpg) per process, sessions handed
out through get_db for reads and transaction() for service-layer writes.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

import sentry_sdk
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cinecrawl.core.config import settings

logger = logging.getLogger(__name__)

ASYNC_DRIVERS = {"postgresql": "postgresql+asyncpg", "sqlite": "sqlite+aiosqlite"}


class _DbHolder:
    engine: AsyncEngine | None = None
    async_session_maker: async_sessionmaker[AsyncSession] | None = None


_db_holder = _DbHolder()

# Session shared by nested transaction() calls within one task.
_current_session: ContextVar[AsyncSession | None] = ContextVar("current_session", default=None)


def async_database_url(raw: str) -> str:
    """Same database, async driver: postgresql(+anything) -> +asyncpg, sqlite -> +aiosqlite."""
    url = make_url(raw.strip())
    driver = ASYNC_DRIVERS.get(url.get_backend_name())
    if driver is None:
        raise ValueError(f"Unsupported DATABASE_URL backend: {url.get_backend_name()!r}")
    return url.set(drivername=driver).render_as_string(hide_password=False)


def _engine_options(url: str) -> dict[str, Any]:
    if make_url(url).get_backend_name() == "sqlite":
        return {}
    return {
        "pool_pre_ping": True,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
    }


def get_engine() -> AsyncEngine | None:
    return _db_holder.engine


def get_async_session_maker() -> async_sessionmaker[AsyncSession] | None:
    return _db_holder.async_session_maker


def init_db() -> None:
    """Create the engine and session factory. No-op (with a warning) without DATABASE_URL."""
    if not settings.database_url:
        logger.warning("DATABASE_URL not set. DB features disabled.")
        return
    url = async_database_url(settings.database_url)
    engine = create_async_engine(url, **_engine_options(url))
    override_db_for_testing(
        engine,
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False),
    )


def override_db_for_testing(
    engine: AsyncEngine | None = None,
    async_session_maker_instance: async_sessionmaker[AsyncSession] | None = None,
) -> None:
    """Install an engine/session factory pair. Tests pass SQLite; None clears both."""
    _db_holder.engine = engine
    _db_holder.async_session_maker = async_session_maker_instance


async def _ping(engine: AsyncEngine) -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def verify_db_connection() -> None:
    """
    Startup check. The database may come up after the app (containers), so the ping
    is retried db_connect_retries times. Persistent failure goes to Sentry and
    aborts boot with RuntimeError.
    """
    engine = get_engine()
    if engine is None:
        return

    attempts = max(1, settings.db_connect_retries)
    interval = max(0.5, settings.db_connect_retry_interval_sec)
    attempt = 0
    while True:
        attempt += 1
        try:
            await _ping(engine)
            if attempt > 1:
                logger.info("Database reachable after %d attempts", attempt)
            return
        except Exception as exc:
            if attempt >= attempts:
                failure = exc
                break
            logger.warning(
                "Database ping %d/%d failed: %s. Next try in %.1fs",
                attempt,
                attempts,
                exc,
                interval,
            )
            await asyncio.sleep(interval)

    with sentry_sdk.new_scope() as scope:
        scope.set_tag("context", "database_connection_check")
        scope.set_context("database", {"attempts": attempts})
        sentry_sdk.capture_exception(failure)
    logger.critical("Database unreachable after %d attempts. Aborting startup.", attempts)
    raise RuntimeError(f"Database unreachable after {attempts} attempts: {failure}") from failure


def _require_maker() -> async_sessionmaker[AsyncSession]:
    maker = get_async_session_maker()
    if maker is None:
        raise RuntimeError("Database not initialized. Set DATABASE_URL.")
    return maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for read paths. Writes go through transaction()."""
    async with _require_maker()() as session:
        yield session


@asynccontextmanager
async def transaction() -> AsyncGenerator[AsyncSession, None]:
    """
    Commit on success, rollback on error. An inner transaction() joins the
    outer one's session and leaves commit/rollback to it.
    """
    maker = _require_maker()
    outer = _current_session.get()
    if outer is not None:
        yield outer
        return

    async with maker() as session:
        token = _current_session.set(session)
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            _current_session.reset(token)
