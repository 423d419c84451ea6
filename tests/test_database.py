"""Database wiring: DATABASE_URL driver mapping, startup ping and nested transactions."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from cinecrawl.core.database import (
    async_database_url,
    override_db_for_testing,
    transaction,
    verify_db_connection,
)
from cinecrawl.core.database_sync import sync_database_url

PG = "postgresql://user:p%40ss@db:5432/cinecrawl"


@pytest.mark.parametrize(
    "raw",
    [PG, PG.replace("postgresql", "postgresql+asyncpg"), PG.replace("postgresql", "postgresql+psycopg2")],
)
def test_postgres_driver_swapped_credentials_kept(raw) -> None:
    assert async_database_url(raw) == "postgresql+asyncpg://user:p%40ss@db:5432/cinecrawl"
    assert sync_database_url(raw) == "postgresql+psycopg://user:p%40ss@db:5432/cinecrawl"


def test_surrounding_whitespace_ignored() -> None:
    assert sync_database_url(f"  {PG}\n").startswith("postgresql+psycopg://")


def test_sqlite_urls() -> None:
    assert async_database_url("sqlite:///./local.db") == "sqlite+aiosqlite:///./local.db"
    assert sync_database_url("sqlite+aiosqlite:///./local.db") == "sqlite:///./local.db"


def test_unsupported_backend_rejected() -> None:
    with pytest.raises(ValueError):
        async_database_url("mysql://root@localhost/cinecrawl")
    with pytest.raises(ValueError):
        sync_database_url("mysql://root@localhost/cinecrawl")


@pytest.fixture
def fake_engine():
    override_db_for_testing(MagicMock(), None)
    yield
    override_db_for_testing(None, None)


@pytest.mark.asyncio
async def test_startup_ping_retries_until_reachable(fake_engine) -> None:
    ping = AsyncMock(side_effect=[OSError("refused"), OSError("refused"), None])
    with patch("cinecrawl.core.database._ping", ping), patch(
        "cinecrawl.core.database.asyncio.sleep", AsyncMock()
    ):
        await verify_db_connection()
    assert ping.await_count == 3


@pytest.mark.asyncio
async def test_startup_ping_gives_up(fake_engine, monkeypatch) -> None:
    from cinecrawl.core.config import settings

    monkeypatch.setattr(settings, "db_connect_retries", 2)
    ping = AsyncMock(side_effect=OSError("refused"))
    with patch("cinecrawl.core.database._ping", ping), patch(
        "cinecrawl.core.database.asyncio.sleep", AsyncMock()
    ), pytest.raises(RuntimeError):
        await verify_db_connection()
    assert ping.await_count == 2


@pytest.mark.asyncio
async def test_nested_transaction_shares_session_and_rolls_back(db) -> None:
    from cinecrawl.models.crawler_settings import CrawlerSettings

    with pytest.raises(LookupError):
        async with transaction() as outer:
            outer.add(CrawlerSettings(name="ophim", host="https://ophim1.com"))
            async with transaction() as inner:
                assert inner is outer
            raise LookupError("abort")

    async with db() as session:
        rows = (await session.execute(select(CrawlerSettings))).scalars().all()
    assert rows == []
