"""Pytest fixtures. Runs without Postgres/Redis: SQLite (aiosqlite) in memory, locks faked."""

import os

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# CI may inject DATABASE_URL. Locally an empty value boots the app without a DB.
if not os.environ.get("DATABASE_URL"):
    os.environ["DATABASE_URL"] = ""
os.environ.setdefault("REDIS_URL", "")
# Admin routes need the secret configured
os.environ.setdefault("CRAWLER_ADMIN_SECRET", "test-admin-secret")

ADMIN_HEADERS = {"X-Crawler-Admin-Secret": os.environ["CRAWLER_ADMIN_SECRET"]}


@pytest.fixture
def client() -> TestClient:
    """FastAPI TestClient. Lifespan not entered: no DB or Redis needed."""
    from cinecrawl.main import app
    return TestClient(app)


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return dict(ADMIN_HEADERS)


@pytest_asyncio.fixture
async def db():
    """In-memory SQLite schema wired into transaction()/get_db via override_db_for_testing."""
    from cinecrawl.core.database import override_db_for_testing
    from cinecrawl.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    override_db_for_testing(engine, maker)
    yield maker
    override_db_for_testing(None, None)
    await engine.dispose()


@pytest.fixture
def sync_db():
    """In-memory SQLite schema behind get_sync_session (worker code path)."""
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker

    from cinecrawl.core.database_sync import override_sync_db_for_testing
    from cinecrawl.models import Base

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    maker = sessionmaker(bind=engine, expire_on_commit=False)
    override_sync_db_for_testing(maker)
    yield maker
    override_sync_db_for_testing(None)
    engine.dispose()


@pytest.fixture
def redis_server():
    """Shared fakeredis server. Clients made from it see the same keys (Lua enabled)."""
    import fakeredis

    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    import fakeredis

    client = fakeredis.FakeRedis(server=redis_server, decode_responses=True)
    yield client
    client.close()
