"""Seed default crawler settings (ophim, kkphim, nguonc). Existing names are left alone."""

import asyncio
import os
import sys

# Project root on sys.path when run as `python scripts/seed_crawler_settings.py`
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.append(project_root)

from cinecrawl.core import database  # noqa: E402
from cinecrawl.core.errors import ConflictError  # noqa: E402
from cinecrawl.services.crawler_settings_service import create_crawler_settings  # noqa: E402

CRAWLER_SETTINGS_DATA = [
    {"name": "ophim", "host": "https://ophim1.com", "imgHost": "https://img.ophim.live/uploads/movies"},
    {"name": "kkphim", "host": "https://phimapi.com", "imgHost": "https://phimimg.com"},
    {"name": "nguonc", "host": "https://phim.nguonc.com/api", "enabled": False},
]


async def seed_crawler_settings() -> None:
    database.init_db()
    if database.get_async_session_maker() is None:
        print("[STOP] DATABASE_URL not set; nothing seeded.")
        return

    print("Seeding crawler settings...")
    for data in CRAWLER_SETTINGS_DATA:
        try:
            row = await create_crawler_settings(data)
        except ConflictError:
            print(f"  Skip: {data['name']} (exists)")
        else:
            print(f"  Add: {row.name} ({row.id})")
    engine = database.get_engine()
    if engine is not None:
        await engine.dispose()
    print("Done.")


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(seed_crawler_settings())
