"""Development server: `python run.py`. Production runs uvicorn/gunicorn against cinecrawl.main:app."""
import asyncio
import os
import sys

if sys.platform == "win32":
    # psycopg and asyncpg need the selector loop on Windows.
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

import uvicorn

from cinecrawl.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "cinecrawl.main:app",
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "8000")),
        reload=settings.environment == "development",
        log_level="debug" if settings.environment == "development" else "info",
    )
