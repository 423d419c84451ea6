"""FastAPI app entry point. cinecrawl.main:app"""

import asyncio
import logging
from contextlib import asynccontextmanager

from cinecrawl.core.config import settings


# Init Sentry right after settings load so import/router registration errors are captured too.
def _init_sentry() -> None:
    """Init Sentry when SENTRY_DSN is set. environment comes from settings (staging/local apart)."""
    if settings.sentry_dsn:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration

        sentry_sdk.init(
            dsn=settings.sentry_dsn.get_secret_value(),
            integrations=[
                FastApiIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            ],
            traces_sample_rate=0.1,
            environment=settings.environment,
        )


_init_sentry()

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.exception_handlers import request_validation_exception_handler  # noqa: E402
from fastapi.exceptions import HTTPException, RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from cinecrawl.api import health  # noqa: E402
from cinecrawl.api.v1 import crawler_settings as v1_crawler_settings  # noqa: E402
from cinecrawl.api.v1 import crawler_trigger as v1_crawler_trigger  # noqa: E402
from cinecrawl.core.database import get_engine, init_db, verify_db_connection  # noqa: E402
from cinecrawl.core.errors import CrawlerServiceError  # noqa: E402
from cinecrawl.core.redis import create_trigger_lock_client  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """App lifecycle: DB and the trigger lock Redis client."""
    init_db()
    await verify_db_connection()
    app.state.redis_trigger_lock_client = create_trigger_lock_client()
    yield
    if getattr(app.state, "redis_trigger_lock_client", None) is not None:
        await app.state.redis_trigger_lock_client.aclose()
    eng = get_engine()
    if eng is not None:
        await eng.dispose()


app = FastAPI(
    title="cinecrawl API",
    description="Movie catalog crawler settings, trigger and run history",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(v1_crawler_settings.router, prefix="/v1")
app.include_router(v1_crawler_trigger.router, prefix="/v1")

allowed_origins = [
    o.strip() for o in settings.allowed_origins.split(",") if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return await request_validation_exception_handler(request, exc)


@app.exception_handler(CrawlerServiceError)
async def crawler_service_error_handler(
    request: Request, exc: CrawlerServiceError
) -> JSONResponse:
    """Domain errors -> status from the exception class, body {detail, code[, errors]}."""
    if exc.status_code >= 500:
        logger.warning("Crawler service unavailable: %s", exc.message, exc_info=True)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """HTTPException passes through as is. Anything else -> 500 + log."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc  # normal disconnect, not a 500
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )
    logger.exception("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
