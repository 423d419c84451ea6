"""
Celery worker entry point. broker=Redis, result_backend set.
Supports redis:// and rediss:// (TLS). Beat runs the cron dispatcher every minute.
"""

import logging
import ssl

from celery import Celery

from cinecrawl.core.config import settings
from cinecrawl.core.cron import DISPATCH_INTERVAL_SECONDS

logger = logging.getLogger(__name__)

# Without REDIS_URL fall back to local Redis (local development)
broker_url = settings.redis_url or "redis://localhost:6379/0"
result_backend = settings.redis_url or "redis://localhost:6379/0"

app = Celery(
    "cinecrawl",
    broker=broker_url,
    backend=result_backend,
    include=["cinecrawl.services.tasks"],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    broker_connection_retry_on_startup=True,
    broker_transport_options={
        "visibility_timeout": settings.crawl_broker_visibility_timeout_seconds,
    },
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    beat_schedule={
        "dispatch-due-crawlers": {
            "task": "cinecrawl.services.tasks.dispatch_due_crawlers_task",
            "schedule": DISPATCH_INTERVAL_SECONDS,
        },
    },
)

# rediss:// (TLS) SSL options
if broker_url.startswith("rediss://"):
    app.conf.broker_use_ssl = {
        "ssl_cert_reqs": ssl.CERT_NONE,  # self-signed certificates on managed Redis
    }
    app.conf.redis_backend_use_ssl = {
        "ssl_cert_reqs": ssl.CERT_NONE,
    }

# Register tasks (bind cinecrawl.services.tasks to this app)
from cinecrawl.services import tasks  # noqa: F401, E402

if settings.sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn.get_secret_value(),
        integrations=[
            CeleryIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.1,
        environment=settings.environment,
    )
    logger.info("Sentry initialized for worker")
