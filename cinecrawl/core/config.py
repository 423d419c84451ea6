"""Environment-based settings. Uses pydantic-settings."""

from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """App settings loaded from env. Secrets masked via SecretStr; production boot fails fast on missing ones."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Observability (optional)
    sentry_dsn: SecretStr | None = None
    environment: str = "development"  # Sentry/logging. production, staging, development.

    # Database
    database_url: str | None = None
    db_connect_retries: int = Field(5, ge=1, le=20)  # Startup connection attempts.
    db_connect_retry_interval_sec: float = Field(2.0, ge=0.5, le=60.0)  # Seconds between attempts.
    db_pool_size: int = Field(5, ge=1, le=50)
    db_max_overflow: int = Field(5, ge=0, le=50)

    # Redis (broker, result backend, trigger locks, auto-stop marks)
    redis_url: str | None = None
    # Socket/connect timeouts (seconds). Avoid hanging forever when the pool is saturated.
    redis_socket_timeout: float = Field(5.0, ge=1.0, le=60.0)
    redis_socket_connect_timeout: float = Field(2.0, ge=0.5, le=30.0)
    # Async pool size for the trigger lock client.
    redis_trigger_lock_max_connections: int = Field(5, ge=1, le=50)

    # Admin API secret (header only). Unset -> admin routes answer 503.
    crawler_admin_secret: SecretStr | None = None

    # Trigger protocol
    # Lock TTL. The worker re-arms it every ttl/3 seconds while a run is in progress,
    # so it only bounds how long a hard-killed worker blocks the crawler.
    crawl_trigger_lock_ttl_seconds: int = Field(900, ge=30, le=86400)
    # skip: second trigger while in flight dispatches nothing and returns false. reject: 409.
    crawl_duplicate_trigger_policy: Literal["skip", "reject"] = "skip"
    # False -> manual trigger of a disabled crawler fails with 409 CRAWLER_DISABLED.
    crawl_allow_manual_trigger_when_disabled: bool = True
    # Hours an auto-stopped (max continuous skips) crawler is left out of scheduled dispatch.
    crawl_auto_stop_cooldown_hours: float = Field(20.0, ge=0.0, le=168.0)
    # Same-day rerun of a full crawl resumes from the last finished listing page.
    crawl_resume_pages_same_day: bool = True
    # Broker redelivery window for unacked messages. Above the longest expected run.
    crawl_broker_visibility_timeout_seconds: int = Field(43200, ge=3600, le=604800)

    # Source HTTP
    crawl_request_timeout_seconds: float = Field(30.0, ge=1.0, le=300.0)

    # CORS
    allowed_origins: str = ""

    @model_validator(mode="after")
    def fail_fast_production(self: "Settings") -> "Settings":
        """Refuse to boot in production when required variables are missing."""
        if (self.environment or "").strip().lower() != "production":
            return self
        missing: list[str] = []
        if not (self.database_url or "").strip():
            missing.append("DATABASE_URL")
        if not (self.redis_url or "").strip():
            missing.append("REDIS_URL")
        if self.crawler_admin_secret is None or not self.crawler_admin_secret.get_secret_value().strip():
            missing.append("CRAWLER_ADMIN_SECRET")
        if missing:
            raise ValueError(
                f"Production environment requires these variables to be set: {', '.join(missing)}. "
                "Set them in Secret Manager or environment before boot."
            )
        return self


settings = Settings()
