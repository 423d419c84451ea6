"""
CrawlerSettings Pydantic schemas.
Wire format is camelCase (imgHost, cronSchedule, ...). snake_case is also accepted on input.
"""

from datetime import datetime
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from cinecrawl.core.cron import DEFAULT_CRON_SCHEDULE, normalize_cron
from cinecrawl.models.crawler_settings import (
    DEFAULT_MAX_CONCURRENT_REQUESTS,
    DEFAULT_MAX_CONTINUOUS_SKIPS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RATE_LIMIT_DELAY_MS,
)

MAX_RETRIES_LIMIT = 20
RATE_LIMIT_DELAY_LIMIT_MS = 600_000
MAX_CONCURRENT_REQUESTS_LIMIT = 50
MAX_CONTINUOUS_SKIPS_LIMIT = 100_000
LIST_LIMIT_MAX = 100

_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def ensure_protocol(url: str) -> str:
    """Prepend https:// when the scheme is missing."""
    lowered = url.lower()
    if lowered.startswith("http://") or lowered.startswith("https://"):
        return url
    return f"https://{url}"


def normalize_url(value: str) -> str:
    """Strip, add https:// if needed, require an http(s) URL with a host. ValueError otherwise."""
    url = ensure_protocol(value.strip())
    if any(c.isspace() for c in url):
        raise ValueError("URL must not contain whitespace")
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
        raise ValueError(f"Invalid URL: {value!r}")
    return url


def _non_blank(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("must not be blank")
    return stripped


class CrawlerSettingsCreate(BaseModel):
    """createCrawlerSettings input. Unknown fields are rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    name: str = Field(..., max_length=255)
    host: str = Field(..., max_length=2048)
    img_host: str | None = Field(None, max_length=2048)
    cron_schedule: str = DEFAULT_CRON_SCHEDULE
    enabled: bool = True
    force_update: bool = False
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=0, le=MAX_RETRIES_LIMIT)
    rate_limit_delay: int = Field(DEFAULT_RATE_LIMIT_DELAY_MS, ge=0, le=RATE_LIMIT_DELAY_LIMIT_MS)
    max_concurrent_requests: int = Field(
        DEFAULT_MAX_CONCURRENT_REQUESTS, ge=1, le=MAX_CONCURRENT_REQUESTS_LIMIT
    )
    max_continuous_skips: int = Field(
        DEFAULT_MAX_CONTINUOUS_SKIPS, ge=0, le=MAX_CONTINUOUS_SKIPS_LIMIT
    )

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        return _non_blank(v)

    @field_validator("host")
    @classmethod
    def _host_url(cls, v: str) -> str:
        return normalize_url(v)

    @field_validator("img_host")
    @classmethod
    def _img_host_url(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return normalize_url(v)

    @field_validator("cron_schedule")
    @classmethod
    def _cron(cls, v: str) -> str:
        return normalize_cron(v)


class CrawlerSettingsUpdate(BaseModel):
    """
    updateCrawlerSettings input. Only provided fields are applied (model_fields_set).
    name, id and timestamps are not part of the model and are ignored.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    host: str | None = Field(None, max_length=2048)
    img_host: str | None = Field(None, max_length=2048)
    cron_schedule: str | None = None
    enabled: bool | None = None
    force_update: bool | None = None
    max_retries: int | None = Field(None, ge=0, le=MAX_RETRIES_LIMIT)
    rate_limit_delay: int | None = Field(None, ge=0, le=RATE_LIMIT_DELAY_LIMIT_MS)
    max_concurrent_requests: int | None = Field(None, ge=1, le=MAX_CONCURRENT_REQUESTS_LIMIT)
    max_continuous_skips: int | None = Field(None, ge=0, le=MAX_CONTINUOUS_SKIPS_LIMIT)

    # Only runs for explicitly provided values. imgHost is the one nullable column.
    @field_validator(
        "host",
        "cron_schedule",
        "enabled",
        "force_update",
        "max_retries",
        "rate_limit_delay",
        "max_concurrent_requests",
        "max_continuous_skips",
        mode="before",
    )
    @classmethod
    def _not_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v

    @field_validator("host")
    @classmethod
    def _host_url(cls, v: str | None) -> str | None:
        return normalize_url(v) if v is not None else v

    @field_validator("img_host")
    @classmethod
    def _img_host_url(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return normalize_url(v)

    @field_validator("cron_schedule")
    @classmethod
    def _cron(cls, v: str | None) -> str | None:
        return normalize_cron(v) if v is not None else v


class CrawlerSettingsResponse(BaseModel):
    """Stored record. Serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    name: str
    host: str
    img_host: str | None = None
    cron_schedule: str
    enabled: bool
    force_update: bool
    max_retries: int
    rate_limit_delay: int
    max_concurrent_requests: int
    max_continuous_skips: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CrawlerSettingsListQuery(BaseModel):
    """crawlerSettings filter. name = exact match, search = case- and accent-insensitive substring of name."""

    model_config = _WIRE_CONFIG

    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=LIST_LIMIT_MAX)
    name: str | None = None
    search: str | None = None


class CrawlerSettingsList(BaseModel):
    data: list[CrawlerSettingsResponse]
    total: int


class CrawlerSettingsCreated(BaseModel):
    id: str


class TriggerCrawlerInput(BaseModel):
    """triggerCrawler input. slug present -> crawl exactly that movie."""

    model_config = _WIRE_CONFIG

    name: str = Field(..., max_length=255)
    slug: str | None = Field(None, max_length=512)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        return _non_blank(v)

    @field_validator("slug")
    @classmethod
    def _slug_not_blank(cls, v: str | None) -> str | None:
        return _non_blank(v) if v is not None else v
