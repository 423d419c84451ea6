"""
Movie source adapter base. An adapter knows two URLs (listing page, movie detail)
and how to turn their JSON into ListingPage / MovieRecord. HTTP goes through crawl_http.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import requests

from cinecrawl.core.crawl_http import DEFAULT_TIMEOUT, SourceFetchError, fetch_json

logger = logging.getLogger(__name__)

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_ABSOLUTE_URL_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")

# Column limits of the movies table.
NAME_MAX_LENGTH = 512
URL_MAX_LENGTH = 2048
MIN_YEAR = 1800
MAX_YEAR = 2100


@dataclass(frozen=True)
class ListingItem:
    slug: str
    modified_at: datetime | None = None


@dataclass(frozen=True)
class ListingPage:
    items: list[ListingItem]
    total_pages: int


@dataclass
class MovieRecord:
    """One movie as the catalog stores it."""

    slug: str
    name: str
    origin_name: str | None = None
    year: int | None = None
    content: str | None = None
    thumb_url: str | None = None
    poster_url: str | None = None
    modified_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_row(self, source: str) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "name": _clip(self.name, NAME_MAX_LENGTH),
            "origin_name": _clip(self.origin_name, NAME_MAX_LENGTH),
            "year": self.year,
            "content": self.content,
            "thumb_url": _fit_url(self.thumb_url),
            "poster_url": _fit_url(self.poster_url),
            "source": source,
            "source_modified_at": self.modified_at,
        }


def _clip(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value[:limit]


def _fit_url(value: str | None) -> str | None:
    """A cut URL points nowhere; oversized ones are dropped."""
    if value is None or len(value) > URL_MAX_LENGTH:
        return None
    return value


def parse_modified(value: Any) -> datetime | None:
    """ISO-8601 string (or {'time': ...}) -> aware UTC datetime. None when absent or unparseable."""
    if isinstance(value, dict):
        value = value.get("time")
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable modified time: %r", value)
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def resolve_url(path: str | None, host: str | None) -> str | None:
    """Absolute URLs pass through, protocol-relative ones get https, relative paths are joined onto host."""
    path = (path or "").strip()
    if not path:
        return None
    if _ABSOLUTE_URL_RE.match(path):
        return path
    if path.startswith("//"):
        return f"https:{path}"
    if host:
        return f"{host.strip('/')}/{path.strip('/')}"
    return path


def parse_year(value: Any) -> int | None:
    try:
        year = int(value)
    except (TypeError, ValueError):
        return None
    return year if MIN_YEAR <= year <= MAX_YEAR else None


def strip_html(value: Any) -> str | None:
    if not value:
        return None
    return _HTML_TAG_RE.sub("", str(value)).strip() or None


class MovieSource:
    """Base adapter. Subclasses set `key` and implement the URL and parse hooks."""

    key = ""

    def __init__(
        self,
        host: str,
        img_host: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.host = host.rstrip("/")
        self.img_host = img_host
        self.timeout = timeout
        self.session = session or requests.Session()

    def listing_url(self, page: int) -> str:
        raise NotImplementedError

    def detail_url(self, slug: str) -> str:
        raise NotImplementedError

    def parse_listing(self, payload: Any) -> ListingPage:
        raise NotImplementedError

    def parse_detail(self, payload: Any) -> MovieRecord:
        raise NotImplementedError

    def _get(self, url: str) -> Any:
        return fetch_json(url, timeout=self.timeout, session=self.session)

    def fetch_listing(self, page: int) -> ListingPage:
        payload = self._get(self.listing_url(page))
        try:
            return self.parse_listing(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SourceFetchError(
                f"Malformed listing page {page} from {self.key}: {e}", transient=False
            ) from e

    def fetch_detail(self, slug: str) -> MovieRecord:
        payload = self._get(self.detail_url(slug))
        try:
            return self.parse_detail(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SourceFetchError(
                f"Malformed movie detail {slug!r} from {self.key}: {e}", transient=False
            ) from e

    def close(self) -> None:
        self.session.close()
