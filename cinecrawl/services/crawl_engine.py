"""
Crawl engine. Walks a source's catalog under a CrawlPolicy:
throttled concurrent fetches on a thread pool, skip-on-unchanged with a
continuous-skip early exit, and end-of-run retry passes over movies that
failed transiently. Catalog writes happen on the calling thread only
(one sync session per run).
"""

import logging
import random
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from cinecrawl.core.crawl_http import SourceFetchError
from cinecrawl.models.crawl_run import RUN_STATUS_ABORTED, RUN_STATUS_COMPLETED
from cinecrawl.repositories.movie_repository import as_utc, get_by_slug_sync, upsert_movie_sync
from cinecrawl.services.crawl_policy import CrawlPolicy, RequestThrottle, SkipCounter, backoff_delay
from cinecrawl.services.sources.base import ListingItem, MovieRecord

logger = logging.getLogger(__name__)

MODE_FULL = "full"
MODE_SLUG = "slug"


class CatalogWriteError(Exception):
    """One movie could not be stored (bad value or constraint). Fails that item only."""

    pass


class MovieCatalog(Protocol):
    def stored_modified(self, slug: str) -> tuple[bool, datetime | None]: ...

    def save(self, record: MovieRecord) -> None: ...


class PageProgress(Protocol):
    def last_page(self) -> int: ...

    def mark(self, page: int) -> None: ...


class SqlMovieCatalog:
    """Catalog backed by the movies table. Commits after every write."""

    def __init__(self, session: Session, source_name: str) -> None:
        self.session = session
        self.source_name = source_name

    def stored_modified(self, slug: str) -> tuple[bool, datetime | None]:
        row = get_by_slug_sync(self.session, slug)
        if row is None:
            return (False, None)
        return (True, as_utc(row.source_modified_at))

    def save(self, record: MovieRecord) -> None:
        try:
            upsert_movie_sync(self.session, record.to_row(self.source_name))
            self.session.commit()
        except (DataError, IntegrityError) as e:
            self.session.rollback()
            raise CatalogWriteError(f"{record.slug}: {e.orig or e}") from e


@dataclass
class CrawlStats:
    processed: int = 0
    skipped: int = 0
    # Items and listing pages that still failed after retries.
    failed: int = 0
    pages: int = 0


@dataclass
class CrawlOutcome:
    status: str
    stats: CrawlStats

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "processed": self.stats.processed,
            "skipped": self.stats.skipped,
            "failed": self.stats.failed,
            "pages": self.stats.pages,
        }


class CrawlEngine:
    """One run over one source. Not reusable across runs."""

    def __init__(
        self,
        source: Any,
        catalog: MovieCatalog,
        policy: CrawlPolicy,
        *,
        progress: PageProgress | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.catalog = catalog
        self.policy = policy
        self.progress = progress
        self._sleep = sleep
        self._rng = rng
        self.throttle = RequestThrottle(
            policy.max_concurrent_requests,
            policy.rate_limit_delay_ms / 1000.0,
            clock=clock,
            sleep=sleep,
        )
        self.skips = SkipCounter(policy.max_continuous_skips)
        self.stats = CrawlStats()
        # Movies whose detail fetch failed transiently, in listing order.
        self._deferred: dict[str, ListingItem] = {}

    def run(self, *, mode: str = MODE_FULL, slug: str | None = None) -> CrawlOutcome:
        if mode == MODE_SLUG:
            if not slug:
                raise ValueError("slug mode requires a slug")
            self._run_slug(slug)
            return CrawlOutcome(RUN_STATUS_COMPLETED, self.stats)
        aborted = self._run_full()
        self._retry_deferred()
        status = RUN_STATUS_ABORTED if aborted else RUN_STATUS_COMPLETED
        return CrawlOutcome(status, self.stats)

    def _fetch(
        self, fn: Callable[..., Any], arg: Any, what: str, *, retries: int | None = None
    ) -> Any:
        """Call fn(arg) under the throttle. Transient errors retried `retries` times (default max_retries)."""
        limit = self.policy.max_retries if retries is None else retries
        attempt = 0
        while True:
            try:
                with self.throttle.slot():
                    return fn(arg)
            except SourceFetchError as e:
                if not e.transient or attempt >= limit:
                    raise
                delay = backoff_delay(attempt, rng=self._rng)
                logger.warning(
                    "Fetch %s failed (%s), retrying %d/%d in %.1fs",
                    what,
                    e,
                    attempt + 1,
                    limit,
                    delay,
                )
                self._sleep(delay)
                attempt += 1

    def _is_current(self, slug: str, modified_at: datetime | None) -> bool:
        """Catalog already has slug and the source has not changed it since."""
        if self.policy.force_update or modified_at is None:
            return False
        exists, stored = self.catalog.stored_modified(slug)
        if not exists or stored is None:
            return False
        return as_utc(modified_at) <= stored

    def _write(self, record: MovieRecord) -> None:
        try:
            self.catalog.save(record)
        except CatalogWriteError as e:
            logger.warning("Movie %s not stored: %s", record.slug, e)
            self.stats.failed += 1
            return
        self.stats.processed += 1
        self.skips.reset()

    def _skip(self, slug: str) -> bool:
        """Count an up-to-date item. True when the run must stop."""
        self.stats.skipped += 1
        tripped = self.skips.skip()
        logger.debug("Skip %s (unchanged), continuous=%d", slug, self.skips.current)
        return tripped

    def _store(self, item: ListingItem, record: MovieRecord) -> bool:
        """Write a fetched movie. True when the skip limit trips."""
        # Listing had no modified time: decide after the detail fetch.
        if item.modified_at is None and self._is_current(record.slug, record.modified_at):
            return self._skip(record.slug)
        self._write(record)
        return False

    def _fail(self, item: ListingItem, error: SourceFetchError) -> None:
        if error.transient:
            logger.info("Movie %s deferred to the retry pass: %s", item.slug, error)
            self._deferred[item.slug] = item
            return
        logger.warning("Movie %s failed: %s", item.slug, error)
        self.stats.failed += 1

    def _run_slug(self, slug: str) -> None:
        """Fetch and upsert exactly one movie. The listing is not touched."""
        try:
            record = self._fetch(self.source.fetch_detail, slug, f"movie {slug}")
        except SourceFetchError as e:
            logger.warning("Movie %s failed: %s", slug, e)
            self.stats.failed += 1
            return
        self._write(record)

    def _run_full(self) -> bool:
        """
        Walk listing pages 1..total. Returns True when stopped by the skip limit.
        Page 1 always runs (newest items, page count); with page progress a
        same-day rerun then jumps to the last page finished earlier.
        """
        resume_from = self.progress.last_page() if self.progress is not None else 0
        page = 1
        total_pages = 1
        while page <= total_pages:
            try:
                listing = self._fetch(self.source.fetch_listing, page, f"listing page {page}")
            except SourceFetchError as e:
                logger.warning("Listing page %d failed: %s", page, e)
                self.stats.failed += 1
                if page == 1:
                    # Page count unknown without the first page.
                    return False
                page += 1
                continue
            self.stats.pages += 1
            total_pages = listing.total_pages
            if self._crawl_page(listing.items):
                logger.info(
                    "Auto-stop: %d continuous skips reached on page %d",
                    self.skips.current,
                    page,
                )
                return True
            if self.progress is not None and page >= resume_from:
                self.progress.mark(page)
            if page == 1 and resume_from > 1:
                logger.info("Resuming at listing page %d (finished earlier today)", resume_from)
                page = resume_from
            else:
                page += 1
        return False

    def _crawl_page(self, items: list[ListingItem]) -> bool:
        """
        Fetch the page's stale items concurrently, then account for every item in
        listing order on this thread. True when the skip limit trips.
        """
        current = [self._is_current(item.slug, item.modified_at) for item in items]
        if all(current):
            return any(self._skip(item.slug) for item in items)

        with ThreadPoolExecutor(
            max_workers=self.policy.max_concurrent_requests,
            thread_name_prefix="crawl",
        ) as pool:
            futures: list[Future | None] = [
                None
                if is_current
                else pool.submit(
                    self._fetch,
                    self.source.fetch_detail,
                    item.slug,
                    f"movie {item.slug}",
                    retries=0,
                )
                for item, is_current in zip(items, current)
            ]
            try:
                for item, future in zip(items, futures):
                    if future is None:
                        tripped = self._skip(item.slug)
                    else:
                        tripped = self._handle_result(item, future)
                    if tripped:
                        return True
            finally:
                for future in futures:
                    if future is not None:
                        future.cancel()
        return False

    def _handle_result(self, item: ListingItem, future: Future) -> bool:
        try:
            record: MovieRecord = future.result()
        except SourceFetchError as e:
            self._fail(item, e)
            return False
        return self._store(item, record)

    def _retry_deferred(self) -> None:
        """
        Up to max_retries passes over the deferred movies, backing off before each
        pass. Every movie thus gets at most 1 + max_retries detail attempts.
        Whatever is still deferred afterwards counts as failed.
        """
        for attempt in range(self.policy.max_retries):
            if not self._deferred:
                break
            delay = backoff_delay(attempt, rng=self._rng)
            logger.info(
                "Retry pass %d/%d over %d movies in %.1fs",
                attempt + 1,
                self.policy.max_retries,
                len(self._deferred),
                delay,
            )
            self._sleep(delay)
            for slug, item in list(self._deferred.items()):
                try:
                    record = self._fetch(self.source.fetch_detail, slug, f"movie {slug}", retries=0)
                except SourceFetchError as e:
                    if not e.transient:
                        del self._deferred[slug]
                        logger.warning("Movie %s failed: %s", slug, e)
                        self.stats.failed += 1
                    continue
                del self._deferred[slug]
                self._store(item, record)
        if self._deferred:
            logger.warning(
                "%d movies still failing after %d retry passes: %s",
                len(self._deferred),
                self.policy.max_retries,
                list(self._deferred)[:20],
            )
            self.stats.failed += len(self._deferred)
            self._deferred.clear()
