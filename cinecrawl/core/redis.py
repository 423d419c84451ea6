"""
Redis clients and keys. Per-crawler trigger lock (with a worker-side heartbeat),
auto-stop marks and same-day page progress. Pool size set explicitly.
"""

import logging
import threading
import time
import uuid
from datetime import UTC, datetime
from typing import Any

import redis
import redis.asyncio as aioredis

from cinecrawl.core.config import settings

logger = logging.getLogger(__name__)

# Per-crawler trigger lock. Blocks a second dispatch while a run is queued or running.
# Released early by the worker when the run ends. A hard-killed worker leaves it to expire by TTL.
TRIGGER_LOCK_KEY_PREFIX = "cinecrawl:trigger_lock:"
# Set when a run aborts on max continuous skips. Value = unix time of the abort.
AUTO_STOP_KEY_PREFIX = "cinecrawl:auto_stopped:"
AUTO_STOP_MARK_TTL_SECONDS = 48 * 3600
# Last listing page a full crawl finished, per crawler and UTC day.
CRAWLED_PAGES_KEY_PREFIX = "cinecrawl:crawled_pages:"
PAGE_PROGRESS_TTL_SECONDS = 24 * 3600

# Lua: delete only when the value is the caller's token. 1=deleted, 0=not owner/no key.
LUA_RELEASE_IF_OWNER = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""

# Lua: re-arm the TTL (ms) only when the value is the caller's token. 1=extended.
LUA_EXTEND_IF_OWNER = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('pexpire', KEYS[1], ARGV[2])
else
    return 0
end
"""


class RedisLockUnavailableError(Exception):
    """Lock acquire/release impossible due to Redis errors. Trigger service turns it into 503."""

    pass


def _redis_pool_kwargs() -> dict:
    """Common ConnectionPool options. Timeouts and decoding."""
    return {
        "decode_responses": True,
        "socket_timeout": settings.redis_socket_timeout,
        "socket_connect_timeout": settings.redis_socket_connect_timeout,
    }


def trigger_lock_key(crawler_name: str) -> str:
    return f"{TRIGGER_LOCK_KEY_PREFIX}{crawler_name}"


def auto_stop_key(crawler_name: str) -> str:
    return f"{AUTO_STOP_KEY_PREFIX}{crawler_name}"


def crawled_pages_key(crawler_name: str, day: str) -> str:
    return f"{CRAWLED_PAGES_KEY_PREFIX}{crawler_name}:{day}"


def create_trigger_lock_client() -> Any:
    """
    Async Redis client for trigger locks. None when REDIS_URL is unset (lock disabled).
    Created once in the lifespan and kept on app.state.
    """
    if not settings.redis_url:
        return None
    pool = aioredis.ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_trigger_lock_max_connections,
        **_redis_pool_kwargs(),
    )
    return aioredis.Redis(connection_pool=pool)


def create_sync_client() -> Any:
    """Sync Redis client for Celery workers. None when REDIS_URL is unset."""
    if not settings.redis_url:
        return None
    return redis.Redis.from_url(settings.redis_url, **_redis_pool_kwargs())


async def acquire_trigger_lock(client: Any, crawler_name: str) -> tuple[bool, str | None]:
    """
    Take the per-crawler trigger lock. SET key <uuid> NX EX.
    (True, token) on success, (False, None) when already held.
    RedisLockUnavailableError on Redis errors.
    client None -> lock disabled, returns (True, None).
    """
    if client is None:
        return (True, None)
    token = uuid.uuid4().hex
    try:
        ok = await client.set(
            trigger_lock_key(crawler_name),
            token,
            nx=True,
            ex=settings.crawl_trigger_lock_ttl_seconds,
        )
        return (bool(ok), token if ok else None)
    except Exception as e:
        logger.warning(
            "Trigger lock acquire failed (crawler=%s): %s", crawler_name, e, exc_info=True
        )
        raise RedisLockUnavailableError("Redis unavailable") from e


async def release_trigger_lock(client: Any, crawler_name: str, token: str | None) -> bool:
    """
    Release the lock (owner only). Lua compare-and-del.
    True=deleted, False=not owner or already gone.
    """
    if client is None or not token:
        return False
    try:
        n = await client.eval(LUA_RELEASE_IF_OWNER, 1, trigger_lock_key(crawler_name), token)
        return n == 1
    except Exception as e:
        logger.warning(
            "Trigger lock release failed (crawler=%s): %s", crawler_name, e, exc_info=True
        )
        return False


def acquire_trigger_lock_sync(client: Any, crawler_name: str) -> tuple[bool, str | None]:
    """Sync counterpart of acquire_trigger_lock for the beat dispatcher."""
    if client is None:
        return (True, None)
    token = uuid.uuid4().hex
    try:
        ok = client.set(
            trigger_lock_key(crawler_name),
            token,
            nx=True,
            ex=settings.crawl_trigger_lock_ttl_seconds,
        )
        return (bool(ok), token if ok else None)
    except Exception as e:
        logger.warning(
            "Trigger lock acquire failed (crawler=%s): %s", crawler_name, e, exc_info=True
        )
        raise RedisLockUnavailableError("Redis unavailable") from e


def release_trigger_lock_sync(crawler_name: str, lock_token: str | None, client: Any = None) -> None:
    """
    Release the per-crawler lock (owner only). Called when a worker run ends or fails.
    lock_token None -> no-op. Opens a short-lived sync client unless one is passed.
    """
    if not lock_token:
        return
    own_client = client is None
    if own_client:
        client = create_sync_client()
    if client is None:
        return
    try:
        client.eval(LUA_RELEASE_IF_OWNER, 1, trigger_lock_key(crawler_name), lock_token)
    except Exception as e:
        logger.warning(
            "Trigger lock release failed (crawler=%s): %s", crawler_name, e, exc_info=True
        )
    finally:
        if own_client:
            client.close()


def set_auto_stop_mark_sync(client: Any, crawler_name: str, now: float | None = None) -> None:
    """Record an auto-stop (run aborted on continuous skips). Read by the scheduler."""
    if client is None:
        return
    stamp = now if now is not None else time.time()
    try:
        client.set(auto_stop_key(crawler_name), str(stamp), ex=AUTO_STOP_MARK_TTL_SECONDS)
    except Exception as e:
        logger.warning(
            "Auto-stop mark failed (crawler=%s): %s", crawler_name, e, exc_info=True
        )


def in_auto_stop_cooldown_sync(
    client: Any, crawler_name: str, cooldown_hours: float, now: float | None = None
) -> bool:
    """
    True while the crawler's last auto-stop is younger than cooldown_hours.
    RedisLockUnavailableError when the mark cannot be read.
    """
    if client is None or cooldown_hours <= 0:
        return False
    try:
        raw = client.get(auto_stop_key(crawler_name))
    except redis.RedisError as e:
        logger.warning(
            "Auto-stop mark read failed (crawler=%s): %s", crawler_name, e, exc_info=True
        )
        raise RedisLockUnavailableError("Redis unavailable") from e
    if raw is None:
        return False
    try:
        stopped_at = float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed auto-stop mark for %s: %r", crawler_name, raw)
        return False
    current = now if now is not None else time.time()
    return current - stopped_at < cooldown_hours * 3600


def extend_trigger_lock_sync(
    client: Any, crawler_name: str, lock_token: str, ttl_seconds: float
) -> bool:
    """
    Push the lock expiry to now + ttl_seconds when lock_token still owns it.
    False when the key is gone or held by another token. RedisLockUnavailableError on Redis errors.
    """
    try:
        n = client.eval(
            LUA_EXTEND_IF_OWNER,
            1,
            trigger_lock_key(crawler_name),
            lock_token,
            int(ttl_seconds * 1000),
        )
    except redis.RedisError as e:
        logger.warning(
            "Trigger lock extend failed (crawler=%s): %s", crawler_name, e, exc_info=True
        )
        raise RedisLockUnavailableError("Redis unavailable") from e
    return n == 1


class TriggerLockHeartbeat:
    """
    Keeps a held trigger lock alive while a run is in progress.
    A background thread re-arms the TTL every ttl/3 seconds. Stops on its own once
    the token no longer owns the key. Use as `with TriggerLockHeartbeat(...):`.
    """

    def __init__(
        self,
        client: Any,
        crawler_name: str,
        lock_token: str | None,
        *,
        ttl_seconds: float | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        self.client = client
        self.crawler_name = crawler_name
        self.lock_token = lock_token
        self.ttl_seconds = ttl_seconds or settings.crawl_trigger_lock_ttl_seconds
        self.interval_seconds = interval_seconds or self.ttl_seconds / 3
        self.beats = 0
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self.client is None or not self.lock_token:
            return
        self._thread = threading.Thread(
            target=self._run,
            name=f"lock-heartbeat-{self.crawler_name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval_seconds + 1)
            self._thread = None

    def _run(self) -> None:
        while not self._stopped.wait(self.interval_seconds):
            try:
                owned = extend_trigger_lock_sync(
                    self.client, self.crawler_name, self.lock_token, self.ttl_seconds
                )
            except RedisLockUnavailableError:
                continue
            if not owned:
                logger.warning("Trigger lock for %s lost; heartbeat stopped", self.crawler_name)
                return
            self.beats += 1

    def __enter__(self) -> "TriggerLockHeartbeat":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()


class RedisPageProgress:
    """
    Last listing page a full crawl finished today, per crawler. A same-day rerun
    resumes from there. Read errors count as no progress.
    """

    def __init__(self, client: Any, crawler_name: str, day: str | None = None) -> None:
        self.client = client
        self.key = crawled_pages_key(crawler_name, day or datetime.now(UTC).strftime("%Y-%m-%d"))

    def last_page(self) -> int:
        try:
            raw = self.client.get(self.key)
        except redis.RedisError as e:
            logger.warning("Page progress read failed (%s): %s", self.key, e)
            return 0
        try:
            return int(raw or 0)
        except (TypeError, ValueError):
            return 0

    def mark(self, page: int) -> None:
        try:
            self.client.set(self.key, page, ex=PAGE_PROGRESS_TTL_SECONDS)
        except redis.RedisError as e:
            logger.warning("Page progress write failed (%s): %s", self.key, e)
