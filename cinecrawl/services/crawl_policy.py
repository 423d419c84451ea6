"""
Rate/retry policy for one crawl run, built from the settings snapshot.
RequestThrottle caps in-flight fetches and spaces request starts.
SkipCounter tracks consecutive up-to-date items for the early exit.
"""

import logging
import random
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 60.0
BACKOFF_JITTER_SECONDS = 1.0


@dataclass(frozen=True)
class CrawlPolicy:
    rate_limit_delay_ms: int
    max_concurrent_requests: int
    max_retries: int
    max_continuous_skips: int
    force_update: bool
    img_host: str | None = None

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any]) -> "CrawlPolicy":
        return cls(
            rate_limit_delay_ms=int(snapshot["rate_limit_delay"]),
            max_concurrent_requests=max(1, int(snapshot["max_concurrent_requests"])),
            max_retries=int(snapshot["max_retries"]),
            max_continuous_skips=int(snapshot["max_continuous_skips"]),
            force_update=bool(snapshot["force_update"]),
            img_host=snapshot.get("img_host"),
        )


def backoff_delay(attempt: int, *, rng: Callable[[], float] = random.random) -> float:
    """Seconds to wait before retry `attempt` (0-based): min(60, 1*2^attempt) + jitter in [0, 1)."""
    base = min(BACKOFF_MAX_SECONDS, BACKOFF_BASE_SECONDS * (2 ** max(0, attempt)))
    return base + rng() * BACKOFF_JITTER_SECONDS


class RequestThrottle:
    """
    At most max_concurrent slots held at once; consecutive acquires start
    at least delay_seconds apart. Thread-safe. Use as `with throttle.slot():`.
    """

    def __init__(
        self,
        max_concurrent: int,
        delay_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._start_lock = threading.Lock()
        self._delay = max(0.0, delay_seconds)
        self._clock = clock
        self._sleep = sleep
        self._last_start: float | None = None

    def _wait_turn(self) -> None:
        with self._start_lock:
            if self._last_start is not None and self._delay > 0:
                wait = self._last_start + self._delay - self._clock()
                if wait > 0:
                    self._sleep(wait)
            self._last_start = self._clock()

    @contextmanager
    def slot(self) -> Iterator[None]:
        self._slots.acquire()
        try:
            self._wait_turn()
            yield
        finally:
            self._slots.release()


class SkipCounter:
    """Consecutive up-to-date items. Any written item resets it. Limit 0 never trips."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.current = 0
        self.total = 0

    def skip(self) -> bool:
        """Count one skip. True when the limit is reached."""
        self.current += 1
        self.total += 1
        return self.tripped

    def reset(self) -> None:
        self.current = 0

    @property
    def tripped(self) -> bool:
        return self.limit > 0 and self.current >= self.limit
