"""Trigger lock, heartbeat, auto-stop marks and page progress against fakeredis."""

import itertools
import time
from unittest.mock import MagicMock

import pytest
import redis

from cinecrawl.core.redis import (
    RedisLockUnavailableError,
    RedisPageProgress,
    TriggerLockHeartbeat,
    acquire_trigger_lock_sync,
    auto_stop_key,
    extend_trigger_lock_sync,
    in_auto_stop_cooldown_sync,
    release_trigger_lock_sync,
    set_auto_stop_mark_sync,
    trigger_lock_key,
)


def test_lock_is_exclusive_until_released(redis_client) -> None:
    acquired, token = acquire_trigger_lock_sync(redis_client, "ophim")
    assert acquired is True
    assert token

    assert acquire_trigger_lock_sync(redis_client, "ophim") == (False, None)
    assert acquire_trigger_lock_sync(redis_client, "nguonc")[0] is True

    release_trigger_lock_sync("ophim", token, redis_client)
    assert acquire_trigger_lock_sync(redis_client, "ophim")[0] is True


def test_release_with_foreign_token_keeps_lock(redis_client) -> None:
    _, token = acquire_trigger_lock_sync(redis_client, "ophim")
    release_trigger_lock_sync("ophim", "someone-else", redis_client)
    assert redis_client.get(trigger_lock_key("ophim")) == token


def test_extend_only_by_owner(redis_client) -> None:
    redis_client.set(trigger_lock_key("ophim"), "mine", px=500)

    assert extend_trigger_lock_sync(redis_client, "ophim", "theirs", 60) is False
    assert redis_client.pttl(trigger_lock_key("ophim")) <= 500

    assert extend_trigger_lock_sync(redis_client, "ophim", "mine", 60) is True
    assert redis_client.pttl(trigger_lock_key("ophim")) > 50_000


def test_extend_missing_key(redis_client) -> None:
    assert extend_trigger_lock_sync(redis_client, "ophim", "mine", 60) is False


def test_heartbeat_keeps_lock_past_its_ttl(redis_client) -> None:
    redis_client.set(trigger_lock_key("ophim"), "run-1", px=1000)

    with TriggerLockHeartbeat(
        redis_client, "ophim", "run-1", ttl_seconds=1, interval_seconds=0.2
    ) as heartbeat:
        time.sleep(1.4)
        assert acquire_trigger_lock_sync(redis_client, "ophim") == (False, None)

    assert heartbeat.beats >= 3
    assert redis_client.get(trigger_lock_key("ophim")) == "run-1"


def test_heartbeat_stops_once_lock_is_lost(redis_client) -> None:
    redis_client.set(trigger_lock_key("ophim"), "run-1", px=5000)
    heartbeat = TriggerLockHeartbeat(
        redis_client, "ophim", "run-1", ttl_seconds=5, interval_seconds=0.05
    )
    heartbeat.start()
    try:
        redis_client.set(trigger_lock_key("ophim"), "run-2")
        time.sleep(0.3)
        assert heartbeat._thread is not None
        assert not heartbeat._thread.is_alive()
    finally:
        heartbeat.stop()
    assert redis_client.get(trigger_lock_key("ophim")) == "run-2"


def test_heartbeat_without_token_is_noop(redis_client) -> None:
    heartbeat = TriggerLockHeartbeat(redis_client, "ophim", None, ttl_seconds=1)
    heartbeat.start()
    assert heartbeat._thread is None
    heartbeat.stop()


def test_heartbeat_survives_redis_errors() -> None:
    client = MagicMock()
    client.eval.side_effect = itertools.chain([redis.ConnectionError("down")], itertools.repeat(1))
    with TriggerLockHeartbeat(
        client, "ophim", "run-1", ttl_seconds=1, interval_seconds=0.05
    ) as heartbeat:
        time.sleep(0.3)
    assert heartbeat.beats >= 1


def test_auto_stop_cooldown(redis_client) -> None:
    set_auto_stop_mark_sync(redis_client, "ophim", now=1_000_000.0)

    assert in_auto_stop_cooldown_sync(redis_client, "ophim", 6, now=1_000_000.0 + 3600) is True
    assert in_auto_stop_cooldown_sync(redis_client, "ophim", 6, now=1_000_000.0 + 7 * 3600) is False
    assert in_auto_stop_cooldown_sync(redis_client, "ophim", 0, now=1_000_000.0) is False
    assert in_auto_stop_cooldown_sync(redis_client, "nguonc", 6) is False


def test_malformed_auto_stop_mark_is_ignored(redis_client) -> None:
    redis_client.set(auto_stop_key("ophim"), "yesterday")
    assert in_auto_stop_cooldown_sync(redis_client, "ophim", 6) is False


def test_auto_stop_read_error_raises() -> None:
    client = MagicMock()
    client.get.side_effect = redis.ConnectionError("down")
    with pytest.raises(RedisLockUnavailableError):
        in_auto_stop_cooldown_sync(client, "ophim", 6)


def test_page_progress_per_day(redis_client) -> None:
    today = RedisPageProgress(redis_client, "ophim", day="2026-10-19")
    assert today.last_page() == 0

    today.mark(7)
    assert today.last_page() == 7
    assert today.key == "cinecrawl:crawled_pages:ophim:2026-10-19"
    assert 0 < redis_client.ttl(today.key) <= 24 * 3600

    assert RedisPageProgress(redis_client, "ophim", day="2026-10-20").last_page() == 0


def test_page_progress_read_errors_mean_no_progress(redis_client) -> None:
    progress = RedisPageProgress(redis_client, "ophim", day="2026-10-19")
    redis_client.set(progress.key, "garbage")
    assert progress.last_page() == 0

    broken = MagicMock()
    broken.get.side_effect = redis.ConnectionError("down")
    assert RedisPageProgress(broken, "ophim").last_page() == 0
