"""CrawlerSettings service tests. SQLite in memory via the db fixture."""

import asyncio

import pytest

from cinecrawl.core.errors import ConflictError, NotFoundError, ValidationError
from cinecrawl.services.crawler_settings_service import (
    create_crawler_settings,
    delete_crawler_settings,
    get_crawler_settings,
    list_crawler_settings,
    update_crawler_settings,
)


def _payload(**overrides):
    data = {"name": "ophim", "host": "https://ophim1.com"}
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_create_applies_defaults(db) -> None:
    row = await create_crawler_settings(_payload())
    assert row.id
    assert row.cron_schedule == "0 0 * * *"
    assert row.enabled is True
    assert row.force_update is False
    assert row.max_retries == 3
    assert row.rate_limit_delay == 1000
    assert row.max_concurrent_requests == 5
    assert row.max_continuous_skips == 10
    assert row.img_host is None


@pytest.mark.asyncio
async def test_create_then_get_round_trips_fields(db) -> None:
    created = await create_crawler_settings(
        _payload(
            imgHost="https://img.ophim.live/uploads/movies",
            cronSchedule="*/30 * * * *",
            forceUpdate=True,
            maxRetries=5,
            rateLimitDelay=250,
            maxConcurrentRequests=2,
            maxContinuousSkips=0,
        )
    )
    fetched = await get_crawler_settings(settings_id=created.id)
    assert fetched.name == "ophim"
    assert fetched.img_host == "https://img.ophim.live/uploads/movies"
    assert fetched.cron_schedule == "*/30 * * * *"
    assert fetched.force_update is True
    assert fetched.max_retries == 5
    assert fetched.rate_limit_delay == 250
    assert fetched.max_concurrent_requests == 2
    assert fetched.max_continuous_skips == 0


@pytest.mark.asyncio
async def test_create_accepts_snake_case_input(db) -> None:
    row = await create_crawler_settings(_payload(cron_schedule="0 3 * * *", max_retries=1))
    assert row.cron_schedule == "0 3 * * *"
    assert row.max_retries == 1


@pytest.mark.asyncio
async def test_create_prepends_https_when_scheme_missing(db) -> None:
    row = await create_crawler_settings(_payload(host="ophim1.com", imgHost="img.ophim.live"))
    assert row.host == "https://ophim1.com"
    assert row.img_host == "https://img.ophim.live"


@pytest.mark.asyncio
async def test_create_duplicate_name_conflicts(db) -> None:
    await create_crawler_settings(_payload())
    with pytest.raises(ConflictError):
        await create_crawler_settings(_payload(host="https://other.example.com"))
    page = await list_crawler_settings()
    assert page.total == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"cronSchedule": "not a cron"}, "cronSchedule"),
        ({"cronSchedule": "61 * * * *"}, "cronSchedule"),
        ({"maxRetries": -1}, "maxRetries"),
        ({"rateLimitDelay": -5}, "rateLimitDelay"),
        ({"maxConcurrentRequests": 0}, "maxConcurrentRequests"),
        ({"maxContinuousSkips": -1}, "maxContinuousSkips"),
        ({"host": "http://"}, "host"),
        ({"name": "   "}, "name"),
    ],
)
async def test_create_rejects_invalid_field(db, overrides, field) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await create_crawler_settings(_payload(**overrides))
    assert field in exc_info.value.fields
    page = await list_crawler_settings()
    assert page.total == 0


@pytest.mark.asyncio
async def test_create_requires_name_and_host(db) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await create_crawler_settings({})
    assert {"name", "host"} <= set(exc_info.value.fields)


@pytest.mark.asyncio
async def test_update_changes_only_provided_fields_and_keeps_name(db) -> None:
    created = await create_crawler_settings(_payload(maxRetries=3))
    updated = await update_crawler_settings(
        created.id, {"name": "renamed", "maxRetries": 7, "enabled": False}
    )
    assert updated.name == "ophim"
    assert updated.max_retries == 7
    assert updated.enabled is False
    assert updated.host == "https://ophim1.com"
    assert updated.updated_at >= created.updated_at


@pytest.mark.asyncio
async def test_update_revalidates_touched_fields(db) -> None:
    created = await create_crawler_settings(_payload())
    with pytest.raises(ValidationError) as exc_info:
        await update_crawler_settings(created.id, {"cronSchedule": "every day"})
    assert exc_info.value.fields == ["cronSchedule"]
    with pytest.raises(ValidationError):
        await update_crawler_settings(created.id, {"host": None})
    unchanged = await get_crawler_settings(settings_id=created.id)
    assert unchanged.cron_schedule == "0 0 * * *"


@pytest.mark.asyncio
async def test_update_unknown_id_not_found(db) -> None:
    with pytest.raises(NotFoundError):
        await update_crawler_settings("missing", {"enabled": False})


@pytest.mark.asyncio
async def test_delete_then_get_not_found(db) -> None:
    created = await create_crawler_settings(_payload())
    assert await delete_crawler_settings(created.id) is True
    with pytest.raises(NotFoundError):
        await get_crawler_settings(settings_id=created.id)
    with pytest.raises(NotFoundError):
        await delete_crawler_settings(created.id)


@pytest.mark.asyncio
async def test_get_by_name_and_requires_a_key(db) -> None:
    created = await create_crawler_settings(_payload(name="kkphim"))
    by_name = await get_crawler_settings(name="kkphim")
    assert by_name.id == created.id
    with pytest.raises(NotFoundError):
        await get_crawler_settings(name="nguonc")
    with pytest.raises(ValidationError):
        await get_crawler_settings()


@pytest.mark.asyncio
async def test_list_orders_by_most_recent_update(db) -> None:
    a = await create_crawler_settings(_payload(name="a"))
    await asyncio.sleep(0.01)
    await create_crawler_settings(_payload(name="b"))
    await asyncio.sleep(0.01)
    await create_crawler_settings(_payload(name="c"))
    await asyncio.sleep(0.01)
    await update_crawler_settings(a.id, {"maxRetries": 4})

    page = await list_crawler_settings({"page": 1, "limit": 10})
    assert page.total == 3
    assert [r.name for r in page.data] == ["a", "c", "b"]


@pytest.mark.asyncio
async def test_list_paginates_and_filters(db) -> None:
    for name in ("ophim", "kkphim", "nguonc"):
        await create_crawler_settings(_payload(name=name))
        await asyncio.sleep(0.01)

    first = await list_crawler_settings({"page": 1, "limit": 2})
    second = await list_crawler_settings({"page": 2, "limit": 2})
    assert first.total == second.total == 3
    assert len(first.data) == 2
    assert len(second.data) == 1

    searched = await list_crawler_settings({"search": "PHIM"})
    assert sorted(r.name for r in searched.data) == ["kkphim", "ophim"]
    exact = await list_crawler_settings({"name": "nguonc"})
    assert [r.name for r in exact.data] == ["nguonc"]


@pytest.mark.asyncio
async def test_list_rejects_out_of_range_limit(db) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await list_crawler_settings({"limit": 101})
    assert exc_info.value.fields == ["limit"]


@pytest.mark.asyncio
async def test_search_ignores_accents_and_case(db) -> None:
    await create_crawler_settings(_payload(name="Phim Hay Nhất"))
    await create_crawler_settings(_payload(name="Đỉnh Cao"))
    await create_crawler_settings(_payload(name="nguonc"))

    for term in ("nhat", "NHẤT", "hay nh"):
        found = await list_crawler_settings({"search": term})
        assert [r.name for r in found.data] == ["Phim Hay Nhất"], term
    found = await list_crawler_settings({"search": "dinh"})
    assert [r.name for r in found.data] == ["Đỉnh Cao"]


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(db) -> None:
    await create_crawler_settings(_payload(name="ophim"))
    await create_crawler_settings(_payload(name="100% phim"))

    found = await list_crawler_settings({"search": "%"})
    assert [r.name for r in found.data] == ["100% phim"]
