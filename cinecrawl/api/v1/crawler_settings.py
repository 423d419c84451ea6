"""
Crawler settings admin API. Bodies are validated by the service so errors carry
field-level details ({detail, code, errors: [{field, message}]}).
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query

from cinecrawl.core.deps import require_admin_secret
from cinecrawl.schemas.crawler_settings import (
    CrawlerSettingsCreated,
    CrawlerSettingsList,
    CrawlerSettingsResponse,
)
from cinecrawl.services import crawler_settings_service as service

router = APIRouter(
    prefix="/crawler-settings",
    tags=["crawler-settings"],
    dependencies=[Depends(require_admin_secret)],
)


@router.post("", status_code=201, response_model=CrawlerSettingsCreated)
async def create_crawler_settings(payload: dict[str, Any] = Body(...)) -> CrawlerSettingsCreated:
    row = await service.create_crawler_settings(payload)
    return CrawlerSettingsCreated(id=row.id)


@router.patch("/{settings_id}", response_model=CrawlerSettingsCreated)
async def update_crawler_settings(
    settings_id: str, payload: dict[str, Any] = Body(...)
) -> CrawlerSettingsCreated:
    row = await service.update_crawler_settings(settings_id, payload)
    return CrawlerSettingsCreated(id=row.id)


@router.delete("/{settings_id}")
async def delete_crawler_settings(settings_id: str) -> bool:
    return await service.delete_crawler_settings(settings_id)


@router.get("", response_model=CrawlerSettingsList)
async def list_crawler_settings(
    page: int = Query(1),
    limit: int = Query(20),
    name: str | None = Query(None),
    search: str | None = Query(None),
) -> CrawlerSettingsList:
    """Newest update first. limit capped at 100."""
    return await service.list_crawler_settings(
        {"page": page, "limit": limit, "name": name, "search": search}
    )


@router.get("/by-name/{name}", response_model=CrawlerSettingsResponse)
async def get_crawler_settings_by_name(name: str) -> CrawlerSettingsResponse:
    return await service.get_crawler_settings(name=name)


@router.get("/{settings_id}", response_model=CrawlerSettingsResponse)
async def get_crawler_settings(settings_id: str) -> CrawlerSettingsResponse:
    return await service.get_crawler_settings(settings_id=settings_id)
