"""
CrawlerSettings service. Validates, normalizes and persists crawler configuration.
Every write runs inside transaction(); domain errors propagate to the caller unchanged.
"""

import logging
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import IntegrityError

from cinecrawl.core.database import transaction
from cinecrawl.core.errors import ConflictError, NotFoundError, ValidationError
from cinecrawl.repositories import crawler_settings_repository as repo
from cinecrawl.schemas.crawler_settings import (
    CrawlerSettingsCreate,
    CrawlerSettingsList,
    CrawlerSettingsListQuery,
    CrawlerSettingsResponse,
    CrawlerSettingsUpdate,
)

logger = logging.getLogger(__name__)


def _wire_field(loc: tuple) -> str:
    """Error location -> camelCase field name as sent on the wire."""
    parts = [to_camel(p) if isinstance(p, str) and "_" in p else str(p) for p in loc]
    return ".".join(parts)


def to_validation_error(exc: PydanticValidationError, message: str) -> ValidationError:
    """Pydantic errors -> domain ValidationError with one {field, message} per problem."""
    errors = [
        {"field": _wire_field(tuple(err.get("loc") or ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return ValidationError(message, errors)


def parse_input(model: type[BaseModel], data: Any, message: str) -> Any:
    if isinstance(data, model):
        return data
    if not isinstance(data, dict):
        raise ValidationError(message, [{"field": "", "message": "Input must be an object"}])
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise to_validation_error(e, message) from e


async def create_crawler_settings(data: dict[str, Any] | CrawlerSettingsCreate) -> CrawlerSettingsResponse:
    """
    createCrawlerSettings. Defaults applied, URLs normalized, cron checked.
    ValidationError on bad input, ConflictError on duplicate name.
    """
    payload: CrawlerSettingsCreate = parse_input(
        CrawlerSettingsCreate, data, "Invalid crawler settings"
    )
    async with transaction() as session:
        if await repo.get_by_name(session, payload.name) is not None:
            raise ConflictError(f"Crawler settings with name {payload.name!r} already exists")
        try:
            row = await repo.create(session, payload.model_dump())
        except IntegrityError as e:
            raise ConflictError(
                f"Crawler settings with name {payload.name!r} already exists"
            ) from e
        logger.info("Crawler settings created: id=%s name=%s", row.id, row.name)
        return CrawlerSettingsResponse.model_validate(row)


async def update_crawler_settings(
    settings_id: str, data: dict[str, Any] | CrawlerSettingsUpdate
) -> CrawlerSettingsResponse:
    """updateCrawlerSettings. Applies provided fields only; name is immutable and ignored."""
    payload: CrawlerSettingsUpdate = parse_input(
        CrawlerSettingsUpdate, data, "Invalid crawler settings update"
    )
    changes = payload.model_dump(include=payload.model_fields_set)
    async with transaction() as session:
        row = await repo.get_by_id(session, settings_id)
        if row is None:
            raise NotFoundError(f"Crawler settings {settings_id} not found")
        row = await repo.update(session, row, changes)
        logger.info(
            "Crawler settings updated: id=%s name=%s fields=%s",
            row.id,
            row.name,
            sorted(changes),
        )
        return CrawlerSettingsResponse.model_validate(row)


async def delete_crawler_settings(settings_id: str) -> bool:
    """Hard delete. Runs already dispatched keep going on their snapshot."""
    async with transaction() as session:
        row = await repo.get_by_id(session, settings_id)
        if row is None:
            raise NotFoundError(f"Crawler settings {settings_id} not found")
        await repo.delete(session, row)
        logger.info("Crawler settings deleted: id=%s name=%s", settings_id, row.name)
    return True


async def get_crawler_settings(
    *, settings_id: str | None = None, name: str | None = None
) -> CrawlerSettingsResponse:
    """Lookup by id or by name. Neither given -> ValidationError."""
    if not settings_id and not name:
        raise ValidationError(
            "Either id or name is required",
            [{"field": "id", "message": "Either id or name is required"}],
        )
    async with transaction() as session:
        if settings_id:
            row = await repo.get_by_id(session, settings_id)
        else:
            row = await repo.get_by_name(session, name)
        if row is None:
            raise NotFoundError(f"Crawler settings {settings_id or name} not found")
        return CrawlerSettingsResponse.model_validate(row)


async def list_crawler_settings(
    query: dict[str, Any] | CrawlerSettingsListQuery | None = None,
) -> CrawlerSettingsList:
    """Paginated list, newest update first."""
    q: CrawlerSettingsListQuery = parse_input(
        CrawlerSettingsListQuery, query or {}, "Invalid list parameters"
    )
    async with transaction() as session:
        rows, total = await repo.list_settings(
            session, page=q.page, limit=q.limit, name=q.name, search=q.search
        )
        return CrawlerSettingsList(
            data=[CrawlerSettingsResponse.model_validate(r) for r in rows],
            total=total,
        )
