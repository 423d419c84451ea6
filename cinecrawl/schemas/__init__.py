# Pydantic schemas
from cinecrawl.schemas.crawl_run import CrawlRunList, CrawlRunResponse
from cinecrawl.schemas.crawler_settings import (
    CrawlerSettingsCreate,
    CrawlerSettingsCreated,
    CrawlerSettingsList,
    CrawlerSettingsListQuery,
    CrawlerSettingsResponse,
    CrawlerSettingsUpdate,
    TriggerCrawlerInput,
)

__all__ = [
    "CrawlRunList",
    "CrawlRunResponse",
    "CrawlerSettingsCreate",
    "CrawlerSettingsCreated",
    "CrawlerSettingsList",
    "CrawlerSettingsListQuery",
    "CrawlerSettingsResponse",
    "CrawlerSettingsUpdate",
    "TriggerCrawlerInput",
]
