# ORM models
from cinecrawl.models.base import Base
from cinecrawl.models.crawl_run import CrawlRun
from cinecrawl.models.crawler_settings import CrawlerSettings
from cinecrawl.models.movie import Movie

__all__ = [
    "Base",
    "CrawlRun",
    "CrawlerSettings",
    "Movie",
]
