"""
Source adapter registry. Crawler name -> adapter class.
Name is matched case-insensitively with an optional "crawler" suffix dropped
(OPhimCrawler, ophim, OPHIM all resolve to ophim).
Adapter modules are imported lazily (avoids import cycles with services).
"""

import importlib

from cinecrawl.core.config import settings

# source key -> (module under cinecrawl.services.sources, class name)
SOURCE_REGISTRY: dict[str, tuple[str, str]] = {
    "ophim": ("ophim", "OPhimSource"),
    "kkphim": ("ophim", "KKPhimSource"),
    "nguonc": ("nguonc", "NguonCSource"),
}

_CRAWLER_SUFFIX = "crawler"


class UnknownSourceError(LookupError):
    """No adapter registered for a crawler name. Fails the run, not the trigger."""

    pass


def source_key(crawler_name: str) -> str:
    key = crawler_name.strip().lower().replace("-", "").replace("_", "")
    if key.endswith(_CRAWLER_SUFFIX) and len(key) > len(_CRAWLER_SUFFIX):
        key = key[: -len(_CRAWLER_SUFFIX)]
    return key


def get_source(crawler_name: str, host: str, img_host: str | None = None):
    """Instantiate the adapter for crawler_name. UnknownSourceError if none."""
    key = source_key(crawler_name)
    entry = SOURCE_REGISTRY.get(key)
    if not entry:
        raise UnknownSourceError(
            f"No source adapter for crawler {crawler_name!r}. Known: {sorted(SOURCE_REGISTRY)}"
        )
    module_name, class_name = entry
    mod = importlib.import_module(f"cinecrawl.services.sources.{module_name}")
    source_cls = getattr(mod, class_name)
    return source_cls(host, img_host, timeout=settings.crawl_request_timeout_seconds)
