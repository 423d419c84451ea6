"""NguonC adapter. Year comes from the category group named 'Năm'."""

from typing import Any

from cinecrawl.services.sources.base import (
    ListingItem,
    ListingPage,
    MovieRecord,
    MovieSource,
    parse_modified,
    parse_year,
    resolve_url,
    strip_html,
)

YEAR_GROUP_NAME = "Năm"


def _year_from_categories(category: Any) -> int | None:
    groups = category.values() if isinstance(category, dict) else (category or [])
    for group in groups:
        if not isinstance(group, dict):
            continue
        if (group.get("group") or {}).get("name") == YEAR_GROUP_NAME:
            entries = group.get("list") or []
            if entries:
                return parse_year(entries[0].get("name"))
    return None


class NguonCSource(MovieSource):
    key = "nguonc"

    def listing_url(self, page: int) -> str:
        return f"{self.host}/films/phim-moi-cap-nhat?page={page}"

    def detail_url(self, slug: str) -> str:
        return f"{self.host}/film/{slug}"

    def parse_listing(self, payload: Any) -> ListingPage:
        items = [
            ListingItem(slug=item["slug"], modified_at=parse_modified(item.get("modified")))
            for item in payload.get("items") or []
            if item.get("slug")
        ]
        total_pages = int((payload.get("paginate") or {}).get("total_page") or 1)
        return ListingPage(items=items, total_pages=max(1, total_pages))

    def parse_detail(self, payload: Any) -> MovieRecord:
        movie = payload.get("movie")
        if not movie:
            raise ValueError("missing movie object")
        return MovieRecord(
            slug=movie["slug"],
            name=movie.get("name") or movie["slug"],
            origin_name=movie.get("original_name") or None,
            year=_year_from_categories(movie.get("category")),
            content=strip_html(movie.get("description")),
            thumb_url=resolve_url(movie.get("thumb_url"), self.img_host),
            poster_url=resolve_url(movie.get("poster_url"), self.img_host),
            modified_at=parse_modified(movie.get("modified")),
        )
