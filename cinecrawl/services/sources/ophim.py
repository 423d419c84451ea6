"""OPhim and KKPhim adapters. Both expose the same v1 JSON layout."""

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


class OPhimSource(MovieSource):
    key = "ophim"

    def listing_url(self, page: int) -> str:
        return f"{self.host}/danh-sach/phim-moi-cap-nhat?page={page}"

    def detail_url(self, slug: str) -> str:
        return f"{self.host}/phim/{slug}"

    def parse_listing(self, payload: Any) -> ListingPage:
        items = [
            ListingItem(slug=item["slug"], modified_at=parse_modified(item.get("modified")))
            for item in payload.get("items") or []
            if item.get("slug")
        ]
        total_pages = int((payload.get("pagination") or {}).get("totalPages") or 1)
        return ListingPage(items=items, total_pages=max(1, total_pages))

    def _movie_payload(self, payload: Any) -> dict[str, Any]:
        movie = (payload.get("data") or {}).get("item") or payload.get("movie")
        if not movie:
            raise ValueError("missing movie object")
        return movie

    def _images(self, movie: dict[str, Any]) -> tuple[str | None, str | None]:
        return (
            resolve_url(movie.get("thumb_url"), self.img_host),
            resolve_url(movie.get("poster_url"), self.img_host),
        )

    def parse_detail(self, payload: Any) -> MovieRecord:
        movie = self._movie_payload(payload)
        thumb_url, poster_url = self._images(movie)
        return MovieRecord(
            slug=movie["slug"],
            name=movie.get("name") or movie["slug"],
            origin_name=movie.get("origin_name") or None,
            year=parse_year(movie.get("year")),
            content=strip_html(movie.get("content")),
            thumb_url=thumb_url,
            poster_url=poster_url,
            modified_at=parse_modified(movie.get("modified")),
        )


class KKPhimSource(OPhimSource):
    """KKPhim labels its images the other way round: thumb_url is the portrait poster."""

    key = "kkphim"

    def _images(self, movie: dict[str, Any]) -> tuple[str | None, str | None]:
        return (
            resolve_url(movie.get("poster_url"), self.img_host),
            resolve_url(movie.get("thumb_url"), self.img_host),
        )
