"""Source adapters and the shared JSON fetch helper. HTTP is faked at the requests.Session level."""

import json
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
import requests

from cinecrawl.core.crawl_http import PayloadTooLargeError, SourceFetchError, fetch_json
from cinecrawl.core.crawler_config import UnknownSourceError, get_source, source_key
from cinecrawl.services.sources.base import (
    MovieRecord,
    parse_modified,
    parse_year,
    resolve_url,
    strip_html,
)
from cinecrawl.services.sources.nguonc import NguonCSource
from cinecrawl.services.sources.ophim import KKPhimSource, OPhimSource


class FakeResponse:
    def __init__(self, status_code=200, body=b"", headers=None):
        self.status_code = status_code
        self.headers = headers or {}
        self._body = body
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i : i + chunk_size]

    def close(self):
        self.closed = True


def _session(*responses):
    session = MagicMock(spec=requests.Session)
    session.get.side_effect = list(responses)
    return session


def _json(payload, status_code=200):
    return FakeResponse(status_code, json.dumps(payload).encode())


# --- fetch_json ---


def test_fetch_json_decodes_body() -> None:
    resp = FakeResponse(200, b'{"ok": true}')
    assert fetch_json("https://x/api", session=_session(resp)) == {"ok": True}
    assert resp.closed


@pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
def test_fetch_json_server_errors_are_transient(status) -> None:
    with pytest.raises(SourceFetchError) as exc_info:
        fetch_json("https://x/api", session=_session(FakeResponse(status)))
    assert exc_info.value.transient is True
    assert exc_info.value.status_code == status


@pytest.mark.parametrize("status", [400, 403, 404])
def test_fetch_json_client_errors_are_permanent(status) -> None:
    with pytest.raises(SourceFetchError) as exc_info:
        fetch_json("https://x/api", session=_session(FakeResponse(status)))
    assert exc_info.value.transient is False


def test_fetch_json_connection_error_is_transient() -> None:
    session = MagicMock(spec=requests.Session)
    session.get.side_effect = requests.ConnectionError("reset")
    with pytest.raises(SourceFetchError) as exc_info:
        fetch_json("https://x/api", session=session)
    assert exc_info.value.transient is True


def test_fetch_json_malformed_body_is_permanent() -> None:
    with pytest.raises(SourceFetchError) as exc_info:
        fetch_json("https://x/api", session=_session(FakeResponse(200, b"<html>")))
    assert exc_info.value.transient is False


def test_fetch_json_invalid_utf8_is_permanent() -> None:
    resp = FakeResponse(200, b'{"name": "T\xe2y Du K\xfd"}')
    with pytest.raises(SourceFetchError) as exc_info:
        fetch_json("https://x/api", session=_session(resp))
    assert exc_info.value.transient is False


def test_fetch_json_content_length_over_cap() -> None:
    resp = FakeResponse(200, b"{}", headers={"Content-Length": "999"})
    with pytest.raises(PayloadTooLargeError):
        fetch_json("https://x/api", max_bytes=10, session=_session(resp))


def test_fetch_json_streamed_body_over_cap() -> None:
    resp = FakeResponse(200, b'{"k": "' + b"x" * 100 + b'"}')
    with pytest.raises(PayloadTooLargeError) as exc_info:
        fetch_json("https://x/api", max_bytes=50, session=_session(resp))
    assert exc_info.value.transient is False


# --- helpers ---


def test_parse_modified_variants() -> None:
    expected = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    assert parse_modified("2026-03-01T12:00:00.000Z") == expected
    assert parse_modified({"time": "2026-03-01T12:00:00Z"}) == expected
    assert parse_modified("2026-03-01T19:00:00+07:00") == expected
    assert parse_modified("2026-03-01T12:00:00") == expected
    assert parse_modified("yesterday") is None
    assert parse_modified(None) is None


def test_resolve_url() -> None:
    assert resolve_url("https://cdn/a.jpg", "https://img") == "https://cdn/a.jpg"
    assert resolve_url("a.jpg", "https://img/uploads/movies/") == "https://img/uploads/movies/a.jpg"
    assert resolve_url("a.jpg", None) == "a.jpg"
    assert resolve_url("", "https://img") is None
    assert resolve_url("  ", "https://img") is None
    assert resolve_url("//cdn.example/x.jpg", "https://img") == "https://cdn.example/x.jpg"
    assert resolve_url("a.jpg?u=http://x", "https://img") == "https://img/a.jpg?u=http://x"
    assert resolve_url("HTTP://cdn/a.jpg", "https://img") == "HTTP://cdn/a.jpg"


@pytest.mark.parametrize(
    "value,year",
    [(1986, 1986), ("2024", 2024), (0, None), (-5, None), (99999, None), ("n/a", None), (None, None)],
)
def test_parse_year_keeps_plausible_years(value, year) -> None:
    assert parse_year(value) == year


def test_movie_row_fits_column_limits() -> None:
    record = MovieRecord(
        slug="long",
        name="N" * 600,
        origin_name="O" * 513,
        thumb_url="https://cdn/" + "x" * 2100,
        poster_url="https://cdn/p.jpg",
    )
    row = record.to_row("ophim")
    assert len(row["name"]) == 512
    assert len(row["origin_name"]) == 512
    assert row["thumb_url"] is None
    assert row["poster_url"] == "https://cdn/p.jpg"


def test_strip_html() -> None:
    assert strip_html("<p>Hello <b>world</b></p>") == "Hello world"
    assert strip_html("<p></p>") is None


# --- registry ---


@pytest.mark.parametrize(
    "name,key",
    [("ophim", "ophim"), ("OPhimCrawler", "ophim"), ("kk-phim", "kkphim"), ("NGUONC", "nguonc")],
)
def test_source_key(name, key) -> None:
    assert source_key(name) == key


def test_get_source_builds_adapter() -> None:
    source = get_source("KKPhimCrawler", "https://phimapi.com/", "https://img")
    try:
        assert isinstance(source, KKPhimSource)
        assert source.host == "https://phimapi.com"
        assert source.img_host == "https://img"
    finally:
        source.close()


def test_get_source_unknown() -> None:
    with pytest.raises(UnknownSourceError):
        get_source("netflix", "https://example.com")


# --- adapters ---

OPHIM_LISTING = {
    "status": True,
    "items": [
        {"slug": "tay-du-ky", "modified": {"time": "2026-03-01T12:00:00.000Z"}},
        {"slug": "", "modified": {"time": "2026-03-01T12:00:00.000Z"}},
        {"slug": "hong-lau-mong"},
    ],
    "pagination": {"totalItems": 48, "totalItemsPerPage": 24, "currentPage": 1, "totalPages": 2},
}

OPHIM_DETAIL = {
    "status": "success",
    "data": {
        "item": {
            "slug": "tay-du-ky",
            "name": "Tây Du Ký",
            "origin_name": "Journey to the West",
            "year": 1986,
            "content": "<p>Đường Tăng đi thỉnh kinh.</p>",
            "thumb_url": "tay-du-ky-thumb.jpg",
            "poster_url": "tay-du-ky-poster.jpg",
            "modified": {"time": "2026-03-01T12:00:00.000Z"},
        }
    },
}


def test_ophim_listing() -> None:
    source = OPhimSource("https://ophim1.com", session=_session(_json(OPHIM_LISTING)))
    page = source.fetch_listing(1)

    assert [i.slug for i in page.items] == ["tay-du-ky", "hong-lau-mong"]
    assert page.items[0].modified_at == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    assert page.items[1].modified_at is None
    assert page.total_pages == 2
    url = source.session.get.call_args.args[0]
    assert url == "https://ophim1.com/danh-sach/phim-moi-cap-nhat?page=1"


def test_ophim_detail() -> None:
    source = OPhimSource(
        "https://ophim1.com", "https://img.ophim.live/uploads/movies", session=_session(_json(OPHIM_DETAIL))
    )
    record = source.fetch_detail("tay-du-ky")

    assert record.name == "Tây Du Ký"
    assert record.year == 1986
    assert record.content == "Đường Tăng đi thỉnh kinh."
    assert record.thumb_url == "https://img.ophim.live/uploads/movies/tay-du-ky-thumb.jpg"
    assert record.poster_url == "https://img.ophim.live/uploads/movies/tay-du-ky-poster.jpg"
    assert source.session.get.call_args.args[0] == "https://ophim1.com/phim/tay-du-ky"


def test_kkphim_swaps_images() -> None:
    payload = {"status": True, "movie": dict(OPHIM_DETAIL["data"]["item"])}
    source = KKPhimSource("https://phimapi.com", session=_session(_json(payload)))
    record = source.fetch_detail("tay-du-ky")
    assert record.thumb_url == "tay-du-ky-poster.jpg"
    assert record.poster_url == "tay-du-ky-thumb.jpg"


def test_detail_without_movie_is_permanent_failure() -> None:
    source = OPhimSource("https://ophim1.com", session=_session(_json({"status": False})))
    with pytest.raises(SourceFetchError) as exc_info:
        source.fetch_detail("gone")
    assert exc_info.value.transient is False


def test_nguonc_listing_and_detail() -> None:
    listing = {
        "items": [{"slug": "a", "modified": "2026-03-01T12:00:00"}],
        "paginate": {"current_page": 1, "total_page": 7},
    }
    detail = {
        "movie": {
            "slug": "a",
            "name": "Phim A",
            "original_name": "Movie A",
            "description": "Mô tả",
            "thumb_url": "https://cdn/a.jpg",
            "poster_url": "https://cdn/a-poster.jpg",
            "modified": "2026-03-01T12:00:00",
            "category": {
                "1": {"group": {"name": "Định dạng"}, "list": [{"name": "Phim lẻ"}]},
                "3": {"group": {"name": "Năm"}, "list": [{"name": "2024"}]},
            },
        }
    }
    source = NguonCSource("https://phim.nguonc.com/api", session=_session(_json(listing), _json(detail)))

    page = source.fetch_listing(1)
    assert page.total_pages == 7
    assert source.session.get.call_args.args[0] == (
        "https://phim.nguonc.com/api/films/phim-moi-cap-nhat?page=1"
    )

    record = source.fetch_detail("a")
    assert record.origin_name == "Movie A"
    assert record.year == 2024
    assert record.content == "Mô tả"
    assert source.session.get.call_args.args[0] == "https://phim.nguonc.com/api/film/a"
