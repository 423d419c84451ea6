"""
Shared HTTP wrapper for source adapters (worker side, requests).
OOM guard: Content-Length fail-fast plus unconditional stream chunking with a byte cap.
Errors are classified as transient (retry) or permanent (fail the item now).
"""

import json
import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)

# Source APIs answer JSON. Browser-like UA; some sources block the python-requests default.
CRAWLER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "vi-VN,vi;q=0.9,en;q=0.8",
}

DEFAULT_MAX_JSON_BYTES = 5 * 1024 * 1024
DEFAULT_TIMEOUT = 30
CHUNK_SIZE = 64 * 1024

# 408 timeout, 425 too early, 429 rate limited, 5xx server side.
TRANSIENT_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


class SourceFetchError(Exception):
    """Fetch failed. `transient` tells the engine whether a retry may help."""

    def __init__(self, message: str, *, transient: bool, status_code: int | None = None) -> None:
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code


class PayloadTooLargeError(SourceFetchError):
    """Response body exceeded max_bytes (OOM guard). Never retried."""

    def __init__(self, message: str) -> None:
        super().__init__(message, transient=False)


def fetch_json(
    url: str,
    *,
    max_bytes: int = DEFAULT_MAX_JSON_BYTES,
    timeout: float = DEFAULT_TIMEOUT,
    headers: dict[str, Any] | None = None,
    session: requests.Session | None = None,
) -> Any:
    """
    GET url and decode the JSON body.
    - Network errors and TRANSIENT_STATUS_CODES -> SourceFetchError(transient=True).
    - Other 4xx, oversized bodies, invalid UTF-8 or malformed JSON -> SourceFetchError(transient=False).
    """
    h = headers or CRAWLER_HEADERS
    getter = session.get if session is not None else requests.get
    try:
        resp = getter(url, headers=h, timeout=timeout, stream=True)
    except (requests.ConnectionError, requests.Timeout) as e:
        raise SourceFetchError(f"{type(e).__name__} for {url[:200]}: {e}", transient=True) from e
    except requests.RequestException as e:
        raise SourceFetchError(f"Request failed for {url[:200]}: {e}", transient=False) from e

    try:
        if resp.status_code >= 400:
            raise SourceFetchError(
                f"HTTP {resp.status_code} for {url[:200]}",
                transient=resp.status_code in TRANSIENT_STATUS_CODES,
                status_code=resp.status_code,
            )

        # Fail-fast: skip the body when Content-Length is already over the cap
        cl = resp.headers.get("Content-Length")
        if cl:
            try:
                too_large = int(cl) > max_bytes
            except ValueError:
                too_large = False
            if too_large:
                raise PayloadTooLargeError(
                    f"Content-Length {cl} > max_bytes {max_bytes}; url={url[:200]}"
                )

        accumulated = 0
        chunks: list[bytes] = []
        try:
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    accumulated += len(chunk)
                    if accumulated > max_bytes:
                        raise PayloadTooLargeError(
                            f"Accumulated {accumulated} > max_bytes {max_bytes}; url={url[:200]}"
                        )
                    chunks.append(chunk)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise SourceFetchError(
                f"Body read failed for {url[:200]}: {e}", transient=True
            ) from e
    finally:
        resp.close()

    try:
        # bytes input: encoding is detected per RFC 8259, invalid UTF-8 raises.
        return json.loads(b"".join(chunks))
    except ValueError as e:
        raise SourceFetchError(f"Malformed JSON from {url[:200]}: {e}", transient=False) from e
