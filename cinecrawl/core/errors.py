"""Domain exceptions for the settings repository and trigger protocol. Mapped to HTTP in main.py."""

from typing import Any


class CrawlerServiceError(Exception):
    """Base class. `code` goes into the JSON error body."""

    code = "CRAWLER_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ValidationError(CrawlerServiceError):
    """Bad cron, out-of-range number, missing required field. Carries field-level errors."""

    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []

    @property
    def fields(self) -> list[str]:
        return [e["field"] for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["errors"] = self.errors
        return out


class ConflictError(CrawlerServiceError):
    """Duplicate name on create, or a trigger rejected by the duplicate-trigger policy."""

    code = "CONFLICT"
    status_code = 409


class CrawlerDisabledError(ConflictError):
    """Manual trigger of a disabled crawler while manual override is turned off."""

    code = "CRAWLER_DISABLED"


class NotFoundError(CrawlerServiceError):
    code = "NOT_FOUND"
    status_code = 404


class EngineDispatchError(CrawlerServiceError):
    """Hand-off to the crawl worker failed (broker or lock store unavailable)."""

    code = "CRAWL_ENQUEUE_FAILED"
    status_code = 503
