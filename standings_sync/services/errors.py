from __future__ import annotations

import re

_HTTP_429_PATTERN = re.compile(r"\b(?:http|status|code)[\s:=]*429\b")


class SyncError(Exception):
    """Base class for every error raised by the sync layer."""


class NetworkError(SyncError):
    """Transport failure or 5xx response after all retry attempts."""

    def __init__(self, message: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class RateLimited(SyncError):
    """Provider quota or local daily budget exhausted."""


class UpstreamError(SyncError):
    """The provider answered but reported errors in the body."""


class SchemaValidationError(SyncError):
    """Normalized data violates an invariant; the cache write is rejected."""


class DataUnavailable(SyncError):
    """Nothing cached for the key and the fetch failed."""

    def __init__(self, message: str, cause: SyncError | None = None) -> None:
        super().__init__(message)
        self.cause = cause


def is_daily_limit_error_text(raw_error: str) -> bool:
    text = str(raw_error or "").strip().lower()
    if not text:
        return False
    return (
        "request limit" in text
        or "daily api call budget reached" in text
        or _HTTP_429_PATTERN.search(text) is not None
        or "too many requests" in text
    )
