# directory_crawler/crawler/errors.py
"""
Exception hierarchy for the crawler core.

Per-page errors (``FetchError`` subclasses wrapped in ``CrawlError``) are
collected as values by the batch and traversal layers; only configuration
errors such as an invalid seed URL abort a whole run.
"""
from __future__ import annotations

from typing import Optional


class CrawlerError(Exception):
    """Base class for every error raised by directory_crawler."""


class InvalidURLError(CrawlerError, ValueError):
    """The URL is not an absolute http(s) URL with a host."""

    def __init__(self, url: str, reason: str = "invalid URL") -> None:
        super().__init__(f"{reason}: {url!r}")
        self.url = url
        self.reason = reason


class FetchError(CrawlerError):
    """A single HTTP GET failed."""

    kind = "fetch_error"

    def __init__(self, url: str, message: str = "") -> None:
        super().__init__(f"{self.kind} for {url}" + (f": {message}" if message else ""))
        self.url = url
        self.message = message


class FetchTimeout(FetchError):
    kind = "timeout"


class ConnectionFailed(FetchError):
    kind = "connection_failed"


class TooManyRedirects(FetchError):
    kind = "too_many_redirects"


class InvalidResponse(FetchError):
    kind = "invalid_response"

    def __init__(self, url: str, message: str = "", status: Optional[int] = None) -> None:
        super().__init__(url, message)
        self.status = status


#: network failures the caller may retry
NETWORK_FAILURES = (FetchTimeout, ConnectionFailed, TooManyRedirects)


class ParseFailure(CrawlerError):
    """Markup could not be parsed; callers degrade to an empty document."""


class CrawlError(CrawlerError):
    """A visit of *url* failed; *cause* holds the underlying error."""

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(f"crawl failed: {url}: {cause}")
        self.url = url
        self.cause = cause

    @property
    def kind(self) -> str:
        if isinstance(self.cause, FetchError):
            return self.cause.kind
        if isinstance(self.cause, InvalidURLError):
            return "invalid_url"
        return type(self.cause).__name__


class PersistenceError(CrawlerError):
    """
    The website record store rejected a write.

    When raised while persisting a crawl, ``result`` holds that crawl's
    outcome (a CrawlResult, CrawlError or TraversalOutcome).
    """

    def __init__(self, message: str, result: Optional[object] = None) -> None:
        super().__init__(message)
        self.result = result


class RecordNotFound(CrawlerError, LookupError):
    """No website record matches the given key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"website record not found: {key}")
        self.key = key


__all__ = [
    "CrawlerError",
    "InvalidURLError",
    "FetchError",
    "FetchTimeout",
    "ConnectionFailed",
    "TooManyRedirects",
    "InvalidResponse",
    "NETWORK_FAILURES",
    "ParseFailure",
    "CrawlError",
    "PersistenceError",
    "RecordNotFound",
]
