# directory_crawler/crawler/fetcher.py
"""
Fetcher module: one HTTP GET with timeout, redirect cap and crawler identity.

Failures are raised as typed :class:`~directory_crawler.crawler.errors.FetchError`
subclasses; retry policy belongs to the caller.
"""
from __future__ import annotations

import asyncio

import aiohttp
from aiohttp import ClientSession, ClientTimeout

from directory_crawler.config import CrawlerConfig
from directory_crawler.crawler.errors import (
    ConnectionFailed,
    FetchTimeout,
    InvalidResponse,
    TooManyRedirects,
)
from directory_crawler.crawler.models import FetchResult, NormalizedURL

ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"
_REDIRECT_STATUS = (301, 302, 303, 307, 308)


class Fetcher:
    """Performs a single GET per call; holds no state besides the session."""

    def __init__(self, session: ClientSession, config: CrawlerConfig) -> None:
        self.session = session
        self.config = config
        self.headers = {"User-Agent": config.user_agent, "Accept": ACCEPT_HTML}

    async def fetch(self, url: NormalizedURL) -> FetchResult:
        """
        GET *url* and return status, headers and raw body.

        Raises FetchTimeout, ConnectionFailed, TooManyRedirects or
        InvalidResponse (including HTTP status >= 400).
        """
        max_redirects = self.config.max_redirects
        # aiohttp raises on the redirect that reaches max_redirects, so allow one more
        request_kwargs = {
            "headers": self.headers,
            "timeout": ClientTimeout(total=self.config.timeout),
            "allow_redirects": max_redirects > 0,
        }
        if max_redirects > 0:
            request_kwargs["max_redirects"] = max_redirects + 1

        try:
            async with self.session.get(url, **request_kwargs) as resp:
                status = resp.status
                if max_redirects == 0 and status in _REDIRECT_STATUS:
                    raise TooManyRedirects(url, "redirects are disabled")
                body = await resp.read()
                headers = {key.lower(): value for key, value in resp.headers.items()}
                final_url = str(resp.url)
        except aiohttp.TooManyRedirects as exc:
            raise TooManyRedirects(url, f"more than {max_redirects} redirects") from exc
        except asyncio.TimeoutError as exc:
            raise FetchTimeout(url, f"no response within {self.config.timeout_ms} ms") from exc
        except aiohttp.ClientConnectionError as exc:
            raise ConnectionFailed(url, str(exc) or type(exc).__name__) from exc
        except aiohttp.ClientError as exc:
            raise InvalidResponse(url, str(exc) or type(exc).__name__) from exc

        if status >= 400:
            raise InvalidResponse(url, f"HTTP {status}", status=status)
        return FetchResult(url=final_url, status=status, headers=headers, body=body)


__all__ = ["Fetcher", "ACCEPT_HTML"]
