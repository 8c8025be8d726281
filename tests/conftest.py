# File: tests/conftest.py
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Dict, List, Union

import pytest
from aiohttp import web

from directory_crawler.config import CrawlerConfig
from directory_crawler.crawler.errors import InvalidResponse
from directory_crawler.crawler.models import FetchResult
from directory_crawler.crawler.rate_gate import RateGate
from directory_crawler.crawler.unit import CrawlUnit


class FakeFetcher:
    """
    In-memory page fetcher.

    *pages* maps a normalized URL to an HTML string, a FetchResult or a
    FetchError instance to raise. Every call is recorded in ``calls``.
    """

    def __init__(self, pages: Dict[str, Union[str, FetchResult, Exception]], delay: float = 0.0) -> None:
        self.pages = pages
        self.delay = delay
        self.calls: List[str] = []

    async def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        page = self.pages.get(url)
        if page is None:
            raise InvalidResponse(url, "HTTP 404", status=404)
        if isinstance(page, Exception):
            raise page
        if isinstance(page, FetchResult):
            return page
        return FetchResult(
            url=url,
            status=200,
            headers={"content-type": "text/html; charset=utf-8"},
            body=page.encode("utf-8"),
        )


def html_page(*links: str, title: str = "", head: str = "") -> str:
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return f"<html><head><title>{title}</title>{head}</head><body>{anchors}</body></html>"


@pytest.fixture()
def basic_config() -> CrawlerConfig:
    """Конфиг для тестов: короткие таймауты, без повторов."""
    return CrawlerConfig(
        timeout_ms=2000,
        max_redirects=3,
        rate_limit_per_window=100,
        rate_window_seconds=1.0,
        max_depth=2,
        concurrency=4,
        user_agent="TestAgent/1.0",
    )


@pytest.fixture()
def http_config() -> CrawlerConfig:
    """Конфиг для обхода локального aiohttp-сервера по http://."""
    return CrawlerConfig(
        timeout_ms=1000,
        max_redirects=3,
        rate_limit_per_window=100,
        max_depth=2,
        concurrency=2,
        user_agent="TestAgent/1.0",
        force_https=False,
    )


@pytest.fixture()
def make_unit():
    def _make(pages, *, gate: RateGate | None = None, delay: float = 0.0):
        fetcher = FakeFetcher(pages, delay=delay)
        unit = CrawlUnit(fetcher, gate or RateGate(1000, 1.0))
        return unit, fetcher

    return _make


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()
