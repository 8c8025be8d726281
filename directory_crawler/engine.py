# File: directory_crawler/engine.py
"""directory_crawler.engine: оркестрация запусков краулера для CLI и тестов."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from typing import AsyncIterator, Iterable, Optional

from directory_crawler.config import CrawlerConfig
from directory_crawler.crawler.models import BatchResult, CrawlResult, TraversalOutcome
from directory_crawler.crawler.runner import CrawlRunner
from directory_crawler.logger import logger
from directory_crawler.store import JsonWebsiteStore, WebsiteRecord, WebsiteStore

__all__ = ["open_runner", "start_crawl", "start_batch", "start_deep", "refresh_website"]


@contextlib.asynccontextmanager
async def open_runner(config: CrawlerConfig, store: Optional[WebsiteStore] = None) -> AsyncIterator[CrawlRunner]:
    """Открывает CrawlRunner; SIGINT/SIGTERM останавливают обход с частичным результатом."""
    loop = asyncio.get_running_loop()
    async with CrawlRunner(config, store) as runner:
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.add_signal_handler(sig, runner.cancel)
                installed.append(sig)
        try:
            yield runner
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)


async def start_crawl(config: CrawlerConfig, url: str) -> CrawlResult:
    """Обход одной страницы (глубина 0)."""
    logger.info("Crawling %s", url)
    async with open_runner(config) as runner:
        return await runner.crawl_one(url)


async def start_batch(config: CrawlerConfig, urls: Iterable[str]) -> BatchResult:
    """Независимый обход списка URL."""
    async with open_runner(config) as runner:
        return await runner.crawl_batch(urls)


async def start_deep(config: CrawlerConfig, url: str, max_depth: Optional[int] = None) -> TraversalOutcome:
    """Обход сайта в ширину до max_depth."""
    async with open_runner(config) as runner:
        return await runner.deep_crawl(url, max_depth)


async def refresh_website(config: CrawlerConfig, key: str, *, register: bool = False) -> WebsiteRecord:
    """Повторный обход сайта из хранилища с записью результата."""
    store = JsonWebsiteStore(config.store_path)
    async with open_runner(config, store) as runner:
        return await runner.refresh_website(key, register=register)
