# directory_crawler/crawler/runner.py
"""
CrawlRunner: public entry points of the crawler core.

``crawl_one``, ``crawl_batch`` and ``deep_crawl`` share one aiohttp session,
one :class:`RateGate` and one cancellation event; ``persist_result``
reconciles any of their results into a website record.
"""
from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Dict, Iterable, Optional, Union

from aiohttp import ClientSession

from directory_crawler.config import CrawlerConfig
from directory_crawler.crawler.errors import (
    NETWORK_FAILURES,
    CrawlError,
    PersistenceError,
    RecordNotFound,
)
from directory_crawler.crawler.fetcher import Fetcher
from directory_crawler.crawler.metadata import compile_signatures
from directory_crawler.crawler.models import (
    BatchResult,
    CrawlFailure,
    CrawlResult,
    CrawlStatus,
    TraversalOutcome,
)
from directory_crawler.crawler.rate_gate import RateGate
from directory_crawler.crawler.traversal import TraversalEngine
from directory_crawler.crawler.unit import CrawlUnit, PageFetcher
from directory_crawler.logger import get_logger
from directory_crawler.store import WebsiteRecord, WebsiteStore

log = get_logger("runner")

Persistable = Union[CrawlResult, CrawlError, TraversalOutcome]


class CrawlRunner:
    """
    Top-level crawler facade.

    Use as an async context manager: it opens the HTTP session (unless a
    *fetcher* is injected) and arms the ``max_runtime_seconds`` ceiling.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        store: Optional[WebsiteStore] = None,
        *,
        fetcher: Optional[PageFetcher] = None,
        gate: Optional[RateGate] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.gate = gate or RateGate(config.rate_limit_per_window, config.rate_window_seconds)
        self.cancel_event = asyncio.Event()
        self.session: Optional[ClientSession] = None
        self._fetcher = fetcher
        self._signatures = compile_signatures(config.technology_signatures)
        self._deadline: Optional[asyncio.TimerHandle] = None
        self.unit: Optional[CrawlUnit] = None
        if fetcher is not None:
            self.unit = self._make_unit(fetcher)

    async def __aenter__(self) -> CrawlRunner:
        if self._fetcher is None:
            self.session = ClientSession(raise_for_status=False)
            self.unit = self._make_unit(Fetcher(self.session, self.config))
        if self.config.max_runtime_seconds is not None:
            loop = asyncio.get_running_loop()
            self._deadline = loop.call_later(self.config.max_runtime_seconds, self._runtime_exceeded)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        if self.session and not self.session.closed:
            await self.session.close()

    def _make_unit(self, fetcher: PageFetcher) -> CrawlUnit:
        return CrawlUnit(
            fetcher,
            self.gate,
            force_https=self.config.force_https,
            signatures=self._signatures,
        )

    def _runtime_exceeded(self) -> None:
        log.warning("Max runtime %.0f s reached, stopping crawl", self.config.max_runtime_seconds)
        self.cancel()

    def cancel(self) -> None:
        """Stop dispatching new visits; running calls return partial results."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def _require_unit(self) -> CrawlUnit:
        if self.unit is None:
            raise RuntimeError("CrawlRunner not started; use 'async with CrawlRunner(...)'")
        return self.unit

    # ------------------------------------------------------------------ #
    # Crawl entry points                                                 #
    # ------------------------------------------------------------------ #

    async def crawl_one(self, url: str) -> CrawlResult:
        """Visit a single URL (depth 0). Network failures are retried ``retry_times`` times."""
        unit = self._require_unit()
        attempts = 0
        while True:
            try:
                return await unit.visit(url)
            except CrawlError as exc:
                attempts += 1
                if not isinstance(exc.cause, NETWORK_FAILURES) or attempts > self.config.retry_times or self.cancelled:
                    raise
                backoff = self._backoff(attempts)
                log.debug("Retry %d/%d for %s after %.2f s", attempts, self.config.retry_times, url, backoff)
                await asyncio.sleep(backoff)

    @staticmethod
    def _backoff(attempt: int) -> float:
        return min(60, 2**attempt + random.random())

    async def crawl_batch(self, urls: Iterable[str]) -> BatchResult:
        """
        Crawl independent URLs on ``concurrency`` workers.

        Each URL succeeds or fails on its own; after cancellation the
        remaining URLs are reported in ``skipped``.
        """
        pending = list(urls)
        batch = BatchResult()
        outcomes: Dict[int, Union[CrawlResult, CrawlError, None]] = {}
        queue: asyncio.Queue[int] = asyncio.Queue()
        for index in range(len(pending)):
            queue.put_nowait(index)

        async def worker() -> None:
            while True:
                try:
                    index = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if self.cancelled:
                    outcomes[index] = None
                    continue
                try:
                    outcomes[index] = await self.crawl_one(pending[index])
                except CrawlError as exc:
                    outcomes[index] = exc

        log.info("Batch crawl start: %d URLs", len(pending))
        start = time.monotonic()
        workers = min(self.config.concurrency, len(pending))
        await asyncio.gather(*(worker() for _ in range(workers)))

        for index, url in enumerate(pending):
            item = outcomes.get(index)
            if item is None:
                batch.skipped.append(url)
            elif isinstance(item, CrawlError):
                batch.failed.append(CrawlFailure(url=url, error=item))
            else:
                batch.succeeded.append(item)
        batch.cancelled = bool(batch.skipped)
        log.info(
            "Batch crawl done: %d ok, %d failed, %d skipped in %.2f s",
            len(batch.succeeded), len(batch.failed), len(batch.skipped), time.monotonic() - start,
        )
        return batch

    async def deep_crawl(self, seed_url: str, max_depth: Optional[int] = None) -> TraversalOutcome:
        """Breadth-first crawl from *seed_url*; a fresh engine (and visited-set) per call."""
        engine = TraversalEngine(
            self._require_unit(),
            concurrency=self.config.concurrency,
            cancel_event=self.cancel_event,
        )
        depth = self.config.max_depth if max_depth is None else max_depth
        return await engine.run(seed_url, depth)

    # ------------------------------------------------------------------ #
    # Persistence                                                        #
    # ------------------------------------------------------------------ #

    def _require_store(self) -> WebsiteStore:
        if self.store is None:
            raise RuntimeError("no website store configured")
        return self.store

    def persist_result(self, website_id: str, result: Persistable) -> WebsiteRecord:
        """
        Reconcile a crawl outcome into the website record *website_id*.

        Technologies are merged (never retracted), ``last_crawled_at`` is
        always stamped. Store failures raise PersistenceError with *result*
        attached as ``exc.result``.
        """
        store = self._require_store()
        status, meta = _status_and_meta(result)
        try:
            return store.update_crawl_status(website_id, status, meta)
        except RecordNotFound:
            raise
        except PersistenceError as exc:
            if exc.result is None:
                exc.result = result
            raise
        except Exception as exc:
            raise PersistenceError(f"cannot update website {website_id}: {exc}", result=result) from exc

    async def refresh_website(self, key: str, *, register: bool = False) -> WebsiteRecord:
        """
        Re-crawl the domain of a stored website and persist the outcome.

        A failed crawl is recorded on the website first and then re-raised.
        If the store write itself fails, the PersistenceError carries the
        crawl outcome in ``result`` (and is chained from the CrawlError).
        """
        store = self._require_store()
        record = store.find_by_key(key)
        if record is None:
            if not register:
                raise RecordNotFound(key)
            record = store.save(WebsiteRecord(domain=key))
        try:
            result = await self.crawl_one(record.domain)
        except CrawlError as exc:
            log.error("Refresh failed for %s: %s", record.domain, exc)
            try:
                self.persist_result(record.id, exc)
            except PersistenceError as store_exc:
                raise store_exc from exc
            raise
        return self.persist_result(record.id, result)


def _status_and_meta(result: Persistable) -> tuple[CrawlStatus, Dict[str, Any]]:
    if isinstance(result, CrawlError):
        return CrawlStatus.FAILED, {"error": str(result.cause)}
    if isinstance(result, CrawlResult):
        return CrawlStatus.SUCCESS, {
            "technologies": sorted(result.technologies),
            "metadata": result.metadata.to_dict(),
        }
    if isinstance(result, TraversalOutcome):
        if not result.results:
            first = result.failures[0].error.cause if result.failures else "no page crawled"
            return CrawlStatus.FAILED, {"error": str(first)}
        seed = next((r for r in result.results if r.url == result.seed), result.results[0])
        status = CrawlStatus.PARTIAL if result.failures or result.aborted else CrawlStatus.SUCCESS
        return status, {
            "technologies": sorted(result.technologies()),
            "metadata": seed.metadata.to_dict(),
        }
    raise TypeError(f"cannot persist {type(result).__name__}")


__all__ = ["CrawlRunner", "Persistable"]
