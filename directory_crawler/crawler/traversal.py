# directory_crawler/crawler/traversal.py
"""
Bounded breadth-first traversal over same-site links.

The visited-set and the frontier belong to one :class:`TraversalEngine`
instance and one run; concurrent deep crawls each get their own engine.
"""
from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Deque, List, Optional, Set, Tuple, Union

from directory_crawler.crawler.errors import CrawlError
from directory_crawler.crawler.models import (
    CrawlFailure,
    CrawlResult,
    NormalizedURL,
    TraversalOutcome,
    TraversalState,
)
from directory_crawler.crawler.unit import CrawlUnit
from directory_crawler.logger import get_logger

log = get_logger("traversal")

_SKIPPED = object()

_Entry = Tuple[NormalizedURL, int]


class TraversalEngine:
    """
    State machine ``IDLE → RUNNING → COMPLETED | ABORTED``.

    The frontier is FIFO, so pages are visited level by level in
    link-discovery order. Up to *concurrency* consecutive frontier entries
    are fetched together; their results are consumed in frontier order, which
    keeps the output identical to a one-at-a-time walk.
    """

    def __init__(
        self,
        unit: CrawlUnit,
        *,
        concurrency: int = 1,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.unit = unit
        self.concurrency = concurrency
        self.cancel_event = cancel_event
        self.state = TraversalState.IDLE
        self.visited: Set[NormalizedURL] = set()
        self.frontier: Deque[_Entry] = deque()

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def run(self, seed_url: str, max_depth: int) -> TraversalOutcome:
        """
        Crawl from *seed_url* down to *max_depth* (0 = seed only).

        An invalid seed raises InvalidURLError; page failures are collected
        in ``outcome.failures`` and never stop the run.
        """
        if self.state is not TraversalState.IDLE:
            raise RuntimeError(f"traversal already {self.state.value}")
        if max_depth < 0:
            raise ValueError("max_depth must be >= 0")

        seed = self.unit.normalize(seed_url)
        self.visited = set()
        self.frontier = deque([(seed, 0)])
        self.state = TraversalState.RUNNING
        outcome = TraversalOutcome(seed=seed, state=self.state)
        log.info("Deep crawl start: %s (max_depth=%d)", seed, max_depth)
        start = time.monotonic()
        interrupted = False

        while self.frontier:
            if self._cancelled():
                interrupted = True
                break
            wave = self._next_wave(max_depth)
            if not wave:
                continue
            visits = await asyncio.gather(*(self._visit(url, depth) for url, depth in wave))
            for (url, depth), item in zip(wave, visits):
                if item is _SKIPPED:
                    interrupted = True
                elif isinstance(item, CrawlError):
                    outcome.failures.append(CrawlFailure(url=url, error=item, depth=depth))
                else:
                    outcome.results.append(item)
                    self._enqueue_links(item, depth, max_depth)

        self.state = TraversalState.ABORTED if interrupted else TraversalState.COMPLETED
        outcome.state = self.state
        duration = time.monotonic() - start
        log.info(
            "Deep crawl %s: %s, %d pages, %d failures in %.2f s",
            self.state.value, seed, len(outcome.results), len(outcome.failures), duration,
        )
        return outcome

    def _next_wave(self, max_depth: int) -> List[_Entry]:
        wave: List[_Entry] = []
        while self.frontier and len(wave) < self.concurrency:
            url, depth = self.frontier.popleft()
            if depth > max_depth or url in self.visited:
                continue
            self.visited.add(url)
            wave.append((url, depth))
        return wave

    async def _visit(self, url: NormalizedURL, depth: int) -> Union[CrawlResult, CrawlError, object]:
        if self._cancelled():
            return _SKIPPED
        try:
            return await self.unit.visit(url, depth)
        except CrawlError as exc:
            return exc

    def _enqueue_links(self, result: CrawlResult, depth: int, max_depth: int) -> None:
        if depth >= max_depth:
            return
        for link in result.internal_links():
            if link.url not in self.visited:
                self.frontier.append((link.url, depth + 1))


__all__ = ["TraversalEngine"]
