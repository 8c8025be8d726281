# directory_crawler/crawler/unit.py
"""
CrawlUnit: visit one URL (normalize → rate-gate → fetch → parse → extract).
"""
from __future__ import annotations

from typing import Mapping, Optional, Pattern, Protocol

from directory_crawler.crawler.errors import CrawlError, FetchError, InvalidURLError
from directory_crawler.crawler.link_extractor import extract_links
from directory_crawler.crawler.metadata import compile_signatures, detect_technologies, extract_metadata
from directory_crawler.crawler.models import CrawlResult, FetchResult, NormalizedURL
from directory_crawler.crawler.rate_gate import RateGate
from directory_crawler.crawler.urls import normalize_url
from directory_crawler.logger import get_logger
from directory_crawler.parser.html_parser import parse_or_empty

log = get_logger("unit")


class PageFetcher(Protocol):
    async def fetch(self, url: NormalizedURL) -> FetchResult: ...


class CrawlUnit:
    """Visits a single page; never retries, never touches traversal state."""

    def __init__(
        self,
        fetcher: PageFetcher,
        gate: RateGate,
        *,
        force_https: bool = True,
        signatures: Optional[Mapping[str, Pattern[str]]] = None,
    ) -> None:
        self.fetcher = fetcher
        self.gate = gate
        self.force_https = force_https
        self.signatures = signatures if signatures is not None else compile_signatures()

    def normalize(self, url: str) -> NormalizedURL:
        return normalize_url(url, force_https=self.force_https)

    async def visit(self, url: str, depth: int = 0) -> CrawlResult:
        """
        Crawl *url* and return a populated :class:`CrawlResult`.

        Raises :class:`CrawlError` wrapping InvalidURLError (before the rate
        gate is touched) or the FetchError that ended the request.
        """
        try:
            target = self.normalize(url)
        except InvalidURLError as exc:
            raise CrawlError(url, exc) from exc

        await self.gate.acquire()
        try:
            response = await self.fetcher.fetch(target)
        except FetchError as exc:
            log.warning("Fetch failed %s: %s", target, exc)
            raise CrawlError(target, exc) from exc

        doc = parse_or_empty(response.body, response.content_type, response.charset, url=target)
        result = CrawlResult(
            url=target,
            http_status=response.status,
            metadata=extract_metadata(doc, target),
            technologies=detect_technologies(response.headers, doc, self.signatures),
            links=tuple(extract_links(doc, target, force_https=self.force_https)),
            depth=depth,
        )
        log.debug(
            "Visited %s [%d] depth=%d links=%d tech=%s",
            target, result.http_status, depth, len(result.links), sorted(result.technologies),
        )
        return result


__all__ = ["CrawlUnit", "PageFetcher"]
