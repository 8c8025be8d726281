# File: directory_crawler/aggregator.py
"""directory_crawler.aggregator: сводный отчёт по результатам обхода."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, TypedDict, Union

from directory_crawler.crawler.models import (
    BatchResult,
    CrawlResult,
    TraversalOutcome,
)


class PageInfo(TypedDict):
    """Информация о посещённой странице."""

    url: str
    status: int
    depth: int
    title: str
    description: str
    technologies: List[str]
    internal_links: int
    external_links: int


class FailureInfo(TypedDict):
    """Страница, которую не удалось обойти."""

    url: str
    depth: int
    kind: str
    error: str


@dataclass(slots=True)
class CrawlReport:
    """Итог запуска: страницы, ошибки и объединённый набор технологий."""

    mode: str = "crawl"
    pages: List[PageInfo] = field(default_factory=list)
    failures: List[FailureInfo] = field(default_factory=list)
    technologies: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    aborted: bool = False
    results: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self, *, with_results: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if not with_results:
            data.pop("results")
        return data

    def json(self, *, pretty: bool = False, with_results: bool = True) -> str:
        """JSON-представление отчёта."""
        return json.dumps(self.as_dict(with_results=with_results), ensure_ascii=False, indent=2 if pretty else None)


def _page(result: CrawlResult) -> PageInfo:
    internal = sum(1 for link in result.links if not link.external)
    return {
        "url": result.url,
        "status": result.http_status,
        "depth": result.depth,
        "title": result.metadata.title,
        "description": result.metadata.description,
        "technologies": sorted(result.technologies),
        "internal_links": internal,
        "external_links": len(result.links) - internal,
    }


def aggregate_results(raw: Union[CrawlResult, BatchResult, TraversalOutcome]) -> CrawlReport:
    """Собирает CrawlReport из результата crawl_one, crawl_batch или deep_crawl."""
    if isinstance(raw, CrawlResult):
        results, failures, skipped, aborted, mode = [raw], [], [], False, "crawl"
    elif isinstance(raw, BatchResult):
        results, failures, skipped, aborted, mode = raw.succeeded, raw.failed, raw.skipped, raw.cancelled, "batch"
    elif isinstance(raw, TraversalOutcome):
        results, failures, skipped, aborted, mode = raw.results, raw.failures, [], raw.aborted, "deep"
    else:
        raise TypeError(f"Неизвестный тип результата: {type(raw).__name__}")

    technologies: set[str] = set()
    for result in results:
        technologies.update(result.technologies)

    return CrawlReport(
        mode=mode,
        pages=[_page(r) for r in results],
        failures=[f.to_dict() for f in failures],
        technologies=sorted(technologies),
        skipped=list(skipped),
        aborted=aborted,
        results=[r.to_dict() for r in results],
    )
