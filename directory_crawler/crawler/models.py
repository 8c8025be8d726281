# directory_crawler/crawler/models.py
"""
Data models for the DirectoryCrawler crawler core.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Tuple

from directory_crawler.crawler.errors import CrawlError

#: canonical absolute URL produced by :func:`directory_crawler.crawler.urls.normalize_url`
NormalizedURL = str


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Raw HTTP response: final URL, status, lower-cased headers and body bytes."""

    url: str
    status: int
    headers: Mapping[str, str]
    body: bytes

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").split(";", 1)[0].strip().lower()

    @property
    def charset(self) -> str | None:
        for part in self.headers.get("content-type", "").split(";")[1:]:
            key, _, value = part.partition("=")
            if key.strip().lower() == "charset" and value.strip():
                return value.strip().strip('"')
        return None


@dataclass(frozen=True, slots=True)
class PageMetadata:
    """Page metadata; a missing field is the empty string."""

    title: str = ""
    description: str = ""
    keywords: str = ""
    canonical_url: str = ""
    viewport: str = ""
    og_title: str = ""
    og_description: str = ""
    og_image: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "description": self.description,
            "keywords": self.keywords,
            "canonical_url": self.canonical_url,
            "viewport": self.viewport,
            "og_title": self.og_title,
            "og_description": self.og_description,
            "og_image": self.og_image,
        }


@dataclass(frozen=True, slots=True)
class LinkRef:
    url: NormalizedURL
    anchor_text: str
    external: bool


@dataclass(frozen=True, slots=True)
class CrawlResult:
    """Outcome of one successful visit."""

    url: NormalizedURL
    http_status: int
    metadata: PageMetadata
    technologies: FrozenSet[str] = frozenset()
    links: Tuple[LinkRef, ...] = ()
    depth: int = 0

    def internal_links(self) -> List[LinkRef]:
        return [link for link in self.links if not link.external]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "http_status": self.http_status,
            "depth": self.depth,
            "metadata": self.metadata.to_dict(),
            "technologies": sorted(self.technologies),
            "links": [
                {"url": link.url, "anchor_text": link.anchor_text, "external": link.external}
                for link in self.links
            ],
        }


@dataclass(frozen=True, slots=True)
class CrawlFailure:
    """A visit that failed, attributed to its URL."""

    url: str
    error: CrawlError
    depth: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "depth": self.depth, "kind": self.error.kind, "error": str(self.error.cause)}


class TraversalState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(slots=True)
class TraversalOutcome:
    """Results of one deep crawl, including pages that failed."""

    seed: NormalizedURL
    results: List[CrawlResult] = field(default_factory=list)
    failures: List[CrawlFailure] = field(default_factory=list)
    state: TraversalState = TraversalState.IDLE

    @property
    def aborted(self) -> bool:
        return self.state is TraversalState.ABORTED

    def technologies(self) -> FrozenSet[str]:
        found: set[str] = set()
        for result in self.results:
            found.update(result.technologies)
        return frozenset(found)


@dataclass(slots=True)
class BatchResult:
    """Independent crawls of several URLs; one failure never affects the rest."""

    succeeded: List[CrawlResult] = field(default_factory=list)
    failed: List[CrawlFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    cancelled: bool = False


class CrawlStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


__all__ = [
    "NormalizedURL",
    "FetchResult",
    "PageMetadata",
    "LinkRef",
    "CrawlResult",
    "CrawlFailure",
    "TraversalState",
    "TraversalOutcome",
    "BatchResult",
    "CrawlStatus",
]
