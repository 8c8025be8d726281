# directory_crawler/crawler/link_extractor.py
"""
Link extraction for DirectoryCrawler.
"""
from __future__ import annotations

from typing import List

from bs4.element import Tag

from directory_crawler.crawler.errors import InvalidURLError
from directory_crawler.crawler.models import LinkRef, NormalizedURL
from directory_crawler.crawler.urls import host_of, resolve_url
from directory_crawler.parser.html_parser import ParsedDocument, attr_text

_SKIP_PREFIXES = ("mailto:", "javascript:", "tel:")


def extract_links(doc: ParsedDocument, base_url: NormalizedURL, *, force_https: bool = True) -> List[LinkRef]:
    """
    Every resolvable ``<a href>`` of *doc*, in document order.

    Relative references are resolved against *base_url*; a link is external
    when its host differs from the host of *base_url*.
    ``mailto:``/``javascript:``/``tel:`` and malformed targets are skipped.
    """
    base_host = host_of(base_url)
    links: List[LinkRef] = []
    for tag in doc.find_all("a", href=True):
        if not isinstance(tag, Tag):
            continue
        raw = attr_text(tag, "href")
        if not raw or raw.lower().startswith(_SKIP_PREFIXES):
            continue
        try:
            url = resolve_url(base_url, raw, force_https=force_https)
        except InvalidURLError:
            continue
        links.append(
            LinkRef(
                url=url,
                anchor_text=tag.get_text(" ", strip=True),
                external=host_of(url) != base_host,
            )
        )
    return links


__all__ = ["extract_links"]
