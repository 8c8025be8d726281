# directory_crawler/crawler/metadata.py
"""
Page metadata and technology fingerprint extraction.

Both functions are pure over an already parsed document and never raise:
absent tags give empty strings, unknown scripts give no fingerprints.
"""
from __future__ import annotations

import re
from typing import Dict, FrozenSet, Iterable, Iterator, Mapping, Optional, Pattern

from bs4.element import Tag

from directory_crawler.crawler.errors import InvalidURLError
from directory_crawler.crawler.models import NormalizedURL, PageMetadata
from directory_crawler.crawler.urls import resolve_url
from directory_crawler.parser.html_parser import ParsedDocument, attr_text, find_meta

# Searched case-insensitively in script references; a bare "vue" would also hit "revue.js".
DEFAULT_SIGNATURES: Dict[str, str] = {
    "React": r"\breact(?:-dom)?(?:\.production|\.development)?(?:\.min)?\.js\b|/react(?:-dom)?@\d",
    "Vue": r"\bvue(?:-router)?(?:\.runtime)?(?:\.global|\.esm-browser)?(?:\.prod)?(?:\.min)?\.js\b|/vue(?:-router)?@\d",
    "Angular": r"\bangular(?:\.min)?\.js\b|/@angular/",
    "jQuery": r"\bjquery(?:[.-]\d+(?:\.\d+)*)?(?:\.slim)?(?:\.min)?\.js\b",
    "Bootstrap": r"\bbootstrap(?:\.bundle)?(?:\.min)?\.js\b",
    "Next.js": r"/_next/static/",
    "Nuxt": r"/_nuxt/",
    "WordPress": r"/wp-(?:content|includes)/",
    "Google Analytics": r"google-analytics\.com/(?:analytics|ga)\.js|googletagmanager\.com/gtag/js",
}

_PRELOAD_RELS = {"modulepreload", "preload"}


def compile_signatures(extra: Optional[Mapping[str, str]] = None) -> Dict[str, Pattern[str]]:
    """Default signature table merged with *extra* (same name overrides)."""
    table = dict(DEFAULT_SIGNATURES)
    if extra:
        table.update(extra)
    return {name: re.compile(pattern, re.IGNORECASE) for name, pattern in table.items()}


_COMPILED_DEFAULTS = compile_signatures()


def _resolved(base_url: str, href: str) -> str:
    if not href:
        return ""
    try:
        return resolve_url(base_url, href, force_https=False)
    except InvalidURLError:
        return href


def extract_metadata(doc: ParsedDocument, base_url: NormalizedURL) -> PageMetadata:
    """Title, description, keywords, canonical link, viewport and Open Graph fields."""
    title_tag = doc.find("title")
    title = title_tag.get_text(strip=True) if isinstance(title_tag, Tag) else ""
    canonical = next(
        (tag for tag in doc.find_all("link", href=True) if "canonical" in attr_text(tag, "rel").lower().split()),
        None,
    )
    return PageMetadata(
        title=title,
        description=find_meta(doc, "name", "description"),
        keywords=find_meta(doc, "name", "keywords"),
        canonical_url=_resolved(base_url, attr_text(canonical, "href")),
        viewport=find_meta(doc, "name", "viewport"),
        og_title=find_meta(doc, "property", "og:title"),
        og_description=find_meta(doc, "property", "og:description"),
        og_image=_resolved(base_url, find_meta(doc, "property", "og:image")),
    )


def script_references(doc: ParsedDocument) -> Iterator[str]:
    """``<script src>`` values and ``<link rel=(module)preload>`` script hrefs, in document order."""
    for tag in doc.find_all(["script", "link"]):
        if tag.name == "script":
            src = attr_text(tag, "src")
        else:
            rels = {rel.lower() for rel in attr_text(tag, "rel").split()}
            if not rels & _PRELOAD_RELS:
                continue
            if "preload" in rels and "modulepreload" not in rels and attr_text(tag, "as").lower() != "script":
                continue
            src = attr_text(tag, "href")
        if src:
            yield src


def detect_technologies(
    headers: Mapping[str, str],
    doc: ParsedDocument,
    signatures: Optional[Mapping[str, Pattern[str]]] = None,
) -> FrozenSet[str]:
    """
    Best-effort fingerprinting.

    Adds the literal ``Server`` and ``X-Powered-By`` header values, then the
    canonical name of every signature matching a script reference.
    """
    table = _COMPILED_DEFAULTS if signatures is None else signatures
    found: set[str] = set()
    lowered = {key.lower(): value for key, value in headers.items()}
    for header in ("server", "x-powered-by"):
        value = (lowered.get(header) or "").strip()
        if value:
            found.add(value)

    for ref in script_references(doc):
        for name, pattern in table.items():
            if name not in found and pattern.search(ref):
                found.add(name)
    return frozenset(found)


def merge_technologies(*groups: Iterable[str]) -> list[str]:
    """Sorted union of technology names; used when reconciling with stored records."""
    merged: set[str] = set()
    for group in groups:
        merged.update(name for name in group if name)
    return sorted(merged)


__all__ = [
    "DEFAULT_SIGNATURES",
    "compile_signatures",
    "extract_metadata",
    "detect_technologies",
    "script_references",
    "merge_technologies",
]
