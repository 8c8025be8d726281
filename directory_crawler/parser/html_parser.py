# === FILE: directory_crawler/parser/html_parser.py ===
"""HTML parsing helpers for DirectoryCrawler.

A crawled body is parsed exactly once into a :class:`bs4.BeautifulSoup`
document; metadata, technology and link extraction all work on that single
tree. Markup that cannot be parsed degrades to an empty document instead of
failing the visit.
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Optional, Union

from bs4 import BeautifulSoup, ParserRejectedMarkup
from bs4.element import Tag

from directory_crawler.crawler.errors import ParseFailure
from directory_crawler.logger import get_logger

__all__: Sequence[str] = (
    "ParsedDocument",
    "parse_document",
    "parse_or_empty",
    "empty_document",
    "find_meta",
    "attr_text",
    "is_markup",
)

log = get_logger("parser")

ParsedDocument = BeautifulSoup

_PARSER = "html.parser"
_MARKUP_TYPES = ("text/html", "application/xhtml+xml", "application/xml", "text/xml")


def is_markup(content_type: str) -> bool:
    """True for HTML/XML responses and for responses without a Content-Type."""
    return not content_type or content_type in _MARKUP_TYPES or content_type.endswith("+xml")


def empty_document() -> ParsedDocument:
    return BeautifulSoup("", _PARSER)


def parse_document(body: Union[bytes, str], encoding: Optional[str] = None) -> ParsedDocument:
    """Parse *body* once. Raises :class:`ParseFailure` when the parser rejects it."""
    try:
        if isinstance(body, bytes):
            return BeautifulSoup(body, _PARSER, from_encoding=encoding)
        return BeautifulSoup(body, _PARSER)
    except (ParserRejectedMarkup, LookupError, ValueError) as exc:
        raise ParseFailure(str(exc)) from exc


def parse_or_empty(
    body: Union[bytes, str], content_type: str = "", encoding: Optional[str] = None, url: str = ""
) -> ParsedDocument:
    """Parse markup bodies; non-markup or unparsable bodies yield an empty document."""
    if not is_markup(content_type):
        log.debug("Skipping parse of %s (%s)", url, content_type)
        return empty_document()
    try:
        return parse_document(body, encoding)
    except ParseFailure as exc:
        log.warning("Unparsable markup at %s: %s", url, exc)
        return empty_document()


def attr_text(tag: Optional[Tag], name: str) -> str:
    """String value of attribute *name*, joined for multi-valued attributes."""
    if not isinstance(tag, Tag):
        return ""
    value = tag.get(name)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        value = " ".join(value)
    return str(value).strip()


def find_meta(doc: ParsedDocument, attr: str, value: str) -> str:
    """``content`` of the first ``<meta {attr}="{value}">`` (case-insensitive), or ""."""
    pattern = re.compile(rf"^\s*{re.escape(value)}\s*$", re.IGNORECASE)
    return attr_text(doc.find("meta", attrs={attr: pattern}), "content")
