# directory_crawler/crawler/urls.py
"""
URL normalization: the identity key for dedup, rate-gating and fetching.
"""
from __future__ import annotations

import re
from urllib.parse import urljoin, urlsplit, urlunsplit

from directory_crawler.crawler.errors import InvalidURLError
from directory_crawler.crawler.models import NormalizedURL

_DEFAULT_PORTS = {"http": 80, "https": 443}
_SLASHES_RE = re.compile(r"/{2,}")


def normalize_url(url: str, *, force_https: bool = True) -> NormalizedURL:
    """
    Canonicalize an absolute http(s) URL.

    Upgrades ``http`` to ``https`` (unless *force_https* is off), lower-cases
    scheme and host, drops the scheme's default port, collapses repeated
    slashes in the path and removes the fragment. The query string is kept
    as-is. Applying it twice gives the same string.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidURLError(str(url), "empty URL")
    try:
        parts = urlsplit(url.strip())
        scheme = parts.scheme.lower()
        host = parts.hostname
        port = parts.port
    except ValueError as exc:
        raise InvalidURLError(url, f"malformed URL ({exc})") from exc

    if scheme not in _DEFAULT_PORTS:
        raise InvalidURLError(url, "unsupported scheme")
    if not host:
        raise InvalidURLError(url, "missing host")

    defaults = {_DEFAULT_PORTS[scheme]}
    if force_https and scheme == "http":
        scheme = "https"
        defaults.add(_DEFAULT_PORTS[scheme])
    # http://host:80 and http://host:443 both become https://host
    if port in defaults:
        port = None

    if ":" in host:
        host = f"[{host}]"
    netloc = host if port is None else f"{host}:{port}"
    userinfo = parts.netloc.rpartition("@")[0] if "@" in parts.netloc else ""
    if userinfo:
        netloc = f"{userinfo}@{netloc}"

    path = _SLASHES_RE.sub("/", parts.path) or "/"
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def resolve_url(base: str, href: str, *, force_https: bool = True) -> NormalizedURL:
    """Resolve *href* against *base* and normalize the result."""
    try:
        absolute = urljoin(base, href.strip())
    except ValueError as exc:
        raise InvalidURLError(href, f"unresolvable reference ({exc})") from exc
    return normalize_url(absolute, force_https=force_https)


def host_of(url: str) -> str:
    """Lower-cased host of *url* ("" when there is none)."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_valid_url(url: str) -> bool:
    try:
        normalize_url(url)
    except InvalidURLError:
        return False
    return True


__all__ = ["normalize_url", "resolve_url", "host_of", "is_valid_url"]
