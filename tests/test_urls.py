# File: tests/test_urls.py
import pytest

from directory_crawler.crawler.errors import InvalidURLError
from directory_crawler.crawler.urls import host_of, is_valid_url, normalize_url, resolve_url

SAMPLES = [
    "http://Example.com",
    "https://example.com//a///b/",
    "http://example.com:80/path#frag",
    "http://example.com:443/a",
    "https://example.com:443/?q=1&b=2",
    "https://example.com:8443//x",
    "HTTP://EXAMPLE.COM/Path//To?x=//y#z",
    "http://user:pw@example.com/a",
    "http://[::1]:8080//a",
    "https://example.com/a%20b",
]


@pytest.mark.parametrize("url", SAMPLES)
def test_normalization_is_idempotent(url):
    once = normalize_url(url)
    assert normalize_url(once) == once


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("http://Example.com", "https://example.com/"),
        ("https://example.com//a///b/", "https://example.com/a/b/"),
        ("http://example.com:80/path#frag", "https://example.com/path"),
        ("https://example.com:443/?q=1", "https://example.com/?q=1"),
        ("http://example.com:443/a", "https://example.com/a"),
        ("https://example.com:80/a", "https://example.com:80/a"),
        ("https://example.com:8443//x", "https://example.com:8443/x"),
        ("https://example.com/p?x=//y", "https://example.com/p?x=//y"),
    ],
)
def test_normalize_examples(raw, expected):
    assert normalize_url(raw) == expected


def test_normalize_without_https_upgrade():
    assert normalize_url("http://127.0.0.1:8080//a#b", force_https=False) == "http://127.0.0.1:8080/a"


@pytest.mark.parametrize(
    "bad",
    ["", "   ", "example.com", "ftp://example.com/file", "mailto:a@b.c", "https://", "http://example.com:notaport/"],
)
def test_invalid_urls(bad):
    with pytest.raises(InvalidURLError):
        normalize_url(bad)
    assert not is_valid_url(bad)


def test_resolve_relative():
    assert resolve_url("https://example.com/dir/page", "../other#x") == "https://example.com/other"
    assert resolve_url("https://example.com/dir/", "sub//leaf") == "https://example.com/dir/sub/leaf"
    assert resolve_url("https://example.com/", "//cdn.example.org/a.js") == "https://cdn.example.org/a.js"


def test_host_of():
    assert host_of("https://WWW.Example.com:8080/x") == "www.example.com"
    assert host_of("not a url") == ""
