# File: tests/test_runner.py
from __future__ import annotations

from typing import AsyncIterator, Dict, Tuple

import pytest
import pytest_asyncio
from aiohttp import web

from conftest import FakeFetcher, html_page, serve_app
from directory_crawler.crawler.errors import (
    ConnectionFailed,
    CrawlError,
    FetchTimeout,
    InvalidResponse,
    PersistenceError,
    RecordNotFound,
)
from directory_crawler.crawler.models import CrawlStatus, FetchResult, TraversalState
from directory_crawler.crawler.runner import CrawlRunner
from directory_crawler.store import InMemoryWebsiteStore, WebsiteRecord

SITE = "https://site.test"


def page_with(scripts=(), headers=None, title="Site") -> FetchResult:
    tags = "".join(f'<script src="{src}"></script>' for src in scripts)
    body = f"<html><head><title>{title}</title>{tags}</head><body></body></html>"
    return FetchResult(
        url=f"{SITE}/",
        status=200,
        headers={"content-type": "text/html", **(headers or {})},
        body=body.encode(),
    )


@pytest.mark.asyncio()
async def test_crawl_one_returns_populated_result(basic_config):
    fetcher = FakeFetcher(
        {f"{SITE}/": page_with(["/js/jquery.min.js"], {"server": "nginx"}, title="Welcome")}
    )
    async with CrawlRunner(basic_config, fetcher=fetcher) as runner:
        result = await runner.crawl_one("http://SITE.test")

    assert fetcher.calls == [f"{SITE}/"]
    assert result.url == f"{SITE}/"
    assert result.http_status == 200
    assert result.depth == 0
    assert result.metadata.title == "Welcome"
    assert result.technologies == {"nginx", "jQuery"}


@pytest.mark.asyncio()
async def test_crawl_one_invalid_url_never_reaches_gate(basic_config):
    fetcher = FakeFetcher({})
    async with CrawlRunner(basic_config, fetcher=fetcher) as runner:
        with pytest.raises(CrawlError) as info:
            await runner.crawl_one("ftp://site.test/file")
        assert runner.gate.granted == 0
    assert info.value.kind == "invalid_url"
    assert fetcher.calls == []


@pytest.mark.asyncio()
async def test_crawl_one_retries_network_failures(basic_config):
    cfg = basic_config.model_copy(update={"retry_times": 2})
    fetcher = FakeFetcher({f"{SITE}/": html_page()})
    attempts = {"n": 0}
    original = fetcher.fetch

    async def flaky(url):
        attempts["n"] += 1
        if attempts["n"] <= 2:
            raise ConnectionFailed(url, "reset")
        return await original(url)

    fetcher.fetch = flaky
    runner = CrawlRunner(cfg, fetcher=fetcher)
    runner._backoff = lambda attempt: 0
    result = await runner.crawl_one(f"{SITE}/")
    assert result.http_status == 200
    assert attempts["n"] == 3


@pytest.mark.asyncio()
async def test_crawl_one_does_not_retry_http_errors(basic_config):
    cfg = basic_config.model_copy(update={"retry_times": 3})
    fetcher = FakeFetcher({})
    runner = CrawlRunner(cfg, fetcher=fetcher)
    runner._backoff = lambda attempt: 0
    with pytest.raises(CrawlError) as info:
        await runner.crawl_one(f"{SITE}/missing")
    assert isinstance(info.value.cause, InvalidResponse)
    assert fetcher.calls == [f"{SITE}/missing"]


@pytest.mark.asyncio()
async def test_batch_isolates_single_failure(basic_config):
    urls = [f"https://site{i}.test/" for i in range(5)]
    pages = {url: html_page(title=url) for url in urls}
    pages[urls[2]] = FetchTimeout(urls[2], "slow")
    fetcher = FakeFetcher(pages)

    async with CrawlRunner(basic_config, fetcher=fetcher) as runner:
        batch = await runner.crawl_batch(urls)

    assert len(batch.succeeded) == 4
    assert [f.url for f in batch.failed] == [urls[2]]
    assert batch.failed[0].error.kind == "timeout"
    assert batch.skipped == []
    assert batch.cancelled is False
    assert [r.url for r in batch.succeeded] == [u for u in urls if u != urls[2]]


@pytest.mark.asyncio()
async def test_batch_reports_invalid_url_as_failure(basic_config):
    fetcher = FakeFetcher({f"{SITE}/": html_page()})
    async with CrawlRunner(basic_config, fetcher=fetcher) as runner:
        batch = await runner.crawl_batch(["::bad::", f"{SITE}/"])
    assert [f.url for f in batch.failed] == ["::bad::"]
    assert len(batch.succeeded) == 1


@pytest.mark.asyncio()
async def test_batch_cancellation_skips_remaining(basic_config):
    cfg = basic_config.model_copy(update={"concurrency": 1})
    urls = [f"https://site{i}.test/" for i in range(4)]
    fetcher = FakeFetcher({url: html_page() for url in urls})
    runner = CrawlRunner(cfg, fetcher=fetcher)
    original = fetcher.fetch

    async def fetch_then_cancel(url):
        result = await original(url)
        runner.cancel()
        return result

    fetcher.fetch = fetch_then_cancel
    batch = await runner.crawl_batch(urls)
    assert len(batch.succeeded) == 1
    assert batch.skipped == urls[1:]
    assert batch.cancelled is True


@pytest.mark.slow
@pytest.mark.asyncio()
async def test_max_runtime_aborts_deep_crawl(basic_config):
    cfg = basic_config.model_copy(update={"max_runtime_seconds": 0.2, "timeout_ms": 100, "concurrency": 1})
    pages = {f"{SITE}/": html_page(*[f"/p{i}" for i in range(20)])}
    pages.update({f"{SITE}/p{i}": html_page() for i in range(20)})
    fetcher = FakeFetcher(pages, delay=0.05)

    async with CrawlRunner(cfg, fetcher=fetcher) as runner:
        outcome = await runner.deep_crawl(f"{SITE}/", max_depth=1)

    assert outcome.state is TraversalState.ABORTED
    assert 1 <= len(outcome.results) < 21


@pytest.mark.asyncio()
async def test_deep_crawl_uses_configured_depth(basic_config):
    cfg = basic_config.model_copy(update={"max_depth": 1})
    pages = {
        f"{SITE}/": html_page("/a"),
        f"{SITE}/a": html_page("/b"),
        f"{SITE}/b": html_page(),
    }
    async with CrawlRunner(cfg, fetcher=FakeFetcher(pages)) as runner:
        outcome = await runner.deep_crawl(f"{SITE}/")
    assert [r.url for r in outcome.results] == [f"{SITE}/", f"{SITE}/a"]


# --------------------------------------------------------------------------- #
#                                Persistence                                  #
# --------------------------------------------------------------------------- #


@pytest.fixture()
def store_with_site():
    store = InMemoryWebsiteStore()
    record = store.save(WebsiteRecord(domain="site.test", technologies=["Apache"]))
    return store, record


@pytest.mark.asyncio()
async def test_technology_union_is_monotonic(basic_config, store_with_site):
    store, record = store_with_site
    first = FakeFetcher({f"{SITE}/": page_with(["/js/react.min.js", "/js/jquery.min.js"], {"server": "nginx"})})
    async with CrawlRunner(basic_config, store, fetcher=first) as runner:
        after_first = runner.persist_result(record.id, await runner.crawl_one(SITE))

    second = FakeFetcher({f"{SITE}/": page_with([], title="Rebuilt")})
    async with CrawlRunner(basic_config, store, fetcher=second) as runner:
        after_second = runner.persist_result(record.id, await runner.crawl_one(SITE))

    assert set(after_first.technologies) == {"Apache", "React", "jQuery", "nginx"}
    assert set(after_second.technologies) >= set(after_first.technologies)
    assert after_second.metadata["title"] == "Rebuilt"
    assert after_second.last_crawl_status is CrawlStatus.SUCCESS
    assert after_second.last_crawled_at >= after_first.last_crawled_at


@pytest.mark.asyncio()
async def test_persist_failure_keeps_technologies_and_stamps_time(basic_config, store_with_site):
    store, record = store_with_site
    fetcher = FakeFetcher({f"{SITE}/": ConnectionFailed(f"{SITE}/", "refused")})
    runner = CrawlRunner(basic_config, store, fetcher=fetcher)
    with pytest.raises(CrawlError) as info:
        await runner.crawl_one(SITE)
    updated = runner.persist_result(record.id, info.value)

    assert updated.last_crawl_status is CrawlStatus.FAILED
    assert "refused" in updated.crawl_error
    assert updated.last_crawled_at is not None
    assert updated.technologies == ["Apache"]


@pytest.mark.asyncio()
async def test_persist_traversal_outcome_partial(basic_config, store_with_site):
    store, record = store_with_site
    pages = {
        f"{SITE}/": html_page("/ok", "/broken", title="Home", head='<script src="/_next/static/main.js"></script>'),
        f"{SITE}/ok": html_page(head='<script src="/js/vue.min.js"></script>'),
        f"{SITE}/broken": FetchTimeout(f"{SITE}/broken"),
    }
    runner = CrawlRunner(basic_config, store, fetcher=FakeFetcher(pages))
    outcome = await runner.deep_crawl(SITE, max_depth=1)
    updated = runner.persist_result(record.id, outcome)

    assert updated.last_crawl_status is CrawlStatus.PARTIAL
    assert set(updated.technologies) == {"Apache", "Next.js", "Vue"}
    assert updated.metadata["title"] == "Home"


@pytest.mark.asyncio()
async def test_persist_traversal_outcome_without_pages_is_failed(basic_config, store_with_site):
    store, record = store_with_site
    runner = CrawlRunner(basic_config, store, fetcher=FakeFetcher({f"{SITE}/": FetchTimeout(f"{SITE}/", "slow")}))
    outcome = await runner.deep_crawl(SITE, max_depth=2)
    updated = runner.persist_result(record.id, outcome)
    assert updated.last_crawl_status is CrawlStatus.FAILED
    assert updated.technologies == ["Apache"]


@pytest.mark.asyncio()
async def test_persistence_failure_propagates_and_result_survives(basic_config, store_with_site):
    store, record = store_with_site

    def broken(*args, **kwargs):
        raise OSError("disk full")

    store.update_crawl_status = broken
    runner = CrawlRunner(basic_config, store, fetcher=FakeFetcher({f"{SITE}/": html_page(title="Kept")}))
    result = await runner.crawl_one(SITE)
    with pytest.raises(PersistenceError) as info:
        runner.persist_result(record.id, result)
    assert info.value.result is result
    assert result.metadata.title == "Kept"


@pytest.mark.asyncio()
async def test_refresh_website_keeps_result_when_store_fails(basic_config, store_with_site):
    store, record = store_with_site

    def broken(*args, **kwargs):
        raise OSError("disk full")

    store.update_crawl_status = broken
    fetcher = FakeFetcher({f"{SITE}/": page_with(title="Crawled")})
    async with CrawlRunner(basic_config, store, fetcher=fetcher) as runner:
        with pytest.raises(PersistenceError) as info:
            await runner.refresh_website(record.id)

    assert fetcher.calls == [f"{SITE}/"]
    assert info.value.result.url == f"{SITE}/"
    assert info.value.result.metadata.title == "Crawled"


@pytest.mark.asyncio()
async def test_refresh_website_store_failure_chains_crawl_error(basic_config, store_with_site):
    store, record = store_with_site

    def broken(*args, **kwargs):
        raise PersistenceError("read-only store")

    store.update_crawl_status = broken
    fetcher = FakeFetcher({f"{SITE}/": FetchTimeout(f"{SITE}/", "slow")})
    async with CrawlRunner(basic_config, store, fetcher=fetcher) as runner:
        with pytest.raises(PersistenceError) as info:
            await runner.refresh_website(record.id)

    assert isinstance(info.value.result, CrawlError)
    assert info.value.__cause__ is info.value.result
    assert isinstance(info.value.result.cause, FetchTimeout)


def test_persist_unknown_record(basic_config):
    runner = CrawlRunner(basic_config, InMemoryWebsiteStore(), fetcher=FakeFetcher({}))
    with pytest.raises(RecordNotFound):
        runner.persist_result("missing", CrawlError(SITE, FetchTimeout(SITE)))


@pytest.mark.asyncio()
async def test_refresh_website_success(basic_config, store_with_site):
    store, record = store_with_site
    fetcher = FakeFetcher({f"{SITE}/": page_with(title="Fresh")})
    async with CrawlRunner(basic_config, store, fetcher=fetcher) as runner:
        updated = await runner.refresh_website("site.test")
    assert updated.id == record.id
    assert updated.title == "Fresh"
    assert updated.last_crawl_status is CrawlStatus.SUCCESS


@pytest.mark.asyncio()
async def test_refresh_website_failure_is_recorded_then_raised(basic_config, store_with_site):
    store, record = store_with_site
    fetcher = FakeFetcher({f"{SITE}/": FetchTimeout(f"{SITE}/", "slow")})
    async with CrawlRunner(basic_config, store, fetcher=fetcher) as runner:
        with pytest.raises(CrawlError):
            await runner.refresh_website(record.id)
    stored = store.find_by_id(record.id)
    assert stored.last_crawl_status is CrawlStatus.FAILED
    assert stored.last_crawled_at is not None


@pytest.mark.asyncio()
async def test_refresh_website_unknown_and_register(basic_config):
    store = InMemoryWebsiteStore()
    fetcher = FakeFetcher({"https://new.test/": html_page(title="New")})
    async with CrawlRunner(basic_config, store, fetcher=fetcher) as runner:
        with pytest.raises(RecordNotFound):
            await runner.refresh_website("new.test")
        created = await runner.refresh_website("new.test", register=True)
    assert created.domain == "https://new.test"
    assert created.last_crawl_status is CrawlStatus.SUCCESS
    assert store.find_by_key("new.test").id == created.id


# --------------------------------------------------------------------------- #
#                          End-to-end over real HTTP                          #
# --------------------------------------------------------------------------- #


@pytest_asyncio.fixture
async def small_site(unused_tcp_port: int) -> AsyncIterator[Tuple[str, Dict[str, int]]]:
    app = web.Application()
    hits: Dict[str, int] = {}

    def page(body: str, headers=None):
        async def handle(request):
            hits[request.path] = hits.get(request.path, 0) + 1
            return web.Response(text=body, content_type="text/html", headers=headers or {})

        return handle

    app.router.add_get("/", page(
        '<title>Root</title><script src="/static/jquery.min.js"></script>'
        '<a href="/page1">1</a><a href="/page2">2</a><a href="https://external.invalid/">x</a>',
        {"X-Powered-By": "aiohttp-test"},
    ))
    app.router.add_get("/page1", page('<a href="/page2">2</a><a href="/">home</a><a href="/gone">gone</a>'))
    app.router.add_get("/page2", page('<a href="/page1">1</a>'))

    async for url in serve_app(app, unused_tcp_port):
        yield url, hits


@pytest.mark.asyncio()
async def test_deep_crawl_against_http_server(http_config, small_site):
    base, hits = small_site
    async with CrawlRunner(http_config) as runner:
        outcome = await runner.deep_crawl(base, max_depth=2)

    assert outcome.state is TraversalState.COMPLETED
    assert [r.url for r in outcome.results] == [f"{base}/", f"{base}/page1", f"{base}/page2"]
    assert [f.url for f in outcome.failures] == [f"{base}/gone"]
    assert isinstance(outcome.failures[0].error.cause, InvalidResponse)
    assert {"jQuery", "aiohttp-test"} <= outcome.technologies()
    assert hits == {"/": 1, "/page1": 1, "/page2": 1}
    assert outcome.results[0].metadata.title == "Root"
