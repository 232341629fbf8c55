import pytest
import respx

from services.rival_audit_service.crawler.fetcher import HttpxFetcher
from services.rival_audit_service.crawler.site_crawler import CrawlConfig, SiteCrawler
from services.rival_audit_service.errors import FetchError, SeedUnreachableError
from services.rival_audit_service.schemas.audit import PageType
from site_fixtures import ROOT, FakeFetcher, page_html, three_page_site


def _config(**kw):
    data = dict(max_pages=10, time_budget_s=10.0, concurrency=2, fetch_timeout_s=2.0)
    data.update(kw)
    return CrawlConfig(**data)


@pytest.mark.asyncio
async def test_crawl_with_httpx_stops_at_page_ceiling():
    home = '<html><head><title>Home</title></head><body><a href="/a">A</a><a href="/b">B</a><a href="/c">C</a></body></html>'
    with respx.mock:
        respx.get("https://example.com/").respond(200, html=home)
        respx.get("https://example.com/a").respond(200, html="<html><body><h1>A</h1></body></html>")

        result = await SiteCrawler(HttpxFetcher("test-agent")).crawl(
            "https://example.com/", _config(max_pages=2, concurrency=1)
        )

    assert [p.url for p in result.pages] == ["https://example.com/", "https://example.com/a"]
    assert result.frontier == ["https://example.com/b", "https://example.com/c"]
    assert result.reached_max_pages is True
    assert result.timed_out is False


@pytest.mark.asyncio
async def test_non_html_and_missing_pages_are_skipped():
    home = '<html><body><a href="/guide.pdf">Guide</a><a href="/gone">Gone</a><a href="/ok">Ok</a></body></html>'
    with respx.mock:
        respx.get("https://example.com/").respond(200, html=home)
        respx.get("https://example.com/guide.pdf").respond(200, content=b"%PDF", headers={"content-type": "application/pdf"})
        respx.get("https://example.com/gone").respond(404, html="missing")
        respx.get("https://example.com/ok").respond(200, html="<html><body>fine</body></html>")

        result = await SiteCrawler(HttpxFetcher("test-agent")).crawl("https://example.com/", _config())

    assert sorted(p.url for p in result.pages) == ["https://example.com/", "https://example.com/ok"]
    skipped = {s.url: s for s in result.skipped}
    assert skipped["https://example.com/gone"].status_code == 404
    assert "non-HTML" in skipped["https://example.com/guide.pdf"].reason
    assert result.reached_max_pages is False
    assert result.frontier == []


@pytest.mark.asyncio
async def test_pages_are_classified():
    result = await SiteCrawler(FakeFetcher(three_page_site())).crawl(ROOT, _config())
    types = {p.url: p.page_type for p in result.pages}
    assert types == {
        f"{ROOT}/": PageType.HOMEPAGE,
        f"{ROOT}/contact": PageType.CONTACT,
        f"{ROOT}/about": PageType.GENERIC,
    }


@pytest.mark.asyncio
async def test_skipped_fetches_count_toward_the_ceiling():
    pages = {
        f"{ROOT}/": page_html("/", links=("/missing", "/about")),
        f"{ROOT}/about": page_html("/about", links=("/",)),
    }
    result = await SiteCrawler(FakeFetcher(pages)).crawl(ROOT, _config(max_pages=2, concurrency=1))
    assert len(result.pages) == 1
    assert [s.url for s in result.skipped] == [f"{ROOT}/missing"]
    assert result.frontier == [f"{ROOT}/about"]
    assert result.reached_max_pages is True


@pytest.mark.asyncio
async def test_failed_page_does_not_abort_crawl():
    fetcher = FakeFetcher(three_page_site(), errors={f"{ROOT}/contact": FetchError(f"{ROOT}/contact", "connection reset")})
    fetcher.statuses[f"{ROOT}/about"] = 500
    result = await SiteCrawler(fetcher).crawl(ROOT, _config())
    assert [p.url for p in result.pages] == [f"{ROOT}/"]
    reasons = {s.url: s.reason for s in result.skipped}
    assert reasons == {f"{ROOT}/contact": "connection reset", f"{ROOT}/about": "HTTP 500"}


@pytest.mark.asyncio
async def test_unreachable_seed_raises():
    fetcher = FakeFetcher({}, errors={f"{ROOT}/": FetchError(f"{ROOT}/", "dns failure")})
    with pytest.raises(SeedUnreachableError) as exc:
        await SiteCrawler(fetcher).crawl(ROOT, _config())
    assert "dns failure" in str(exc.value)


@pytest.mark.asyncio
async def test_seed_returning_404_raises():
    with pytest.raises(SeedUnreachableError):
        await SiteCrawler(FakeFetcher({})).crawl(ROOT, _config())


@pytest.mark.asyncio
async def test_time_budget_returns_partial_result():
    pages = {
        f"{ROOT}/": page_html("/", links=("/fast", "/slow")),
        f"{ROOT}/fast": page_html("/fast", links=("/",)),
        f"{ROOT}/slow": page_html("/slow", links=("/",)),
    }
    fetcher = FakeFetcher(pages, delays={f"{ROOT}/slow": 5.0})
    result = await SiteCrawler(fetcher).crawl(ROOT, _config(time_budget_s=0.3, concurrency=5))

    assert result.timed_out is True
    assert result.reached_max_pages is False
    assert sorted(p.url for p in result.pages) == [f"{ROOT}/", f"{ROOT}/fast"]
    assert result.frontier == [f"{ROOT}/slow"]
    assert f"{ROOT}/slow" not in result.visited


@pytest.mark.asyncio
async def test_resume_from_frontier_skips_visited_pages():
    fetcher = FakeFetcher(three_page_site())
    crawler = SiteCrawler(fetcher)
    first = await crawler.crawl(ROOT, _config(max_pages=1))
    assert first.reached_max_pages is True
    assert first.frontier == [f"{ROOT}/contact", f"{ROOT}/about"]

    fetcher.calls.clear()
    seen = []

    async def on_page(evidence):
        seen.append(evidence.url)

    second = await crawler.crawl(ROOT, _config(max_pages=10), frontier=first.frontier, visited=first.visited, on_page=on_page)
    assert f"{ROOT}/" not in fetcher.calls
    assert sorted(seen) == [f"{ROOT}/about", f"{ROOT}/contact"]
    assert second.frontier == []
    assert second.reached_max_pages is False


@pytest.mark.asyncio
async def test_redirect_to_crawled_page_is_not_analyzed_twice():
    pages = {
        f"{ROOT}/": page_html("/", links=("/home", "/about")),
        f"{ROOT}/about": page_html("/about", links=("/",)),
    }
    fetcher = FakeFetcher(pages, redirects={f"{ROOT}/home": f"{ROOT}/"})
    stored = []

    async def on_page(evidence):
        stored.append(evidence.url)

    result = await SiteCrawler(fetcher).crawl(ROOT, _config(), on_page=on_page)

    assert [p.url for p in result.pages] == [f"{ROOT}/", f"{ROOT}/about"]
    assert stored == [f"{ROOT}/", f"{ROOT}/about"]
    [duplicate] = result.skipped
    assert duplicate.url == f"{ROOT}/home"
    assert duplicate.reason == f"duplicate of {ROOT}/"


@pytest.mark.asyncio
@pytest.mark.parametrize("links", [("/old-services", "/services"), ("/services", "/old-services")])
async def test_aliases_in_one_batch_yield_a_single_page(links):
    pages = {
        f"{ROOT}/": page_html("/", links=links),
        f"{ROOT}/services": page_html("/services", links=("/",)),
    }
    fetcher = FakeFetcher(pages, redirects={f"{ROOT}/old-services": f"{ROOT}/services"})
    result = await SiteCrawler(fetcher).crawl(ROOT, _config(concurrency=5))

    assert len(result.pages) == 2
    assert sorted(p.final_url for p in result.pages) == [f"{ROOT}/", f"{ROOT}/services"]
    assert [s.reason for s in result.skipped] == [f"duplicate of {ROOT}/services"]
