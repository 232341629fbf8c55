import pytest

from services.rival_audit_service.analyzers.site_checks import _blocked_root, check_site
from services.rival_audit_service.crawler.urls import normalize_url, same_site, site_root
from services.rival_audit_service.errors import FetchError
from site_fixtures import ROOT, FakeFetcher


def test_blocked_root_only_for_wildcard_agent():
    assert _blocked_root("User-agent: *\nDisallow: /\n")
    assert not _blocked_root("User-agent: *\nDisallow: /admin\n")
    assert not _blocked_root("User-agent: BadBot\nDisallow: /\n")


@pytest.mark.asyncio
async def test_check_site_follows_sitemap_directive():
    fetcher = FakeFetcher(
        {
            f"{ROOT}/robots.txt": "User-agent: *\nDisallow:\nSitemap: https://example.com/sitemap_index.xml\n",
            f"{ROOT}/sitemap_index.xml": "<?xml version='1.0'?><sitemapindex></sitemapindex>",
        }
    )
    site = await check_site(f"{ROOT}/", fetcher, timeout=5)
    assert site.robots_available
    assert not site.robots_blocks_root
    assert site.sitemap_url == f"{ROOT}/sitemap_index.xml"


@pytest.mark.asyncio
async def test_check_site_without_robots_tries_default_sitemap():
    fetcher = FakeFetcher({}, errors={f"{ROOT}/robots.txt": FetchError(f"{ROOT}/robots.txt", "timeout")})
    site = await check_site(f"{ROOT}/", fetcher, timeout=5)
    assert not site.robots_available
    assert site.sitemap_available
    assert site.sitemap_url == f"{ROOT}/sitemap.xml"


@pytest.mark.asyncio
async def test_check_site_rejects_html_sitemap():
    fetcher = FakeFetcher({f"{ROOT}/sitemap.xml": "<html><body>Not here</body></html>"})
    fetcher.statuses[f"{ROOT}/robots.txt"] = 404
    site = await check_site(f"{ROOT}/", fetcher, timeout=5)
    assert not site.robots_available
    assert not site.sitemap_available


@pytest.mark.parametrize(
    "href,expected",
    [
        ("/About/", "https://example.com/About"),
        ("https://EXAMPLE.com:443/a#top", "https://example.com/a"),
        ("?page=2", "https://example.com/blog?page=2"),
        ("mailto:hi@example.com", None),
        ("javascript:void(0)", None),
        ("ftp://example.com/file", None),
        ("", None),
    ],
)
def test_normalize_url(href, expected):
    assert normalize_url("https://example.com/blog", href) == expected


def test_same_site_and_root():
    assert same_site("https://example.com/", "https://www.example.com/about")
    assert not same_site("https://example.com/", "https://example.org/")
    assert same_site("http://localhost:8000/", "http://localhost:8000/a")
    assert site_root("https://example.com/a/b?c=1") == "https://example.com"
