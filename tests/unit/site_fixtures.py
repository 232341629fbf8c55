import asyncio
from datetime import datetime, timedelta, timezone

from services.rival_audit_service.crawler.fetcher import FetchResponse

ROOT = "https://example.com"

FILLER = (
    "lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua"
).split()

ROBOTS_TXT = "User-agent: *\nDisallow: /admin\nSitemap: https://example.com/sitemap.xml\n"
SITEMAP_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
    "<url><loc>https://example.com/</loc></url></urlset>"
)
JSONLD = '{"@context": "https://schema.org", "@type": "LocalBusiness", "name": "Acme Widgets"}'


def filler_paragraphs(words: int, per_paragraph: int = 50) -> str:
    out = []
    written = 0
    while written < words:
        n = min(per_paragraph, words - written)
        out.append("<p>" + " ".join(FILLER[(written + i) % len(FILLER)] for i in range(n)) + "</p>")
        written += n
    return "".join(out)


def page_html(
    path: str,
    title: str | None = "Acme Widgets | Durable Widgets",
    description: str | None = "Acme Widgets builds durable widgets for homes and offices, shipped in two days.",
    words: int = 650,
    images: str = "",
    links: tuple[str, ...] = ("/", "/contact", "/about"),
    extra_body: str = "",
    nav: bool = True,
) -> str:
    head = ['<meta name="viewport" content="width=device-width, initial-scale=1">']
    if title is not None:
        head.append(f"<title>{title}</title>")
    if description is not None:
        head.append(f'<meta name="description" content="{description}">')
    head.append(f'<link rel="canonical" href="{ROOT}{path}">')
    head.append(f'<script type="application/ld+json">{JSONLD}</script>')
    anchors = "".join(f'<li><a href="{l}">{l.strip("/") or "home"}</a></li>' for l in links)
    nav_html = f"<nav><ul>{anchors}</ul></nav>" if nav else f"<div>{anchors}</div>"
    return (
        f"<html><head>{''.join(head)}</head><body>{nav_html}"
        f"<h1>Acme Widgets</h1><h2>Overview</h2>{images}{filler_paragraphs(words)}{extra_body}"
        "</body></html>"
    )


CONTACT_EXTRA = (
    '<p>Call <a href="tel:+15551234567">(555) 123-4567</a></p>'
    "<address>123 Main Street, Springfield</address>"
    "<p>Open Monday - Friday 8am - 5pm</p>"
    '<form action="/send"><input name="email"><button type="submit">Send</button></form>'
)


def three_page_site() -> dict[str, str]:
    """Homepage and contact page pass everything; /about has no title, two images without alt and ~200 words."""
    return {
        f"{ROOT}/": page_html("/"),
        f"{ROOT}/contact": page_html("/contact", title="Contact Acme Widgets", extra_body=CONTACT_EXTRA),
        f"{ROOT}/about": page_html(
            "/about",
            title=None,
            words=200,
            images='<img src="/team.png"><img src="/shop.png">',
        ),
    }


class FakeFetcher:
    def __init__(
        self,
        pages: dict[str, str],
        errors: dict[str, Exception] | None = None,
        delays: dict[str, float] | None = None,
        redirects: dict[str, str] | None = None,
    ):
        self.pages = dict(pages)
        self.pages.setdefault(f"{ROOT}/robots.txt", ROBOTS_TXT)
        self.pages.setdefault(f"{ROOT}/sitemap.xml", SITEMAP_XML)
        self.errors = dict(errors or {})
        self.delays = dict(delays or {})
        self.redirects = dict(redirects or {})
        self.statuses: dict[str, int] = {}
        self.calls: list[str] = []

    async def fetch_page(self, url: str, timeout: float) -> FetchResponse:
        self.calls.append(url)
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        if url in self.errors:
            raise self.errors[url]
        final_url = self.redirects.get(url, url)
        if final_url not in self.pages:
            return FetchResponse(status_code=404, final_url=final_url, html="not found", content_type="text/html")
        return FetchResponse(
            status_code=self.statuses.get(final_url, 200),
            final_url=final_url,
            html=self.pages[final_url],
            content_type="text/html; charset=utf-8",
        )


class FrozenClock:
    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)

