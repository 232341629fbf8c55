from urllib.parse import urljoin

from config.logging_config import get_logger
from services.rival_audit_service.analyzers.page_evidence import SiteEvidence
from services.rival_audit_service.crawler.fetcher import PageFetcher
from services.rival_audit_service.crawler.urls import site_root
from services.rival_audit_service.errors import FetchError

logger = get_logger(__name__)


def _blocked_root(robots_text: str) -> bool:
    lines = [l.strip() for l in robots_text.splitlines() if l.strip() and not l.strip().startswith("#")]
    ua_any = False
    disallows: list[str] = []
    for l in lines:
        if l.lower().startswith("user-agent:"):
            ua = l.split(":", 1)[1].strip()
            ua_any = (ua == "*" or ua == "")
        elif ua_any and l.lower().startswith("disallow:"):
            path = l.split(":", 1)[1].strip()
            disallows.append(path)
    return "/" in disallows


def _sitemap_directives(robots_text: str) -> list[str]:
    out = []
    for l in robots_text.splitlines():
        l = l.strip()
        if l.lower().startswith("sitemap:"):
            out.append(l.split(":", 1)[1].strip())
    return out


def _looks_like_sitemap(body: str) -> bool:
    head = body.lstrip()[:500].lower()
    return "<urlset" in head or "<sitemapindex" in head or (head.startswith("<?xml") and "sitemap" in body[:2000].lower())


async def _get(fetcher: PageFetcher, url: str, timeout: float) -> str | None:
    try:
        r = await fetcher.fetch_page(url, timeout)
    except FetchError as e:
        logger.info("Site resource unavailable", extra={"url": url, "reason": e.reason})
        return None
    if r.status_code >= 400:
        return None
    return r.html or ""


async def check_site(seed_url: str, fetcher: PageFetcher, timeout: float) -> SiteEvidence:
    root = site_root(seed_url)
    evidence = SiteEvidence(seed_url=seed_url)

    robots = await _get(fetcher, urljoin(root, "/robots.txt"), timeout)
    sitemap_candidates = [urljoin(root, "/sitemap.xml")]
    if robots is not None:
        evidence.robots_available = True
        evidence.robots_blocks_root = _blocked_root(robots)
        sitemap_candidates = _sitemap_directives(robots) + sitemap_candidates

    for candidate in dict.fromkeys(sitemap_candidates):
        body = await _get(fetcher, candidate, timeout)
        if body is not None and _looks_like_sitemap(body):
            evidence.sitemap_available = True
            evidence.sitemap_url = candidate
            break

    logger.info(
        "Site checks finished",
        extra={
            "seed_url": seed_url,
            "robots_available": evidence.robots_available,
            "robots_blocks_root": evidence.robots_blocks_root,
            "sitemap_url": evidence.sitemap_url,
        },
    )
    return evidence
