import asyncio
import time
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable

from config.logging_config import get_logger
from services.rival_audit_service.analyzers.page_evidence import PageEvidence, extract_evidence
from services.rival_audit_service.crawler.fetcher import PageFetcher
from services.rival_audit_service.crawler.page_classifier import classify_evidence
from services.rival_audit_service.crawler.urls import normalize_url, same_site
from services.rival_audit_service.errors import FetchError, SeedUnreachableError
from services.rival_audit_service.metrics import crawl_duration_seconds, pages_crawled_total, pages_skipped_total
from services.rival_audit_service.schemas.audit import SkippedPage

logger = get_logger(__name__)

# slack on top of the fetcher's own timeout before the crawler gives up on a fetch
_FETCH_GRACE_S = 1.0


@dataclass
class CrawlConfig:
    max_pages: int
    time_budget_s: float
    concurrency: int
    fetch_timeout_s: float


@dataclass
class CrawlResult:
    seed_url: str
    pages: list[PageEvidence] = field(default_factory=list)
    skipped: list[SkippedPage] = field(default_factory=list)
    frontier: list[str] = field(default_factory=list)
    visited: list[str] = field(default_factory=list)
    reached_max_pages: bool = False
    timed_out: bool = False

    @property
    def attempted(self) -> int:
        return len(self.pages) + len(self.skipped)


PageCallback = Callable[[PageEvidence], Awaitable[None]]


class SiteCrawler:
    """Breadth-first same-site crawler bounded by a page ceiling and a wall-clock budget.

    The ceiling counts attempted fetches, so pages that end up skipped use up
    budget too. ``reached_max_pages`` is only reported when the ceiling, not
    the timer, stopped the crawl while undiscovered work remained.
    """

    def __init__(self, fetcher: PageFetcher, clock: Callable[[], float] = time.monotonic):
        self.fetcher = fetcher
        self.clock = clock

    async def crawl(
        self,
        seed_url: str,
        config: CrawlConfig,
        frontier: list[str] | None = None,
        visited: list[str] | None = None,
        on_page: PageCallback | None = None,
    ) -> CrawlResult:
        seed = normalize_url(seed_url, seed_url) or seed_url
        resuming = frontier is not None
        result = CrawlResult(seed_url=seed)

        seen: set[str] = set(visited or [])
        # URLs (requested or redirect targets) whose content was already analyzed
        processed: set[str] = set(visited or [])
        queue: deque[str] = deque(u for u in (frontier if resuming else [seed]) if u not in seen)
        queued: set[str] = set(queue)
        deadline = self.clock() + config.time_budget_s
        attempted = 0
        started = time.monotonic()

        logger.info(
            "Crawl started",
            extra={"seed_url": seed, "resuming": resuming, "frontier": len(queue), "max_pages": config.max_pages},
        )

        while queue and attempted < config.max_pages:
            remaining = deadline - self.clock()
            if remaining <= 0:
                result.timed_out = True
                break

            batch: list[str] = []
            while queue and len(batch) < min(config.concurrency, config.max_pages - attempted):
                url = queue.popleft()
                queued.discard(url)
                if url in seen:
                    continue
                seen.add(url)
                batch.append(url)
            if not batch:
                continue
            attempted += len(batch)

            tasks = [asyncio.create_task(self._fetch_one(url, seed, config.fetch_timeout_s)) for url in batch]
            _, pending = await asyncio.wait(tasks, timeout=remaining)
            if pending:
                result.timed_out = True
                for t in pending:
                    t.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

            for url, task in zip(batch, tasks):
                if task in pending:
                    # unfinished work goes back to the frontier for a continuation
                    seen.discard(url)
                    attempted -= 1
                    queue.appendleft(url)
                    queued.add(url)
                    if url == seed and not resuming:
                        raise SeedUnreachableError(seed, "time budget elapsed before the seed page loaded")
                    continue

                outcome = task.result()
                if isinstance(outcome, SkippedPage):
                    if url == seed and not resuming:
                        raise SeedUnreachableError(seed, outcome.reason)
                    result.skipped.append(outcome)
                    pages_skipped_total.inc()
                    logger.info(
                        "Page skipped",
                        extra={"url": url, "reason": outcome.reason, "status_code": outcome.status_code},
                    )
                    continue

                final = normalize_url(outcome.final_url, outcome.final_url) or url
                if url in processed or final in processed:
                    # redirect alias of a page already analyzed in this crawl
                    duplicate = SkippedPage(url=url, reason=f"duplicate of {final}", status_code=outcome.status_code)
                    result.skipped.append(duplicate)
                    logger.info("Page skipped", extra={"url": url, "reason": duplicate.reason})
                    continue
                processed.update((url, final))
                seen.add(final)
                result.pages.append(outcome)
                pages_crawled_total.inc()
                if on_page is not None:
                    await on_page(outcome)
                for link in outcome.internal_links:
                    if link not in seen and link not in queued:
                        queue.append(link)
                        queued.add(link)

            if result.timed_out:
                break

        result.frontier = [u for u in queue if u not in seen]
        result.visited = sorted(seen)
        result.reached_max_pages = (
            not result.timed_out and attempted >= config.max_pages and bool(result.frontier)
        )
        crawl_duration_seconds.observe(time.monotonic() - started)

        logger.info(
            "Crawl finished",
            extra={
                "seed_url": seed,
                "pages": len(result.pages),
                "skipped": len(result.skipped),
                "frontier": len(result.frontier),
                "reached_max_pages": result.reached_max_pages,
                "timed_out": result.timed_out,
            },
        )
        return result

    async def _fetch_one(self, url: str, seed: str, timeout: float) -> PageEvidence | SkippedPage:
        try:
            resp = await asyncio.wait_for(self.fetcher.fetch_page(url, timeout), timeout + _FETCH_GRACE_S)
        except FetchError as e:
            return SkippedPage(url=url, reason=e.reason, status_code=e.status_code)
        except asyncio.TimeoutError:
            return SkippedPage(url=url, reason="timeout")

        if not 200 <= resp.status_code < 300:
            return SkippedPage(url=url, reason=f"HTTP {resp.status_code}", status_code=resp.status_code)
        if resp.content_type and "html" not in resp.content_type.lower():
            return SkippedPage(url=url, reason=f"non-HTML content ({resp.content_type})", status_code=resp.status_code)
        if resp.final_url and not same_site(seed, resp.final_url):
            return SkippedPage(url=url, reason=f"redirected off-site to {resp.final_url}", status_code=resp.status_code)

        try:
            evidence = extract_evidence(url, resp.final_url, resp.status_code, resp.html, root_url=seed)
            evidence = replace(evidence, page_type=classify_evidence(evidence, seed))
        except Exception as e:
            return SkippedPage(url=url, reason=f"parse error: {type(e).__name__}: {e}", status_code=resp.status_code)
        return evidence
