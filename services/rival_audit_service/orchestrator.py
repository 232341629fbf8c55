import asyncio
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable

from config.logging_config import AuditLogger, get_logger
from services.rival_audit_service.analyzers.ofi_classifier import CriteriaContextProvider, apply_classification
from services.rival_audit_service.analyzers.page_evidence import PageEvidence, SiteEvidence
from services.rival_audit_service.analyzers.site_checks import check_site
from services.rival_audit_service.assembly import assemble_results, page_issue_summaries, summarize
from services.rival_audit_service.checklist import get_question
from services.rival_audit_service.config import Settings, settings as default_settings
from services.rival_audit_service.crawler.fetcher import PageFetcher, PlaywrightFetcher
from services.rival_audit_service.crawler.site_crawler import CrawlConfig, CrawlResult, SiteCrawler
from services.rival_audit_service.crawler.urls import normalize_url
from services.rival_audit_service.errors import LifecycleConflictError
from services.rival_audit_service.events.audit_completed import AuditCompletedEvent, publish_audit_completed
from services.rival_audit_service.lifecycle import AuditLifecycleManager
from services.rival_audit_service.metrics import audits_finished_total, audits_started_total
from services.rival_audit_service.schemas.audit import (
    AuditItem,
    AuditOptions,
    AuditRecord,
    AuditStatus,
    CrawlState,
    CriteriaContext,
    ItemOverrideRequest,
    ItemSource,
    ItemStatus,
    ManualOverride,
    Section,
)
from services.rival_audit_service.schemas.report import BulkReclassificationResult, ReclassificationResult

logger = get_logger(__name__)
audit_logger = AuditLogger()

EventPublisher = Callable[..., Awaitable[None]]


class AuditOrchestrator:
    """Runs audits in the background: crawl, evaluate, classify, assemble, complete.

    A record is completed in one update with its full result tree or failed
    with nothing but an error message. Continuations re-crawl from the saved
    frontier and swap in the merged results only once they are complete.
    """

    def __init__(
        self,
        lifecycle: AuditLifecycleManager,
        fetcher: PageFetcher,
        settings: Settings = default_settings,
        js_fetcher: PageFetcher | None = None,
        publisher: EventPublisher = publish_audit_completed,
        crawler_clock: Callable[[], float] = time.monotonic,
    ):
        self.lifecycle = lifecycle
        self.store = lifecycle.store
        self.fetcher = fetcher
        self.settings = settings
        self.js_fetcher = js_fetcher
        self.publisher = publisher
        self.crawler_clock = crawler_clock
        self._tasks: dict[int, asyncio.Task] = {}

    async def run_audit(self, url: str, options: AuditOptions | None = None, user_id: str | None = None) -> AuditRecord:
        normalized = normalize_url(url, url) or url
        record = await self.lifecycle.create(normalized, options, user_id)
        audits_started_total.labels(kind="new").inc()
        self.lifecycle.claim(record.id)
        self._spawn(record.id, self._execute(record.id))
        return record

    async def continue_audit(self, audit_id: int) -> tuple[AuditRecord, bool]:
        record = await self.lifecycle.get_valid(audit_id)
        if record.status in (AuditStatus.PENDING, AuditStatus.PROCESSING) or self.lifecycle.in_flight(audit_id):
            raise LifecycleConflictError(
                LifecycleConflictError.AUDIT_IN_PROGRESS,
                f"Audit {audit_id} is still {record.status.value}",
                audit_id,
            )
        if record.status == AuditStatus.FAILED:
            raise LifecycleConflictError(
                LifecycleConflictError.AUDIT_FAILED,
                f"Audit {audit_id} failed and cannot be continued",
                audit_id,
            )
        if not record.reached_max_pages:
            return record, False

        self.lifecycle.claim(audit_id)
        try:
            record = await self.lifecycle.extend(audit_id)
        except Exception:
            self.lifecycle.release(audit_id)
            raise
        audit_logger.log_continuation_requested(audit_id, len(record.crawl_state.frontier))
        audits_started_total.labels(kind="continuation").inc()
        self._spawn(audit_id, self._continue(audit_id))
        return record, True

    async def _get_completed(self, audit_id: int) -> AuditRecord:
        record = await self.lifecycle.get_valid(audit_id)
        if record.status != AuditStatus.COMPLETED:
            raise LifecycleConflictError(
                LifecycleConflictError.AUDIT_NOT_COMPLETED,
                f"Audit {audit_id} is {record.status.value}, not completed",
                audit_id,
            )
        return record

    async def override_item(self, audit_id: int, name: str, request: ItemOverrideRequest) -> AuditRecord:
        # holding the claim keeps a continuation from starting on a snapshot taken before this write
        self.lifecycle.claim(audit_id)
        try:
            return await self._override_item(audit_id, name, request)
        finally:
            self.lifecycle.release(audit_id)

    async def _override_item(self, audit_id: int, name: str, request: ItemOverrideRequest) -> AuditRecord:
        record = await self._get_completed(audit_id)

        page_url = normalize_url(request.page_url, request.page_url) if request.page_url else None
        matches = [
            (section, idx, item)
            for section, items in record.results.items()
            for idx, item in enumerate(items)
            if name in (item.question_id, item.name)
            and (request.section is None or section == request.section)
            and (page_url is None or item.page_url == page_url)
        ]
        if not matches:
            raise LifecycleConflictError(
                LifecycleConflictError.ITEM_NOT_FOUND, f"Item {name!r} not found in audit {audit_id}", audit_id
            )
        if len(matches) > 1:
            raise LifecycleConflictError(
                LifecycleConflictError.ITEM_AMBIGUOUS,
                f"Item {name!r} matches {len(matches)} items; pass section and page_url",
                audit_id,
            )

        section, idx, item = matches[0]
        if request.status == ItemStatus.PRIORITY_OFI and item.rationale is None:
            raise LifecycleConflictError(
                LifecycleConflictError.ITEM_NOT_CLASSIFIED,
                f"Item {name!r} was never classified and cannot be marked Priority OFI",
                audit_id,
            )

        updated = item.model_copy(
            update={
                "status": request.status,
                "notes": request.notes if request.notes is not None else item.notes,
                "source": ItemSource.MANUAL,
                "manual_override": ManualOverride(
                    previous_status=item.status,
                    status=request.status,
                    overridden_at=self.lifecycle.now(),
                ),
            }
        )
        results = {s: list(items) for s, items in record.results.items()}
        results[section][idx] = updated
        record = await self.lifecycle.update_completed(
            audit_id,
            results=results,
            summary=summarize(results),
            page_issues=page_issue_summaries(results, self.settings.top_issues_per_page),
        )
        audit_logger.log_item_overridden(audit_id, item.question_id, item.status.value, request.status.value)
        return record

    async def reclassify(
        self,
        audit_id: int,
        criteria_overrides: dict[str, CriteriaContext] | None = None,
        dry_run: bool = False,
    ) -> ReclassificationResult:
        """Re-run the classifier over the stored OFI and Priority OFI items of a completed audit.

        ``criteria_overrides`` are merged over the audit's own overrides and
        kept on the record so later continuations classify the same way.
        Manual items are left untouched.
        """
        self.lifecycle.claim(audit_id)
        try:
            record = await self._get_completed(audit_id)
            overrides = {**record.options.criteria_overrides, **(criteria_overrides or {})}
            provider = CriteriaContextProvider(overrides)

            results: dict[Section, list[AuditItem]] = {}
            processed = downgraded = upgraded = 0
            for section, items in record.results.items():
                updated = []
                for item in items:
                    if item.source == ItemSource.MANUAL or item.status not in (ItemStatus.PRIORITY_OFI, ItemStatus.OFI):
                        updated.append(item)
                        continue
                    question = get_question(item.question_id)
                    new = apply_classification(item, provider.context_for(question, item.page_type))
                    processed += 1
                    if item.status == ItemStatus.PRIORITY_OFI and new.status == ItemStatus.OFI:
                        downgraded += 1
                    elif item.status == ItemStatus.OFI and new.status == ItemStatus.PRIORITY_OFI:
                        upgraded += 1
                    updated.append(new)
                results[section] = updated

            summary = summarize(results)
            if not dry_run:
                record = await self.lifecycle.update_completed(
                    audit_id,
                    results=results,
                    summary=summary,
                    page_issues=page_issue_summaries(results, self.settings.top_issues_per_page),
                    options=record.options.model_copy(update={"criteria_overrides": overrides}),
                )
            audit_logger.log_reclassified(audit_id, processed, downgraded, upgraded, dry_run=dry_run)
        finally:
            self.lifecycle.release(audit_id)

        return ReclassificationResult(
            id=audit_id,
            url=record.url,
            processed=processed,
            downgraded=downgraded,
            upgraded=upgraded,
            unchanged=processed - downgraded - upgraded,
            dry_run=dry_run,
            summary=summary,
        )

    async def reclassify_recent(
        self,
        days: int,
        criteria_overrides: dict[str, CriteriaContext] | None = None,
        dry_run: bool = False,
    ) -> BulkReclassificationResult:
        end = self.lifecycle.now()
        audits = await self.store.list_completed_between(end - timedelta(days=days), end)
        outcome = BulkReclassificationResult(audits_processed=0, processed=0, downgraded=0, upgraded=0, dry_run=dry_run)
        for audit in audits:
            try:
                result = await self.reclassify(audit.id, criteria_overrides, dry_run=dry_run)
            except LifecycleConflictError as e:
                logger.warning("Skipping audit during bulk reclassification", extra={"audit_id": audit.id, "reason": e.reason})
                outcome.skipped.append(audit.id)
                continue
            outcome.audits_processed += 1
            outcome.processed += result.processed
            outcome.downgraded += result.downgraded
            outcome.upgraded += result.upgraded
            outcome.audits.append(result)
        return outcome

    async def wait_for(self, audit_id: int) -> None:
        task = self._tasks.get(audit_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn(self, audit_id: int, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks[audit_id] = task

        def _done(t: asyncio.Task) -> None:
            if self._tasks.get(audit_id) is t:
                del self._tasks[audit_id]

        task.add_done_callback(_done)

    def _crawl_config(self, options: AuditOptions) -> CrawlConfig:
        s = self.settings
        return CrawlConfig(
            max_pages=options.max_pages or s.max_pages,
            time_budget_s=options.crawl_time_budget_s or s.crawl_time_budget_s,
            concurrency=options.concurrency or s.crawl_concurrency,
            fetch_timeout_s=options.timeout or s.fetch_timeout_s,
        )

    def _page_fetcher(self, options: AuditOptions) -> PageFetcher:
        if options.js_render:
            return self.js_fetcher or PlaywrightFetcher(self.settings.user_agent)
        return self.fetcher

    async def _crawl(self, record: AuditRecord, config: CrawlConfig, resuming: bool) -> tuple[CrawlResult, SiteEvidence]:
        await self.lifecycle.ensure_ttl(
            record.id, timedelta(seconds=config.time_budget_s + self.settings.ttl_headroom_s)
        )
        site = await check_site(record.url, self.fetcher, config.fetch_timeout_s)

        async def _persist(evidence: PageEvidence) -> None:
            await self.store.store_page_evidence(record.id, evidence.to_dict())

        audit_logger.log_crawl_started(record.id, record.url, config.max_pages, resuming=resuming)
        started = time.monotonic()
        crawler = SiteCrawler(self._page_fetcher(record.options), clock=self.crawler_clock)
        if resuming:
            crawl = await crawler.crawl(
                record.url,
                config,
                frontier=record.crawl_state.frontier,
                visited=record.crawl_state.visited,
                on_page=_persist,
            )
        else:
            crawl = await crawler.crawl(record.url, config, on_page=_persist)
        audit_logger.log_crawl_completed(
            record.id, len(crawl.pages), len(crawl.skipped), crawl.reached_max_pages, time.monotonic() - started
        )
        return crawl, site

    def _assemble(self, record: AuditRecord, pages: list[PageEvidence], site: SiteEvidence, previous=None) -> dict[str, Any]:
        provider = CriteriaContextProvider(record.options.criteria_overrides)
        results = assemble_results(pages, site, provider, previous)
        return {
            "results": results,
            "summary": summarize(results),
            "page_issues": page_issue_summaries(results, self.settings.top_issues_per_page),
            "pages_analyzed": len(pages),
        }

    async def _execute(self, audit_id: int) -> None:
        try:
            record = await self.lifecycle.start_processing(audit_id)
            config = self._crawl_config(record.options)
            crawl, site = await self._crawl(record, config, resuming=False)
            site.skipped_pages = list(crawl.skipped)
            payload = self._assemble(record, crawl.pages, site)
            record = await self.lifecycle.complete(
                audit_id,
                **payload,
                reached_max_pages=crawl.reached_max_pages,
                crawl_state=CrawlState(frontier=crawl.frontier, visited=crawl.visited, skipped=crawl.skipped),
                metadata={**record.metadata, "timed_out": crawl.timed_out, "continuations": 0},
            )
            audits_finished_total.labels(status="completed").inc()
        except Exception as e:
            if isinstance(e, LifecycleConflictError) and e.reason == LifecycleConflictError.AUDIT_NOT_FOUND:
                logger.warning("Audit deleted while running", extra={"audit_id": audit_id})
                return
            audit_logger.log_audit_failed(audit_id, e)
            audits_finished_total.labels(status="failed").inc()
            try:
                await self.lifecycle.fail(audit_id, f"{type(e).__name__}: {e}")
            except LifecycleConflictError as conflict:
                logger.warning(
                    "Could not mark audit failed",
                    extra={"audit_id": audit_id, "reason": conflict.reason},
                )
            return
        finally:
            self.lifecycle.release(audit_id)

        await self._publish(record, continuation=False)

    async def _continue(self, audit_id: int) -> None:
        record = None
        try:
            record = await self.lifecycle.get_valid(audit_id)
            config = self._crawl_config(record.options)
            crawl, site = await self._crawl(record, config, resuming=True)
            skipped = [*record.crawl_state.skipped, *crawl.skipped]
            site.skipped_pages = skipped
            pages = [PageEvidence.from_dict(p) for p in await self.store.get_page_evidence(audit_id)]
            previous = {item.key: item for item in record.iter_items()}
            payload = self._assemble(record, pages, site, previous)
            metadata = {k: v for k, v in record.metadata.items() if k != "continuation_error"}
            metadata["continuations"] = int(metadata.get("continuations", 0)) + 1
            metadata["timed_out"] = crawl.timed_out
            record = await self.lifecycle.update_completed(
                audit_id,
                **payload,
                reached_max_pages=crawl.reached_max_pages,
                crawl_state=CrawlState(frontier=crawl.frontier, visited=crawl.visited, skipped=skipped),
                metadata=metadata,
            )
            audits_finished_total.labels(status="continued").inc()
        except Exception as e:
            audit_logger.log_continuation_failed(audit_id, e)
            audits_finished_total.labels(status="continuation_failed").inc()
            if record is not None:
                try:
                    await self.lifecycle.update_completed(
                        audit_id, metadata={**record.metadata, "continuation_error": f"{type(e).__name__}: {e}"}
                    )
                except LifecycleConflictError as conflict:
                    logger.warning(
                        "Could not record continuation error",
                        extra={"audit_id": audit_id, "reason": conflict.reason},
                    )
            return
        finally:
            self.lifecycle.release(audit_id)

        await self._publish(record, continuation=True)

    async def _publish(self, record: AuditRecord, continuation: bool) -> None:
        if not self.settings.rabbitmq_url:
            return
        event = AuditCompletedEvent.build(
            audit_id=record.id,
            url=record.url,
            summary=record.summary.model_dump() if record.summary else {},
            pages_analyzed=record.pages_analyzed,
            reached_max_pages=record.reached_max_pages,
            continuation=continuation,
        )
        try:
            await self.publisher(
                self.settings.rabbitmq_url, event, max_attempts=self.settings.event_publish_max_attempts
            )
        except Exception as e:
            logger.error(
                "Failed to publish audit completed event",
                extra={"audit_id": record.id, "error": str(e)},
            )
