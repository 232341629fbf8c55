from prometheus_client import Counter, Histogram

audits_started_total = Counter(
    'rival_audits_started_total',
    'Audits submitted',
    ['kind']
)

audits_finished_total = Counter(
    'rival_audits_finished_total',
    'Audit runs finished',
    ['status']
)

audit_items_classified_total = Counter(
    'rival_audit_items_classified_total',
    'Deficient items classified by the OFI classifier',
    ['status']
)

pages_crawled_total = Counter(
    'rival_audit_pages_crawled_total',
    'Pages fetched and analyzed'
)

pages_skipped_total = Counter(
    'rival_audit_pages_skipped_total',
    'Pages skipped during crawl'
)

cleanup_deleted_total = Counter(
    'rival_audit_cleanup_deleted_total',
    'Expired audits deleted by cleanup sweeps'
)

crawl_duration_seconds = Histogram(
    'rival_audit_crawl_duration_seconds',
    'Wall-clock duration of a crawl'
)
