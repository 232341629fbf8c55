from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from services.rival_audit_service.db.repository import SqlAlchemyAuditStore
from services.rival_audit_service.db.session import build_sessionmaker, init_db
from services.rival_audit_service.errors import AuditNotFoundError
from services.rival_audit_service.lifecycle import AuditLifecycleManager
from services.rival_audit_service.schemas.audit import AuditOptions, AuditStatus, AuditSummary, CriteriaContext, Section
from site_fixtures import FrozenClock


async def _lifecycle(tmp_path, clock):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'audits.db'}")
    await init_db(engine)
    store = SqlAlchemyAuditStore(build_sessionmaker(engine))
    return engine, AuditLifecycleManager(store, ttl=timedelta(minutes=30), clock=clock)


@pytest.mark.asyncio
async def test_sql_store_round_trips_records(tmp_path):
    clock = FrozenClock()
    engine, lifecycle = await _lifecycle(tmp_path, clock)
    try:
        options = AuditOptions(max_pages=5, criteria_overrides={"https": CriteriaContext(stability=True)})
        record = await lifecycle.create("https://example.com/", options, user_id="u-1")
        assert record.id >= 1

        loaded = await lifecycle.get(record.id)
        assert loaded == record
        assert loaded.options.criteria_overrides["https"].stability is True

        await lifecycle.start_processing(record.id)
        done = await lifecycle.complete(
            record.id, {s: [] for s in Section}, AuditSummary(total=0), pages_analyzed=2
        )
        assert (await lifecycle.get(record.id)) == done
        assert done.status == AuditStatus.COMPLETED
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_sql_store_page_evidence_and_expiry(tmp_path):
    clock = FrozenClock()
    engine, lifecycle = await _lifecycle(tmp_path, clock)
    store = lifecycle.store
    try:
        old = await lifecycle.create("https://a.example/")
        await store.store_page_evidence(old.id, {"url": "https://a.example/", "word_count": 10})
        await store.store_page_evidence(old.id, {"url": "https://a.example/", "word_count": 12})
        assert await store.get_page_evidence(old.id) == [{"url": "https://a.example/", "word_count": 12}]

        clock.advance(minutes=20)
        fresh = await lifecycle.create("https://b.example/")
        clock.advance(minutes=15)

        assert await lifecycle.cleanup() == 1
        assert await lifecycle.get(old.id) is None
        assert await store.get_page_evidence(old.id) == []
        assert await lifecycle.get(fresh.id) is not None

        stats = await lifecycle.get_stats()
        assert stats["total"] == 1
        assert stats["pending"] == 1

        with pytest.raises(AuditNotFoundError):
            await store.update_audit(old.id, {"pages_analyzed": 1})
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_sql_store_lists_completed_audits_in_window(tmp_path):
    clock = FrozenClock()
    engine, lifecycle = await _lifecycle(tmp_path, clock)
    try:
        done = await lifecycle.create("https://a.example/")
        await lifecycle.start_processing(done.id)
        await lifecycle.complete(done.id, {s: [] for s in Section}, AuditSummary())
        await lifecycle.create("https://b.example/")

        start = clock() - timedelta(days=1)
        listed = await lifecycle.store.list_completed_between(start, clock() + timedelta(minutes=1))
        assert [r.id for r in listed] == [done.id]
        assert await lifecycle.store.list_completed_between(start, clock() - timedelta(hours=1)) == []
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_sql_cleanup_keeps_audits_extended_before_the_sweep(tmp_path):
    clock = FrozenClock()
    engine, lifecycle = await _lifecycle(tmp_path, clock)
    store = lifecycle.store
    try:
        kept = await lifecycle.create("https://a.example/")
        dropped = await lifecycle.create("https://b.example/")
        await store.store_page_evidence(kept.id, {"url": "https://a.example/"})
        await store.store_page_evidence(dropped.id, {"url": "https://b.example/"})

        clock.advance(minutes=30)
        await lifecycle.extend(kept.id)
        clock.advance(seconds=1)

        assert await store.delete_expired(clock()) == 1
        assert await lifecycle.get(dropped.id) is None
        assert await store.get_page_evidence(dropped.id) == []
        assert (await lifecycle.get(kept.id)).expires_at > clock()
        assert await store.get_page_evidence(kept.id) == [{"url": "https://a.example/"}]

        assert await store.delete_expired(clock()) == 0
    finally:
        await engine.dispose()
