import asyncio

import pytest

from services.rival_audit_service.cleanup import CleanupService


@pytest.mark.asyncio
async def test_run_cleanup_tracks_counts(lifecycle, clock):
    await lifecycle.create("https://a.example/")
    await lifecycle.create("https://b.example/")
    clock.advance(minutes=31)
    await lifecycle.create("https://c.example/")

    service = CleanupService(lifecycle, interval_s=60)
    assert await service.run_cleanup() == 2
    assert await service.run_cleanup() == 0

    status = await service.status()
    assert status["runs"] == 2
    assert status["last_deleted"] == 0
    assert status["total_deleted"] == 2
    assert status["audits"]["total"] == 1
    assert status["running"] is False


@pytest.mark.asyncio
async def test_force_cleanup_reports_before_and_after(lifecycle, clock):
    await lifecycle.create("https://a.example/")
    clock.advance(minutes=31)
    await lifecycle.create("https://b.example/")

    service = CleanupService(lifecycle)
    result = await service.force_cleanup()
    assert result["deleted"] == 1
    assert result["before"]["total"] == 2
    assert result["after"]["total"] == 1

    purged = await service.force_cleanup(purge_all=True)
    assert purged["deleted"] == 1
    assert purged["after"]["total"] == 0


@pytest.mark.asyncio
async def test_background_loop_starts_and_stops(lifecycle, clock):
    await lifecycle.create("https://a.example/")
    clock.advance(hours=1)

    service = CleanupService(lifecycle, interval_s=0.01)
    service.start()
    assert service.running
    for _ in range(50):
        if service.runs:
            break
        await asyncio.sleep(0.01)
    await service.stop()

    assert not service.running
    assert service.total_deleted == 1
    assert await lifecycle.get_stats() == {"total": 0, "pending": 0, "processing": 0, "completed": 0, "failed": 0, "in_flight": 0}
