import pytest

from app.features.matchmaking.jobs import HotspotJob, run_retention_job


@pytest.mark.asyncio
async def test_hotspot_job_run_once(service, make_scan, clock):
    await service.process_scan(make_scan("s1", "alice", "bob", clock.now, "Hall A"))

    result = await HotspotJob(service).run_once()

    assert result["success"] is True
    assert result["location_count"] == 1
    summary = await service.latest_hotspots()
    assert summary.hotspots[0].location == "Hall A"


@pytest.mark.asyncio
async def test_hotspot_job_failure_is_reported_not_raised(service, monkeypatch):
    async def broken():
        raise RuntimeError("boom")

    monkeypatch.setattr(service, "recompute_hotspots", broken)

    result = await HotspotJob(service).run_once()

    assert result["success"] is False
    assert result["error"] == "boom"


@pytest.mark.asyncio
async def test_hotspot_job_skips_overlapping_runs(service):
    job = HotspotJob(service)
    job.is_running = True

    result = await job.run_once()

    assert result == {"success": False, "error": "Already running"}


@pytest.mark.asyncio
async def test_retention_job(service, make_scan, clock):
    await service.process_scan(make_scan("s1", "alice", "bob"))
    clock.advance(hours=73)

    result = await run_retention_job(service)

    assert result == {
        "success": True,
        "claims_purged": 1,
        "scan_log_purged": 1,
        "hotspot_summaries_purged": 0,
    }


@pytest.mark.asyncio
async def test_retention_job_within_window_purges_nothing(service, make_scan, clock):
    await service.process_scan(make_scan("s1", "alice", "bob"))
    clock.advance(hours=1)

    result = await run_retention_job(service)

    assert result["claims_purged"] == 0


@pytest.mark.asyncio
async def test_retention_job_prunes_old_hotspot_summaries(service, clock):
    await service.recompute_hotspots()
    clock.advance(hours=1)
    await service.recompute_hotspots()
    clock.advance(hours=80)
    latest = await service.recompute_hotspots()

    result = await run_retention_job(service)

    assert result["hotspot_summaries_purged"] == 2
    assert await service.latest_hotspots() == latest


@pytest.mark.asyncio
async def test_retention_job_keeps_the_only_summary(service, clock):
    summary = await service.recompute_hotspots()
    clock.advance(hours=100)

    result = await run_retention_job(service)

    assert result["hotspot_summaries_purged"] == 0
    assert await service.latest_hotspots() == summary
