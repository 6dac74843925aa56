import asyncio
from datetime import timedelta

import pytest

from app.features.matchmaking.domain import (
    ConflictError,
    MeetingStatus,
    NotFoundError,
    TimeSlot,
    UnavailableError,
)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr("app.features.matchmaking.services.retry.settings.BOUNDARY_RETRY_BASE_DELAY", 0)


@pytest.mark.asyncio
async def test_duplicate_scan_is_counted_once(service, make_scan):
    first = await service.process_scan(make_scan("s1", "alice", "bob"))
    second = await service.process_scan(make_scan("s1", "alice", "bob"))

    assert first.accepted is True
    assert first.edge.weight == 1
    assert second.accepted is False
    assert second.reason == "duplicate"
    assert (await service.get_edge("alice", "bob")).weight == 1


@pytest.mark.asyncio
async def test_concurrent_distinct_scans_all_land(service, make_scan):
    scans = [make_scan(f"s{i}", "alice" if i % 2 else "bob", "bob" if i % 2 else "alice") for i in range(50)]

    await asyncio.gather(*(service.process_scan(scan) for scan in scans))

    assert (await service.get_edge("alice", "bob")).weight == 50


@pytest.mark.asyncio
async def test_failed_aggregation_releases_the_claim(service, container, make_scan, monkeypatch):
    original = container.graph.apply_scans
    calls = {"n": 0}

    async def down_once(scans):
        calls["n"] += 1
        if calls["n"] == 1:
            raise UnavailableError("graph store down")
        return await original(scans)

    monkeypatch.setattr(container.graph, "apply_scans", down_once)

    outcome = await service.process_scan(make_scan("s1", "alice", "bob"))

    assert outcome.accepted is True
    assert outcome.edge.weight == 1
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_cancelled_scan_releases_its_claim(service, container, make_scan, monkeypatch):
    original = container.graph.apply_scans
    entered = asyncio.Event()

    async def stalled(scans):
        entered.set()
        await asyncio.Event().wait()

    monkeypatch.setattr(container.graph, "apply_scans", stalled)
    task = asyncio.create_task(service.process_scan(make_scan("c1", "alice", "bob")))
    await entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    monkeypatch.setattr(container.graph, "apply_scans", original)
    outcome = await service.process_scan(make_scan("c1", "alice", "bob"))

    assert outcome.accepted is True
    assert outcome.edge.weight == 1


@pytest.mark.asyncio
async def test_webhook_redelivery_dedups(service):
    payload = {"qr_data": "BADGE:bob", "scanner": "alice", "zone": "Expo"}

    first = await service.scan_webhook(payload)
    second = await service.scan_webhook(payload)

    assert first.accepted is True
    assert second.reason == "duplicate"


@pytest.mark.asyncio
async def test_ingest_batch_mixes_attendees_and_scans(service, clock):
    occurred = clock.now.isoformat()
    summary = await service.ingest_batch(
        [
            {"actorId": "frank", "goals": ["hiring"], "name": "Frank"},
            {"scanId": "b1", "scanner": "frank", "target": "alice", "timestamp": occurred},
            {"scanId": "b2", "scanner": "bob", "target": "bob", "timestamp": occurred},
            {"scanId": "b1", "scanner": "frank", "target": "alice", "timestamp": occurred},
            {"scanId": "b3", "scanner": "frank"},
            {"type": "attendee"},
        ]
    )

    assert summary.count == 2
    assert summary.attendees == 1
    assert summary.scans == 1
    assert [(r.index, r.item_type) for r in summary.rejected] == [
        (2, "scan"),
        (3, "scan"),
        (4, "scan"),
        (5, "attendee"),
    ]
    assert summary.rejected[0].reason == "self_scan"
    assert summary.rejected[1].reason == "duplicate"
    assert (await service.identity.get_attendee("frank")).name == "Frank"
    assert (await service.get_edge("alice", "frank")).weight == 1


@pytest.mark.asyncio
async def test_ingest_batch_failure_applies_nothing_and_releases(service, container, clock, monkeypatch):
    occurred = clock.now.isoformat()
    items = [
        {"scanId": "b1", "scanner": "alice", "target": "bob", "timestamp": occurred},
        {"scanId": "b2", "scanner": "alice", "target": "carol", "timestamp": occurred},
    ]

    async def broken(scans):
        raise ConflictError("not retried")

    original = container.graph.apply_scans
    monkeypatch.setattr(container.graph, "apply_scans", broken)
    with pytest.raises(ConflictError):
        await service.ingest_batch(items)

    monkeypatch.setattr(container.graph, "apply_scans", original)
    summary = await service.ingest_batch(items)

    assert summary.scans == 2
    assert summary.rejected == []


@pytest.mark.asyncio
async def test_ingest_batch_ledger_outage_midway_loses_no_scans(service, container, clock, monkeypatch):
    occurred = clock.now.isoformat()
    items = [
        {"scanId": "p1", "scanner": "alice", "target": "bob", "timestamp": occurred},
        {"scanId": "p2", "scanner": "alice", "target": "carol", "timestamp": occurred},
    ]
    original = container.ledger.claim
    calls = {"n": 0}

    async def flaky_claim(scan_id, ttl_seconds):
        calls["n"] += 1
        if calls["n"] == 2:
            raise UnavailableError("ledger down")
        return await original(scan_id, ttl_seconds)

    monkeypatch.setattr(container.ledger, "claim", flaky_claim)

    summary = await service.ingest_batch(items)

    assert summary.scans == 2
    assert summary.rejected == []
    assert (await service.get_edge("alice", "bob")).weight == 1
    assert (await service.get_edge("alice", "carol")).weight == 1


@pytest.mark.asyncio
async def test_cancelled_batch_releases_claims(service, container, clock, monkeypatch):
    occurred = clock.now.isoformat()
    items = [{"scanId": "q1", "scanner": "alice", "target": "bob", "timestamp": occurred}]
    original = container.graph.apply_scans
    entered = asyncio.Event()

    async def stalled(scans):
        entered.set()
        await asyncio.Event().wait()

    monkeypatch.setattr(container.graph, "apply_scans", stalled)
    task = asyncio.create_task(service.ingest_batch(items))
    await entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    monkeypatch.setattr(container.graph, "apply_scans", original)
    summary = await service.ingest_batch(items)

    assert summary.scans == 1
    assert (await service.get_edge("alice", "bob")).weight == 1


@pytest.mark.asyncio
async def test_calculate_matches_reports_top_five(service, make_attendee):
    await service.identity.upsert_attendees(
        [make_attendee(f"peer-{i}", goals={"hiring"}) for i in range(8)]
    )

    (result,) = await service.calculate_matches(["alice"], limit=10)

    assert result.actor_id == "alice"
    assert result.match_count == 10
    assert len(result.top_matches) == 5
    assert result.top_matches[0].candidate_id == "bob"


@pytest.mark.asyncio
async def test_calculate_matches_unknown_actor(service):
    with pytest.raises(NotFoundError):
        await service.calculate_matches(["alice", "nobody"])


@pytest.mark.asyncio
async def test_schedule_with_key_is_retried_and_idempotent(service, container, clock, monkeypatch):
    original = container.meetings.insert_meeting
    calls = {"n": 0}

    async def flaky_insert(meeting):
        calls["n"] += 1
        stored = await original(meeting)
        if calls["n"] == 1:
            raise UnavailableError("response lost")
        return stored

    monkeypatch.setattr(container.meetings, "insert_meeting", flaky_insert)
    start = clock.now + timedelta(hours=2)
    slot = TimeSlot(start=start, end=start + timedelta(minutes=30))

    meeting = await service.schedule_meeting("alice", "bob", slot, idempotency_key="k-1")

    assert meeting.meeting_id == "m-1"
    assert len(await service.list_meetings("alice")) == 1


@pytest.mark.asyncio
async def test_schedule_without_key_is_not_retried(service, container, clock, monkeypatch):
    calls = {"n": 0}

    async def down(meeting):
        calls["n"] += 1
        raise UnavailableError("storage down")

    monkeypatch.setattr(container.meetings, "insert_meeting", down)
    start = clock.now + timedelta(hours=2)

    with pytest.raises(UnavailableError):
        await service.schedule_meeting(
            "alice", "bob", TimeSlot(start=start, end=start + timedelta(minutes=30))
        )
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_purge_expired_uses_dedup_window(service, make_scan, clock):
    await service.process_scan(make_scan("s1", "alice", "bob"))

    clock.advance(hours=73)
    report = await service.purge_expired()

    assert report.claims_purged == 1
    assert report.scan_log_purged == 1
    assert (await service.get_edge("alice", "bob")).weight == 1


def _slot_at(clock, hours, minutes=30):
    start = clock.now + timedelta(hours=hours)
    return TimeSlot(start=start, end=start + timedelta(minutes=minutes))


@pytest.mark.asyncio
async def test_auto_pack_accepts_best_matches_first(service, clock):
    weak = await service.schedule_meeting("carol", "alice", _slot_at(clock, 2))
    strong = await service.schedule_meeting("bob", "alice", _slot_at(clock, 2.25))
    unrelated = await service.schedule_meeting("dave", "carol", _slot_at(clock, 4))
    tomorrow = await service.schedule_meeting("alice", "dave", _slot_at(clock, 24))

    report = await service.auto_pack(clock.now.date())

    assert report.total_requests == 3
    assert report.scheduled == 2
    assert report.conflicts == 1
    assert report.meeting_ids == [strong.meeting_id, unrelated.meeting_id]
    assert (await service.get_meeting(strong.meeting_id)).status == MeetingStatus.SCHEDULED
    assert (await service.get_meeting(weak.meeting_id)).status == MeetingStatus.REQUESTED
    assert (await service.get_meeting(tomorrow.meeting_id)).status == MeetingStatus.REQUESTED


@pytest.mark.asyncio
async def test_auto_pack_rerun_only_revisits_what_is_left(service, clock):
    await service.schedule_meeting("carol", "alice", _slot_at(clock, 2))
    await service.schedule_meeting("bob", "alice", _slot_at(clock, 2.25))
    await service.auto_pack(clock.now.date())

    report = await service.auto_pack(clock.now.date())

    assert report.total_requests == 1
    assert report.scheduled == 0
    assert report.conflicts == 1


@pytest.mark.asyncio
async def test_auto_pack_empty_day(service, clock):
    report = await service.auto_pack(clock.now.date())

    assert report.total_requests == 0
    assert report.meeting_ids == []


@pytest.mark.asyncio
async def test_auto_pack_propagates_storage_outage(service, container, clock, monkeypatch):
    await service.schedule_meeting("bob", "alice", _slot_at(clock, 2))

    async def down(*args, **kwargs):
        raise UnavailableError("storage down")

    monkeypatch.setattr(container.meetings, "save_meeting", down)

    with pytest.raises(UnavailableError):
        await service.auto_pack(clock.now.date())
