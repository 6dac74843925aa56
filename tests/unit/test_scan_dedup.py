import pytest

from app.features.matchmaking.pipeline.dedup import ScanDeduplicator
from app.features.matchmaking.repository import InMemoryScanLedger


@pytest.mark.asyncio
async def test_first_delivery_is_accepted(clock, make_scan):
    dedup = ScanDeduplicator(InMemoryScanLedger(clock), ttl_seconds=3600)

    result = await dedup.ingest(make_scan("s1", "alice", "bob"))

    assert result.accepted is True
    assert result.reason is None


@pytest.mark.asyncio
async def test_redelivery_is_rejected_as_duplicate(clock, make_scan):
    dedup = ScanDeduplicator(InMemoryScanLedger(clock), ttl_seconds=3600)

    await dedup.ingest(make_scan("s1", "alice", "bob"))
    result = await dedup.ingest(make_scan("s1", "alice", "bob"))

    assert result.accepted is False
    assert result.reason == ScanDeduplicator.REASON_DUPLICATE


@pytest.mark.asyncio
async def test_self_scan_is_rejected_without_claiming(clock, make_scan):
    ledger = InMemoryScanLedger(clock)
    dedup = ScanDeduplicator(ledger, ttl_seconds=3600)

    result = await dedup.ingest(make_scan("s1", "alice", "alice"))

    assert result.accepted is False
    assert result.reason == ScanDeduplicator.REASON_SELF_SCAN
    assert len(ledger) == 0


@pytest.mark.asyncio
async def test_redelivery_after_retention_is_treated_as_new(clock, make_scan):
    dedup = ScanDeduplicator(InMemoryScanLedger(clock), ttl_seconds=3600)
    await dedup.ingest(make_scan("s1", "alice", "bob"))

    clock.advance(hours=1, seconds=1)
    result = await dedup.ingest(make_scan("s1", "alice", "bob"))

    assert result.accepted is True


@pytest.mark.asyncio
async def test_released_claim_can_be_claimed_again(clock, make_scan):
    dedup = ScanDeduplicator(InMemoryScanLedger(clock), ttl_seconds=3600)
    await dedup.ingest(make_scan("s1", "alice", "bob"))

    await dedup.release("s1")
    result = await dedup.ingest(make_scan("s1", "alice", "bob"))

    assert result.accepted is True


@pytest.mark.asyncio
async def test_purge_drops_only_expired_claims(clock, make_scan):
    ledger = InMemoryScanLedger(clock)
    dedup = ScanDeduplicator(ledger, ttl_seconds=60)
    await dedup.ingest(make_scan("old", "alice", "bob"))
    clock.advance(seconds=30)
    await dedup.ingest(make_scan("new", "alice", "bob"))

    clock.advance(seconds=31)
    purged = await dedup.purge_expired()

    assert purged == 1
    assert len(ledger) == 1


def test_default_ttl_comes_from_settings(clock):
    dedup = ScanDeduplicator(InMemoryScanLedger(clock))

    assert dedup.ttl_seconds == 72 * 3600
