"""
Scan deduplicator - the leaf of the ingestion path.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ...domain.models import ScanEvent
from ...repository.base import ScanLedger

logger = get_logger(__name__)


@dataclass(slots=True)
class DedupResult:
    accepted: bool
    reason: str | None = None


class ScanDeduplicator:
    REASON_DUPLICATE = "duplicate"
    REASON_SELF_SCAN = "self_scan"

    def __init__(self, ledger: ScanLedger, ttl_seconds: int | None = None):
        self._ledger = ledger
        self._ttl_seconds = ttl_seconds or settings.scan_dedup_ttl_seconds()

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    async def ingest(self, scan: ScanEvent) -> DedupResult:
        """
        Claim a scan for processing.

        Accepted scans must be forwarded to the aggregator exactly once; if
        that write fails the caller releases the claim so a re-delivery is
        not mistaken for a duplicate.
        """
        if scan.is_self_scan:
            logger.info("Self-scan rejected", scan_id=scan.scan_id, actor_id=scan.scanner_actor_id)
            return DedupResult(accepted=False, reason=self.REASON_SELF_SCAN)

        if not await self._ledger.claim(scan.scan_id, self._ttl_seconds):
            logger.info("Duplicate scan rejected", scan_id=scan.scan_id)
            return DedupResult(accepted=False, reason=self.REASON_DUPLICATE)

        return DedupResult(accepted=True)

    async def release(self, scan_id: str) -> None:
        await self._ledger.release(scan_id)
        logger.info("Scan claim released", scan_id=scan_id)

    async def purge_expired(self) -> int:
        purged = await self._ledger.purge_expired()
        if purged:
            logger.info("Expired scan claims purged", purged=purged)
        return purged
