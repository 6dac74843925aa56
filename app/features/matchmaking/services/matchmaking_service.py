"""
Matchmaking boundary service.

Sequences the pipeline components for the ingestion and query surface:
scan -> dedup -> aggregate, bulk ingest, batch match calculation,
scheduling and the hotspot summary. Idempotent operations are wrapped in
bounded retries; everything else surfaces errors on the first failure.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import ConflictError, InvalidInputError, InvalidTransitionError
from ..domain.models import (
    Attendee,
    HotspotSummary,
    InteractionEdge,
    MatchScore,
    Meeting,
    MeetingStatus,
    ScanEvent,
    TimeSlot,
)
from ..pipeline.aggregation import GraphAggregator, HotspotService
from ..pipeline.dedup import ScanDeduplicator
from ..pipeline.scoring import MatchEngine
from ..repository.base import IdentityStore
from ..scheduling import MeetingScheduler
from .payloads import ITEM_SCAN, classify_batch_item, parse_attendee, parse_scan
from .retry import with_retry
from .webhook import parse_webhook_scan

logger = get_logger(__name__)

TOP_MATCHES = 5


@dataclass(slots=True)
class ScanOutcome:
    accepted: bool
    edge: InteractionEdge | None = None
    reason: str | None = None


@dataclass(slots=True)
class RejectedItem:
    index: int
    item_type: str
    reason: str


@dataclass(slots=True)
class IngestSummary:
    count: int = 0
    attendees: int = 0
    scans: int = 0
    rejected: list[RejectedItem] = field(default_factory=list)


@dataclass(slots=True)
class ActorMatches:
    actor_id: str
    match_count: int
    top_matches: list[MatchScore]


@dataclass(slots=True)
class RetentionReport:
    claims_purged: int
    scan_log_purged: int
    hotspot_summaries_purged: int = 0


@dataclass(slots=True)
class PackReport:
    day: date
    total_requests: int = 0
    scheduled: int = 0
    conflicts: int = 0
    meeting_ids: list[str] = field(default_factory=list)


class MatchmakingService:
    def __init__(
        self,
        identity: IdentityStore,
        deduplicator: ScanDeduplicator,
        aggregator: GraphAggregator,
        engine: MatchEngine,
        scheduler: MeetingScheduler,
        hotspots: HotspotService,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.identity = identity
        self.deduplicator = deduplicator
        self.aggregator = aggregator
        self.engine = engine
        self.scheduler = scheduler
        self.hotspots = hotspots
        self._clock = clock

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    @with_retry()
    async def process_scan(self, scan: ScanEvent) -> ScanOutcome:
        result = await self.deduplicator.ingest(scan)
        if not result.accepted:
            return ScanOutcome(accepted=False, reason=result.reason)

        try:
            edge = await self.aggregator.apply(scan)
        except BaseException:
            # Includes cancellation: an unapplied claim must not outlive the request
            await self._release_claims([scan.scan_id])
            raise

        logger.info(
            "Scan processed",
            scan_id=scan.scan_id,
            actor_a=edge.actor_a,
            actor_b=edge.actor_b,
            weight=edge.weight,
        )
        return ScanOutcome(accepted=True, edge=edge)

    async def scan_webhook(self, payload: Any, received_at: datetime | None = None) -> ScanOutcome:
        """Validate an untrusted vendor payload into a scan, then process it."""
        scan = parse_webhook_scan(payload, received_at or self._clock())
        return await self.process_scan(scan)

    @with_retry()
    async def ingest_batch(self, items: Sequence[Any]) -> IngestSummary:
        """
        Mixed bulk ingest of attendee rows and scans.

        Attendees are upserted into the identity store. Scans pass through
        dedup and are applied in one transactional aggregation, so either
        every accepted scan lands or none does. Invalid items are reported
        per index and do not fail the batch.
        """
        summary = IngestSummary()
        attendees: list[Attendee] = []
        scans: list[tuple[int, ScanEvent]] = []

        for index, item in enumerate(items):
            item_type = "unknown"
            try:
                item_type = classify_batch_item(item)
                if item_type == ITEM_SCAN:
                    scans.append((index, parse_scan(item)))
                else:
                    attendees.append(parse_attendee(item))
            except InvalidInputError as e:
                summary.rejected.append(RejectedItem(index=index, item_type=item_type, reason=e.message))

        if attendees:
            summary.attendees = await self.identity.upsert_attendees(attendees)

        accepted: list[ScanEvent] = []
        try:
            for index, scan in scans:
                result = await self.deduplicator.ingest(scan)
                if result.accepted:
                    accepted.append(scan)
                else:
                    summary.rejected.append(
                        RejectedItem(index=index, item_type=ITEM_SCAN, reason=result.reason)
                    )
            if accepted:
                await self.aggregator.apply_batch(accepted)
        except BaseException:
            # Claims taken so far are released so a retried batch starts clean
            await self._release_claims([scan.scan_id for scan in accepted])
            raise
        summary.scans = len(accepted)

        summary.count = summary.attendees + summary.scans
        summary.rejected.sort(key=lambda r: r.index)
        logger.info(
            "Batch ingested",
            items=len(items),
            attendees=summary.attendees,
            scans=summary.scans,
            rejected=len(summary.rejected),
        )
        return summary

    async def _release_claims(self, scan_ids: list[str]) -> None:
        for scan_id in scan_ids:
            try:
                await self.deduplicator.release(scan_id)
            except Exception as e:
                # Claim stays until TTL; a re-delivery before then is reported as duplicate
                logger.error("Failed to release scan claim", scan_id=scan_id, error=str(e))

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    @with_retry()
    async def calculate_matches(
        self, actor_ids: Sequence[str], limit: int | None = None
    ) -> list[ActorMatches]:
        if limit is None:
            limit = settings.MATCH_DEFAULT_LIMIT
        results = []
        for actor_id in actor_ids:
            matches = await self.engine.calculate_matches(actor_id, limit)
            results.append(
                ActorMatches(
                    actor_id=actor_id,
                    match_count=len(matches),
                    top_matches=matches[:TOP_MATCHES],
                )
            )
        return results

    @with_retry()
    async def matches_for(self, actor_id: str, limit: int | None = None) -> list[MatchScore]:
        if limit is None:
            limit = settings.MATCH_DEFAULT_LIMIT
        return await self.engine.calculate_matches(actor_id, limit)

    @with_retry()
    async def get_edge(self, actor_a: str, actor_b: str) -> InteractionEdge | None:
        return await self.aggregator.get_edge(actor_a, actor_b)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def schedule_meeting(
        self,
        requester_id: str,
        target_id: str,
        proposed_slot: TimeSlot,
        *,
        venue: str | None = None,
        message: str | None = None,
        idempotency_key: str | None = None,
    ) -> Meeting:
        if idempotency_key:
            return await self._schedule_idempotent(
                requester_id,
                target_id,
                proposed_slot,
                venue=venue,
                message=message,
                idempotency_key=idempotency_key,
            )
        return await self.scheduler.schedule(
            requester_id, target_id, proposed_slot, venue=venue, message=message
        )

    @with_retry()
    async def _schedule_idempotent(self, *args, **kwargs) -> Meeting:
        return await self.scheduler.schedule(*args, **kwargs)

    async def transition_meeting(
        self,
        meeting_id: str,
        event: str,
        actor_id: str | None,
        slot: TimeSlot | None = None,
    ) -> Meeting:
        if event == "accept":
            return await self.scheduler.accept(meeting_id, actor_id, slot)
        if event == "decline":
            return await self.scheduler.decline(meeting_id, actor_id)
        if event == "withdraw":
            return await self.scheduler.withdraw(meeting_id, actor_id)
        if event == "cancel":
            return await self.scheduler.cancel(meeting_id, actor_id)
        if event == "complete":
            return await self.scheduler.complete(meeting_id, actor_id)
        raise InvalidInputError(f"Unknown meeting event: {event!r}")

    @with_retry()
    async def get_meeting(self, meeting_id: str) -> Meeting:
        return await self.scheduler.get_meeting(meeting_id)

    @with_retry()
    async def list_meetings(
        self, actor_id: str, status: MeetingStatus | None = None
    ) -> list[Meeting]:
        return await self.scheduler.list_meetings(actor_id, status)

    @with_retry()
    async def export_ics(self, actor_id: str) -> str:
        return await self.scheduler.export_ics(actor_id)

    @with_retry()
    async def suggest_slots(
        self,
        actor_a: str,
        actor_b: str,
        window: TimeSlot,
        duration: timedelta,
        limit: int | None = None,
    ) -> list[TimeSlot]:
        if limit is None:
            return await self.scheduler.suggest_slots(actor_a, actor_b, window, duration)
        return await self.scheduler.suggest_slots(actor_a, actor_b, window, duration, limit)

    async def auto_pack(self, day: date) -> PackReport:
        """
        Accept the day's pending requests, best-scoring pairs first.

        Requests whose slot starts on ``day`` (UTC) are ranked by the pair's
        match score, then slot start. Each is accepted on the target's behalf;
        one that would double-book a participant already packed stays
        ``requested`` and is counted as a conflict.
        """
        start = datetime.combine(day, time.min, tzinfo=UTC)
        requests = await self.scheduler.list_requested_between(start, start + timedelta(days=1))

        ranked = []
        for meeting in requests:
            score = await self.engine.score_pair(meeting.requester_id, meeting.target_id)
            ranked.append((-score, meeting.proposed_slot.start, meeting.meeting_id, meeting))
        ranked.sort(key=lambda entry: entry[:3])

        report = PackReport(day=day, total_requests=len(requests))
        for _, _, meeting_id, meeting in ranked:
            try:
                await self.scheduler.accept(meeting_id, meeting.target_id)
            except (ConflictError, InvalidTransitionError) as e:
                logger.info("Auto-pack skipped meeting", meeting_id=meeting_id, reason=e.message)
                report.conflicts += 1
                continue
            report.scheduled += 1
            report.meeting_ids.append(meeting_id)

        logger.info(
            "Auto-pack complete",
            day=day.isoformat(),
            total_requests=report.total_requests,
            scheduled=report.scheduled,
            conflicts=report.conflicts,
        )
        return report

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def recompute_hotspots(self) -> HotspotSummary:
        return await self.hotspots.recompute()

    @with_retry()
    async def latest_hotspots(self) -> HotspotSummary | None:
        return await self.hotspots.latest()

    async def purge_expired(self) -> RetentionReport:
        """Drop dedup claims past their TTL plus scan-log rows and hotspot summaries older than that window."""
        cutoff = self._clock() - timedelta(seconds=self.deduplicator.ttl_seconds)
        report = RetentionReport(
            claims_purged=await self.deduplicator.purge_expired(),
            scan_log_purged=await self.aggregator.purge_scan_log(cutoff),
            hotspot_summaries_purged=await self.hotspots.prune(cutoff),
        )
        logger.info(
            "Retention purge complete",
            claims_purged=report.claims_purged,
            scan_log_purged=report.scan_log_purged,
            hotspot_summaries_purged=report.hotspot_summaries_purged,
        )
        return report
