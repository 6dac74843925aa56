"""
In-process store backends.

Used when STORE_BACKEND=memory (local development, single-instance demos and
the test suite). Each store serialises writers with an asyncio.Lock and
applies its mutation with no await in between, so a cancelled caller can
never leave a half-applied batch or transition behind.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta

from app.infrastructure.observability.logging import get_logger

from ..domain.errors import ConflictError, NotFoundError, StaleVersionError
from ..domain.models import (
    Attendee,
    HotspotSummary,
    InteractionEdge,
    Meeting,
    MeetingStatus,
    ScanEvent,
    ScanLogEntry,
    canonical_pair,
)
from .base import GraphStore, IdentityStore, MeetingStore, ScanLedger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryIdentityStore(IdentityStore):
    def __init__(self, attendees: Iterable[Attendee] = ()):
        self._attendees: dict[str, Attendee] = {a.actor_id: a for a in attendees}

    async def get_attendee(self, actor_id: str) -> Attendee:
        try:
            return self._attendees[actor_id]
        except KeyError:
            raise NotFoundError(f"Unknown actor: {actor_id}", actor_id=actor_id) from None

    async def list_attendees(self) -> list[Attendee]:
        return list(self._attendees.values())

    async def upsert_attendees(self, attendees: Iterable[Attendee]) -> int:
        count = 0
        for attendee in attendees:
            self._attendees[attendee.actor_id] = attendee
            count += 1
        return count


class InMemoryScanLedger(ScanLedger):
    def __init__(self, clock: Clock = _utcnow):
        self._clock = clock
        self._expires_at: dict[str, datetime] = {}

    async def claim(self, scan_id: str, ttl_seconds: int) -> bool:
        now = self._clock()
        expires_at = self._expires_at.get(scan_id)
        if expires_at is not None and expires_at > now:
            return False
        self._expires_at[scan_id] = now + timedelta(seconds=ttl_seconds)
        return True

    async def release(self, scan_id: str) -> None:
        self._expires_at.pop(scan_id, None)

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [scan_id for scan_id, expires in self._expires_at.items() if expires <= now]
        for scan_id in expired:
            del self._expires_at[scan_id]
        return len(expired)

    def __len__(self) -> int:
        return len(self._expires_at)


class InMemoryGraphStore(GraphStore):
    def __init__(self):
        self._lock = asyncio.Lock()
        self._edges: dict[tuple[str, str], InteractionEdge] = {}
        self._scan_log: dict[str, ScanLogEntry] = {}
        self._hotspots: list[HotspotSummary] = []

    async def apply_scans(self, scans: Sequence[ScanEvent]) -> list[InteractionEdge]:
        async with self._lock:
            # Stage every change on copies, then publish in one step
            staged: dict[tuple[str, str], InteractionEdge] = {}
            results: list[InteractionEdge] = []
            for scan in scans:
                key = scan.pair
                edge = staged.get(key)
                if edge is None:
                    current = self._edges.get(key)
                    edge = replace(current) if current else InteractionEdge(*key)
                    staged[key] = edge
                edge.weight += 1
                if edge.last_interaction_at is None or scan.occurred_at > edge.last_interaction_at:
                    edge.last_interaction_at = scan.occurred_at
                results.append(edge)

            self._edges.update(staged)
            for scan in scans:
                actor_a, actor_b = scan.pair
                self._scan_log.setdefault(
                    scan.scan_id,
                    ScanLogEntry(
                        scan_id=scan.scan_id,
                        actor_a=actor_a,
                        actor_b=actor_b,
                        occurred_at=scan.occurred_at,
                        location=scan.location,
                    ),
                )
            snapshot = {key: replace(edge) for key, edge in staged.items()}
        logger.debug("Scans applied to graph", scan_count=len(scans), edge_count=len(staged))
        return [snapshot[edge.pair] for edge in results]

    async def get_edge(self, actor_a: str, actor_b: str) -> InteractionEdge | None:
        edge = self._edges.get(canonical_pair(actor_a, actor_b))
        return replace(edge) if edge else None

    async def edges_for(self, actor_id: str) -> list[InteractionEdge]:
        return [replace(edge) for edge in self._edges.values() if actor_id in edge.pair]

    async def scans_since(self, since: datetime) -> list[ScanLogEntry]:
        return [entry for entry in self._scan_log.values() if entry.occurred_at >= since]

    async def purge_scan_log(self, before: datetime) -> int:
        async with self._lock:
            stale = [k for k, entry in self._scan_log.items() if entry.occurred_at < before]
            for scan_id in stale:
                del self._scan_log[scan_id]
        return len(stale)

    async def save_hotspot_summary(self, summary: HotspotSummary) -> None:
        self._hotspots.append(summary)

    async def latest_hotspot_summary(self) -> HotspotSummary | None:
        return self._hotspots[-1] if self._hotspots else None

    async def purge_hotspot_summaries(self, before: datetime) -> int:
        if not self._hotspots:
            return 0
        *history, latest = self._hotspots
        kept = [s for s in history if s.computed_at >= before]
        purged = len(history) - len(kept)
        self._hotspots = [*kept, latest]
        return purged


class InMemoryMeetingStore(MeetingStore):
    def __init__(self):
        self._lock = asyncio.Lock()
        self._meetings: dict[str, Meeting] = {}
        self._by_idempotency_key: dict[str, str] = {}

    async def get_meeting(self, meeting_id: str) -> Meeting:
        meeting = self._meetings.get(meeting_id)
        if meeting is None:
            raise NotFoundError(f"Unknown meeting: {meeting_id}", meeting_id=meeting_id)
        return replace(meeting)

    async def find_by_idempotency_key(self, key: str) -> Meeting | None:
        meeting_id = self._by_idempotency_key.get(key)
        return replace(self._meetings[meeting_id]) if meeting_id else None

    async def find_active_between(self, actor_a: str, actor_b: str) -> Meeting | None:
        active = self._active_between(canonical_pair(actor_a, actor_b))
        return replace(active) if active else None

    async def list_for_actor(
        self, actor_id: str, status: MeetingStatus | None = None
    ) -> list[Meeting]:
        meetings = [
            replace(m)
            for m in self._meetings.values()
            if m.involves(actor_id) and (status is None or m.status == status)
        ]
        meetings.sort(key=lambda m: (m.proposed_slot.start, m.meeting_id))
        return meetings

    async def list_by_status(
        self, status: MeetingStatus, starts_from: datetime, starts_before: datetime
    ) -> list[Meeting]:
        meetings = [
            replace(m)
            for m in self._meetings.values()
            if m.status == status and starts_from <= m.proposed_slot.start < starts_before
        ]
        meetings.sort(key=lambda m: (m.proposed_slot.start, m.meeting_id))
        return meetings

    async def insert_meeting(self, meeting: Meeting) -> Meeting:
        async with self._lock:
            if meeting.idempotency_key:
                existing_id = self._by_idempotency_key.get(meeting.idempotency_key)
                if existing_id:
                    return replace(self._meetings[existing_id])

            active = self._active_between(meeting.pair)
            if active:
                raise ConflictError(
                    "An active meeting already exists between these actors",
                    meeting_id=active.meeting_id,
                )
            self._check_double_booking(meeting)

            stored = replace(meeting, version=1)
            self._meetings[stored.meeting_id] = stored
            if stored.idempotency_key:
                self._by_idempotency_key[stored.idempotency_key] = stored.meeting_id
        return replace(stored)

    async def save_meeting(self, meeting: Meeting, expected_version: int) -> Meeting:
        async with self._lock:
            current = self._meetings.get(meeting.meeting_id)
            if current is None:
                raise NotFoundError(
                    f"Unknown meeting: {meeting.meeting_id}", meeting_id=meeting.meeting_id
                )
            if current.version != expected_version:
                raise StaleVersionError(
                    "Meeting was modified concurrently",
                    meeting_id=meeting.meeting_id,
                    expected_version=expected_version,
                    actual_version=current.version,
                )
            if meeting.status == MeetingStatus.SCHEDULED:
                self._check_double_booking(meeting)

            stored = replace(meeting, version=expected_version + 1)
            self._meetings[stored.meeting_id] = stored
        return replace(stored)

    def _active_between(self, pair: tuple[str, str]) -> Meeting | None:
        for m in self._meetings.values():
            if m.pair == pair and m.status.is_active:
                return m
        return None

    def _check_double_booking(self, meeting: Meeting) -> None:
        for other in self._meetings.values():
            if other.meeting_id == meeting.meeting_id or other.status != MeetingStatus.SCHEDULED:
                continue
            shared = {meeting.requester_id, meeting.target_id} & {
                other.requester_id,
                other.target_id,
            }
            if shared and meeting.proposed_slot.overlaps(other.proposed_slot):
                raise ConflictError(
                    "Proposed slot overlaps an existing scheduled meeting",
                    meeting_id=other.meeting_id,
                    actor_ids=sorted(shared),
                )
