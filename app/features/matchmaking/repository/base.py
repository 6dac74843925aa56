"""
Store interfaces injected into the matchmaking components.

The edge graph and the meeting table are the only mutable shared state of
the engine; every read-modify-write on them goes through one of these
interfaces so the in-process and Postgres backends enforce the same
invariants at the persistence boundary.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import datetime

from ..domain.models import (
    Attendee,
    HotspotSummary,
    InteractionEdge,
    Meeting,
    MeetingStatus,
    ScanEvent,
    ScanLogEntry,
)


class IdentityStore(ABC):
    """Read access to attendee profiles (plus the bulk-ingest pass-through)."""

    @abstractmethod
    async def get_attendee(self, actor_id: str) -> Attendee:
        """Return the attendee or raise NotFoundError."""

    @abstractmethod
    async def list_attendees(self) -> list[Attendee]: ...

    @abstractmethod
    async def upsert_attendees(self, attendees: Iterable[Attendee]) -> int: ...


class ScanLedger(ABC):
    """Bounded-TTL set of processed scan ids."""

    @abstractmethod
    async def claim(self, scan_id: str, ttl_seconds: int) -> bool:
        """Atomically mark ``scan_id`` as seen. False if it was already present."""

    @abstractmethod
    async def release(self, scan_id: str) -> None:
        """Forget a claim whose downstream write did not commit."""

    @abstractmethod
    async def purge_expired(self) -> int: ...


class GraphStore(ABC):
    """Interaction edges plus the scan log feeding hotspot summaries."""

    @abstractmethod
    async def apply_scans(self, scans: Sequence[ScanEvent]) -> list[InteractionEdge]:
        """
        Fold scans into their edges in one atomic unit.

        Either every edge touched by ``scans`` is updated or none is.
        Returns the resulting edge for each scan, in input order.
        """

    @abstractmethod
    async def get_edge(self, actor_a: str, actor_b: str) -> InteractionEdge | None: ...

    @abstractmethod
    async def edges_for(self, actor_id: str) -> list[InteractionEdge]: ...

    @abstractmethod
    async def scans_since(self, since: datetime) -> list[ScanLogEntry]: ...

    @abstractmethod
    async def purge_scan_log(self, before: datetime) -> int: ...

    @abstractmethod
    async def save_hotspot_summary(self, summary: HotspotSummary) -> None: ...

    @abstractmethod
    async def latest_hotspot_summary(self) -> HotspotSummary | None: ...

    @abstractmethod
    async def purge_hotspot_summaries(self, before: datetime) -> int:
        """Drop summaries computed before ``before``; the latest one is always kept."""


class MeetingStore(ABC):
    """Meeting table with an optimistic version token per row."""

    @abstractmethod
    async def get_meeting(self, meeting_id: str) -> Meeting:
        """Return the meeting or raise NotFoundError."""

    @abstractmethod
    async def find_by_idempotency_key(self, key: str) -> Meeting | None: ...

    @abstractmethod
    async def find_active_between(self, actor_a: str, actor_b: str) -> Meeting | None: ...

    @abstractmethod
    async def list_for_actor(
        self, actor_id: str, status: MeetingStatus | None = None
    ) -> list[Meeting]: ...

    @abstractmethod
    async def list_by_status(
        self, status: MeetingStatus, starts_from: datetime, starts_before: datetime
    ) -> list[Meeting]:
        """Meetings in ``status`` whose slot starts in [starts_from, starts_before)."""

    @abstractmethod
    async def insert_meeting(self, meeting: Meeting) -> Meeting:
        """
        Insert a new ``requested`` meeting.

        Atomically re-checks the invariants: returns the existing meeting when
        ``idempotency_key`` was already used, raises ConflictError when the
        pair already has an active meeting or the slot overlaps a scheduled
        meeting of either participant.
        """

    @abstractmethod
    async def save_meeting(self, meeting: Meeting, expected_version: int) -> Meeting:
        """
        Compare-and-set write of a transitioned meeting.

        Raises StaleVersionError if the stored version moved on, and
        ConflictError if a meeting entering ``scheduled`` would double-book
        either participant. Returns the meeting with its new version.
        """
