"""
Domain models for the matchmaking feature.

Plain dataclasses shared by the store, the pipeline components, the
scheduler and the API layer. Validation of untrusted input happens in the
API schemas; these types assume they were built from validated values.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from .errors import InvalidInputError

_COMPACT_SLOT = re.compile(r"^(?P<start>[^/]+)/(?P<amount>\d+)(?P<unit>[mh]?)$")


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def canonical_pair(actor_a: str, actor_b: str) -> tuple[str, str]:
    """Order an unordered actor pair so (a, b) and (b, a) share one key."""
    return (actor_a, actor_b) if actor_a <= actor_b else (actor_b, actor_a)


@dataclass(slots=True)
class Attendee:
    """Profile attributes owned by the identity store."""

    actor_id: str
    goals: frozenset[str] = frozenset()
    interests: frozenset[str] = frozenset()
    company: str | None = None
    role: str | None = None
    name: str | None = None
    matchmaking_consent: bool = True

    @property
    def display_name(self) -> str:
        return self.name or self.actor_id


@dataclass(frozen=True, slots=True)
class ScanEvent:
    """A single badge scan. Never mutated once created."""

    scan_id: str
    scanner_actor_id: str
    target_actor_id: str
    occurred_at: datetime
    location: str | None = None

    @property
    def pair(self) -> tuple[str, str]:
        return canonical_pair(self.scanner_actor_id, self.target_actor_id)

    @property
    def is_self_scan(self) -> bool:
        return self.scanner_actor_id == self.target_actor_id


@dataclass(slots=True)
class InteractionEdge:
    """Aggregated interaction weight for an unordered actor pair (actor_a < actor_b)."""

    actor_a: str
    actor_b: str
    weight: int = 0
    last_interaction_at: datetime | None = None

    @property
    def pair(self) -> tuple[str, str]:
        return (self.actor_a, self.actor_b)

    def other(self, actor_id: str) -> str:
        return self.actor_b if actor_id == self.actor_a else self.actor_a


@dataclass(frozen=True, slots=True)
class TimeSlot:
    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.end <= self.start:
            raise InvalidInputError("Slot end must be after slot start")

    @classmethod
    def parse(cls, value: str) -> TimeSlot:
        """Parse the compact ``2025-09-15T10:00/30m`` form (``h`` for hours; bare number = minutes)."""
        match = _COMPACT_SLOT.match(value.strip())
        if not match:
            raise InvalidInputError(f"Unrecognised slot format: {value!r}")
        try:
            start = datetime.fromisoformat(match["start"])
        except ValueError as e:
            raise InvalidInputError(f"Invalid slot start: {match['start']!r}") from e
        amount = int(match["amount"])
        duration = timedelta(hours=amount) if match["unit"] == "h" else timedelta(minutes=amount)
        return cls(start=start, end=start + duration)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: TimeSlot) -> bool:
        # Half-open intervals: back-to-back slots do not overlap
        return self.start < other.end and other.start < self.end


class MeetingStatus(StrEnum):
    REQUESTED = "requested"
    SCHEDULED = "scheduled"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = frozenset({MeetingStatus.REQUESTED, MeetingStatus.SCHEDULED})
TERMINAL_STATUSES = frozenset(
    {MeetingStatus.DECLINED, MeetingStatus.CANCELLED, MeetingStatus.COMPLETED}
)


@dataclass(slots=True)
class Meeting:
    meeting_id: str
    requester_id: str
    target_id: str
    status: MeetingStatus
    proposed_slot: TimeSlot
    created_at: datetime
    updated_at: datetime
    venue: str | None = None
    message: str | None = None
    idempotency_key: str | None = None
    version: int = 0

    @property
    def pair(self) -> tuple[str, str]:
        return canonical_pair(self.requester_id, self.target_id)

    def involves(self, actor_id: str) -> bool:
        return actor_id in (self.requester_id, self.target_id)

    def with_status(self, status: MeetingStatus, now: datetime) -> Meeting:
        return replace(self, status=status, updated_at=now)


@dataclass(slots=True)
class MatchFactor:
    """One contributing term of a match score."""

    name: str
    similarity: float
    weight: float
    contribution: float
    shared: list[str] = field(default_factory=list)


@dataclass(slots=True)
class MatchScore:
    subject_id: str
    candidate_id: str
    score: float
    rationale: list[MatchFactor]


@dataclass(slots=True)
class ScanLogEntry:
    scan_id: str
    actor_a: str
    actor_b: str
    occurred_at: datetime
    location: str | None


@dataclass(slots=True)
class Hotspot:
    location: str
    scan_count: int
    unique_actors: int
    last_scan_at: datetime


@dataclass(slots=True)
class HotspotSummary:
    computed_at: datetime
    window_start: datetime
    hotspots: list[Hotspot] = field(default_factory=list)
