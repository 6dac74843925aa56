"""
Matchmaking API request/response models.

Every endpoint answers with the same envelope:
    {"success": true,  "data": {...}}
    {"success": false, "error": {"code": "...", "message": "..."}}
"""

from datetime import date, datetime
from typing import Any, Generic, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..domain.models import (
    HotspotSummary,
    InteractionEdge,
    MatchScore,
    Meeting,
    MeetingStatus,
    TimeSlot,
)
from ..services.matchmaking_service import ActorMatches, IngestSummary, PackReport, ScanOutcome

T = TypeVar("T")


class ErrorBody(BaseModel):
    code: str
    message: str


class ApiResponse(BaseModel, Generic[T]):
    """Uniform response envelope."""

    success: bool = True
    data: T | None = None
    error: ErrorBody | None = None


def ok(data: T) -> ApiResponse[T]:
    return ApiResponse(success=True, data=data)


def failure(code: str, message: str) -> dict[str, Any]:
    return ApiResponse(success=False, error=ErrorBody(code=code, message=message)).model_dump(
        mode="json"
    )


# ----------------------------------------------------------------------
# Requests
# ----------------------------------------------------------------------


class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class SlotRequest(_Request):
    """Explicit slot bounds; the compact ``"2025-09-15T10:00/30m"`` string is accepted too."""

    start: datetime = Field(..., description="Slot start (naive values are taken as UTC)")
    end: datetime = Field(..., description="Slot end, after start")


def to_time_slot(slot: SlotRequest | str) -> TimeSlot:
    if isinstance(slot, str):
        return TimeSlot.parse(slot)
    return TimeSlot(start=slot.start, end=slot.end)


class IngestRequest(_Request):
    items: list[dict[str, Any]] = Field(
        ...,
        max_length=5000,
        validation_alias=AliasChoices("items", "batch", "attendees"),
        description="Mixed attendee rows and scans",
    )


class CalculateMatchesRequest(_Request):
    actor_ids: list[str] = Field(
        ..., min_length=1, max_length=100, validation_alias=AliasChoices("actor_ids", "actorIds")
    )
    limit: int | None = Field(default=None, description="Matches per actor (default 10)")


class ScheduleMeetingRequest(_Request):
    requester_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("requester_id", "requesterId")
    )
    target_id: str = Field(..., min_length=1, validation_alias=AliasChoices("target_id", "targetId"))
    proposed_slot: SlotRequest | str = Field(
        ..., validation_alias=AliasChoices("proposed_slot", "proposedSlot", "slot")
    )
    venue: str | None = Field(default=None, max_length=200)
    message: str | None = Field(default=None, max_length=1000)
    idempotency_key: str | None = Field(
        default=None, max_length=200, validation_alias=AliasChoices("idempotency_key", "idempotencyKey")
    )


class MeetingActionRequest(_Request):
    actor_id: str | None = Field(default=None, validation_alias=AliasChoices("actor_id", "actorId"))
    slot: SlotRequest | str | None = Field(
        default=None, description="Accept only: must repeat the proposed slot"
    )


class AutoPackRequest(_Request):
    day: date = Field(..., description="Conference day (UTC) whose pending requests are packed")


# ----------------------------------------------------------------------
# Responses
# ----------------------------------------------------------------------


class EdgeResponse(BaseModel):
    actor_a: str
    actor_b: str
    weight: int
    last_interaction_at: datetime | None = None

    @classmethod
    def from_domain(cls, edge: InteractionEdge) -> "EdgeResponse":
        return cls(
            actor_a=edge.actor_a,
            actor_b=edge.actor_b,
            weight=edge.weight,
            last_interaction_at=edge.last_interaction_at,
        )


class ScanResultResponse(BaseModel):
    accepted: bool
    edge: EdgeResponse | None = None
    reason: str | None = None

    @classmethod
    def from_domain(cls, outcome: ScanOutcome) -> "ScanResultResponse":
        return cls(
            accepted=outcome.accepted,
            edge=EdgeResponse.from_domain(outcome.edge) if outcome.edge else None,
            reason=outcome.reason,
        )


class RejectedItemResponse(BaseModel):
    index: int
    item_type: str
    reason: str


class IngestResponse(BaseModel):
    count: int
    attendees: int
    scans: int
    rejected: list[RejectedItemResponse]

    @classmethod
    def from_domain(cls, summary: IngestSummary) -> "IngestResponse":
        return cls(
            count=summary.count,
            attendees=summary.attendees,
            scans=summary.scans,
            rejected=[
                RejectedItemResponse(index=r.index, item_type=r.item_type, reason=r.reason)
                for r in summary.rejected
            ],
        )


class MatchFactorResponse(BaseModel):
    name: str
    similarity: float
    weight: float
    contribution: float
    shared: list[str] = Field(default_factory=list)


class MatchResponse(BaseModel):
    candidate_id: str
    score: float
    rationale: list[MatchFactorResponse]

    @classmethod
    def from_domain(cls, match: MatchScore) -> "MatchResponse":
        return cls(
            candidate_id=match.candidate_id,
            score=round(match.score, 6),
            rationale=[
                MatchFactorResponse(
                    name=f.name,
                    similarity=round(f.similarity, 6),
                    weight=f.weight,
                    contribution=round(f.contribution, 6),
                    shared=f.shared,
                )
                for f in match.rationale
            ],
        )


class ActorMatchesResponse(BaseModel):
    actor_id: str
    match_count: int
    top_matches: list[MatchResponse]

    @classmethod
    def from_domain(cls, result: ActorMatches) -> "ActorMatchesResponse":
        return cls(
            actor_id=result.actor_id,
            match_count=result.match_count,
            top_matches=[MatchResponse.from_domain(m) for m in result.top_matches],
        )


class CalculateMatchesResponse(BaseModel):
    calculated: int
    results: list[ActorMatchesResponse]


class MatchListResponse(BaseModel):
    actor_id: str
    matches: list[MatchResponse]


class SlotResponse(BaseModel):
    start: datetime
    end: datetime

    @classmethod
    def from_domain(cls, slot: TimeSlot) -> "SlotResponse":
        return cls(start=slot.start, end=slot.end)


class SuggestedSlotsResponse(BaseModel):
    actor_a: str
    actor_b: str
    slots: list[SlotResponse]


class PackResponse(BaseModel):
    day: date
    total_requests: int
    scheduled: int
    conflicts: int
    meeting_ids: list[str]

    @classmethod
    def from_domain(cls, report: PackReport) -> "PackResponse":
        return cls(
            day=report.day,
            total_requests=report.total_requests,
            scheduled=report.scheduled,
            conflicts=report.conflicts,
            meeting_ids=list(report.meeting_ids),
        )


class MeetingResponse(BaseModel):
    meeting_id: str
    requester_id: str
    target_id: str
    status: MeetingStatus
    proposed_slot: SlotResponse
    venue: str | None = None
    message: str | None = None
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_domain(cls, meeting: Meeting) -> "MeetingResponse":
        return cls(
            meeting_id=meeting.meeting_id,
            requester_id=meeting.requester_id,
            target_id=meeting.target_id,
            status=meeting.status,
            proposed_slot=SlotResponse.from_domain(meeting.proposed_slot),
            venue=meeting.venue,
            message=meeting.message,
            created_at=meeting.created_at,
            updated_at=meeting.updated_at,
            version=meeting.version,
        )


class MeetingListResponse(BaseModel):
    actor_id: str
    meetings: list[MeetingResponse]


class HotspotResponse(BaseModel):
    location: str
    scan_count: int
    unique_actors: int
    last_scan_at: datetime


class HotspotSummaryResponse(BaseModel):
    computed_at: datetime | None = None
    window_start: datetime | None = None
    hotspots: list[HotspotResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, summary: HotspotSummary | None) -> "HotspotSummaryResponse":
        if summary is None:
            return cls()
        return cls(
            computed_at=summary.computed_at,
            window_start=summary.window_start,
            hotspots=[
                HotspotResponse(
                    location=h.location,
                    scan_count=h.scan_count,
                    unique_actors=h.unique_actors,
                    last_scan_at=h.last_scan_at,
                )
                for h in summary.hotspots
            ],
        )
