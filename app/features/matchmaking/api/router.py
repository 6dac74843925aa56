"""
Matchmaking routes.

Ingestion (scans, webhook, bulk ingest), match queries, the meeting
lifecycle, calendar export and the hotspot summary. All responses use the
envelope from ``schemas``; engine errors are mapped by ``errors``.
"""

import json
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import InvalidInputError, NotFoundError
from ..domain.models import MeetingStatus, TimeSlot
from ..scheduling.state_machine import MeetingEvent
from ..services.matchmaking_service import MatchmakingService
from ..services.payloads import ScanPayload
from ..services.webhook import SIGNATURE_HEADER, signature_matches
from .schemas import (
    ActorMatchesResponse,
    ApiResponse,
    AutoPackRequest,
    CalculateMatchesRequest,
    CalculateMatchesResponse,
    EdgeResponse,
    HotspotSummaryResponse,
    IngestRequest,
    IngestResponse,
    MatchListResponse,
    MatchResponse,
    MeetingActionRequest,
    MeetingListResponse,
    MeetingResponse,
    PackResponse,
    ScanResultResponse,
    ScheduleMeetingRequest,
    SlotResponse,
    SuggestedSlotsResponse,
    ok,
    to_time_slot,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/matchmaking", tags=["matchmaking"])


def get_matchmaking_service(request: Request) -> MatchmakingService:
    return request.app.state.matchmaking.service


def verify_scan_signature(raw: bytes, signature: str | None) -> None:
    secret = settings.SCAN_WEBHOOK_SECRET
    if not secret:
        return
    if not signature:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing signature")
    if not signature_matches(raw, signature, secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")


# ----------------------------------------------------------------------
# Ingestion
# ----------------------------------------------------------------------


@router.post("/scans", response_model=ApiResponse[ScanResultResponse])
async def process_scan(
    payload: ScanPayload, service: MatchmakingService = Depends(get_matchmaking_service)
):
    """Process a single canonical scan."""
    outcome = await service.process_scan(payload.to_event())
    return ok(ScanResultResponse.from_domain(outcome))


@router.post("/scans/webhook", response_model=ApiResponse[ScanResultResponse])
async def scan_webhook(
    request: Request, service: MatchmakingService = Depends(get_matchmaking_service)
):
    """Scanner vendor webhook; signed with HMAC-SHA256 when a secret is configured."""
    raw = await request.body()
    verify_scan_signature(raw, request.headers.get(SIGNATURE_HEADER))

    try:
        if request.headers.get("content-type", "").startswith("text/plain"):
            # Bare badge id
            payload = raw.decode()
        else:
            payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidInputError("Webhook body must be JSON or a plain badge id") from e

    outcome = await service.scan_webhook(payload)
    return ok(ScanResultResponse.from_domain(outcome))


@router.post("/ingest", response_model=ApiResponse[IngestResponse])
async def ingest(
    body: IngestRequest, service: MatchmakingService = Depends(get_matchmaking_service)
):
    """Bulk ingest of attendees and scans; invalid items are reported, not fatal."""
    summary = await service.ingest_batch(body.items)
    return ok(IngestResponse.from_domain(summary))


@router.get("/edges/{actor_a}/{actor_b}", response_model=ApiResponse[EdgeResponse])
async def get_edge(
    actor_a: str, actor_b: str, service: MatchmakingService = Depends(get_matchmaking_service)
):
    edge = await service.get_edge(actor_a, actor_b)
    if edge is None:
        raise NotFoundError("No interactions recorded for this pair", actor_a=actor_a, actor_b=actor_b)
    return ok(EdgeResponse.from_domain(edge))


# ----------------------------------------------------------------------
# Matches
# ----------------------------------------------------------------------


@router.post("/matches/calculate", response_model=ApiResponse[CalculateMatchesResponse])
async def calculate_matches(
    body: CalculateMatchesRequest, service: MatchmakingService = Depends(get_matchmaking_service)
):
    results = await service.calculate_matches(body.actor_ids, body.limit)
    return ok(
        CalculateMatchesResponse(
            calculated=len(results),
            results=[ActorMatchesResponse.from_domain(r) for r in results],
        )
    )


@router.get("/matches/{actor_id}", response_model=ApiResponse[MatchListResponse])
async def get_matches(
    actor_id: str,
    limit: int | None = Query(default=None, description="Max matches (default 10)"),
    service: MatchmakingService = Depends(get_matchmaking_service),
):
    matches = await service.matches_for(actor_id, limit)
    return ok(
        MatchListResponse(actor_id=actor_id, matches=[MatchResponse.from_domain(m) for m in matches])
    )


# ----------------------------------------------------------------------
# Meetings
# ----------------------------------------------------------------------


@router.post(
    "/meetings",
    response_model=ApiResponse[MeetingResponse],
    status_code=status.HTTP_201_CREATED,
)
async def schedule_meeting(
    body: ScheduleMeetingRequest,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    service: MatchmakingService = Depends(get_matchmaking_service),
):
    meeting = await service.schedule_meeting(
        body.requester_id,
        body.target_id,
        to_time_slot(body.proposed_slot),
        venue=body.venue,
        message=body.message,
        idempotency_key=body.idempotency_key or idempotency_key,
    )
    return ok(MeetingResponse.from_domain(meeting))


@router.get("/meetings/suggestions", response_model=ApiResponse[SuggestedSlotsResponse])
async def suggest_slots(
    actor_a: str,
    actor_b: str,
    start: datetime,
    end: datetime,
    duration_minutes: int = Query(default=30, ge=1, le=24 * 60),
    limit: int | None = Query(default=None, description="Max slots (default 5)"),
    service: MatchmakingService = Depends(get_matchmaking_service),
):
    """Free slots inside [start, end) that clash with neither actor's scheduled meetings."""
    slots = await service.suggest_slots(
        actor_a,
        actor_b,
        TimeSlot(start=start, end=end),
        timedelta(minutes=duration_minutes),
        limit,
    )
    return ok(
        SuggestedSlotsResponse(
            actor_a=actor_a, actor_b=actor_b, slots=[SlotResponse.from_domain(s) for s in slots]
        )
    )


@router.post("/meetings/auto-pack", response_model=ApiResponse[PackResponse])
async def auto_pack(
    body: AutoPackRequest, service: MatchmakingService = Depends(get_matchmaking_service)
):
    """Accept a day's pending requests, best matches first, skipping double-bookings."""
    report = await service.auto_pack(body.day)
    return ok(PackResponse.from_domain(report))


@router.get("/meetings/{meeting_id}", response_model=ApiResponse[MeetingResponse])
async def get_meeting(
    meeting_id: str, service: MatchmakingService = Depends(get_matchmaking_service)
):
    meeting = await service.get_meeting(meeting_id)
    return ok(MeetingResponse.from_domain(meeting))


@router.post("/meetings/{meeting_id}/{action}", response_model=ApiResponse[MeetingResponse])
async def transition_meeting(
    meeting_id: str,
    action: MeetingEvent,
    body: MeetingActionRequest | None = None,
    service: MatchmakingService = Depends(get_matchmaking_service),
):
    """accept | decline | withdraw | cancel | complete"""
    body = body or MeetingActionRequest()
    slot = to_time_slot(body.slot) if body.slot is not None else None
    meeting = await service.transition_meeting(meeting_id, action.value, body.actor_id, slot)
    return ok(MeetingResponse.from_domain(meeting))


@router.get("/actors/{actor_id}/meetings", response_model=ApiResponse[MeetingListResponse])
async def list_meetings(
    actor_id: str,
    status_filter: MeetingStatus | None = Query(default=None, alias="status"),
    service: MatchmakingService = Depends(get_matchmaking_service),
):
    meetings = await service.list_meetings(actor_id, status_filter)
    return ok(
        MeetingListResponse(
            actor_id=actor_id, meetings=[MeetingResponse.from_domain(m) for m in meetings]
        )
    )


@router.get("/actors/{actor_id}/meetings.ics")
async def export_meetings_ics(
    actor_id: str, service: MatchmakingService = Depends(get_matchmaking_service)
):
    calendar = await service.export_ics(actor_id)
    return Response(
        content=calendar,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="meetings-{actor_id}.ics"'},
    )


# ----------------------------------------------------------------------
# Hotspots
# ----------------------------------------------------------------------


@router.get("/hotspots", response_model=ApiResponse[HotspotSummaryResponse])
async def get_hotspots(service: MatchmakingService = Depends(get_matchmaking_service)):
    """Latest summary written by the hotspots worker job; empty until it first runs."""
    summary = await service.latest_hotspots()
    return ok(HotspotSummaryResponse.from_domain(summary))
