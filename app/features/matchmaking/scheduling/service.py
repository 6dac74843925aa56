"""
Meeting scheduler service.

Every transition is an optimistic read-modify-write against the meeting's
version token: read, validate against the transition table, compare-and-set.
A version clash re-reads and re-validates, so two racing accept/decline
calls resolve to exactly one winner and the loser sees the new status.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import (
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    StaleVersionError,
)
from ..domain.models import Meeting, MeetingStatus, TimeSlot
from ..repository.base import IdentityStore, MeetingStore
from .calendar_export import render_ics
from .state_machine import MeetingEvent, next_status

logger = get_logger(__name__)

DEFAULT_SUGGESTIONS = 5
MAX_SUGGESTIONS = 50


def _new_meeting_id() -> str:
    return str(uuid.uuid4())


class MeetingScheduler:
    def __init__(
        self,
        meetings: MeetingStore,
        identity: IdentityStore,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        id_factory: Callable[[], str] = _new_meeting_id,
        max_attempts: int | None = None,
    ):
        self._meetings = meetings
        self._identity = identity
        self._clock = clock
        self._id_factory = id_factory
        self._max_attempts = max_attempts or settings.MEETING_TRANSITION_ATTEMPTS

    async def schedule(
        self,
        requester_id: str,
        target_id: str,
        proposed_slot: TimeSlot,
        *,
        venue: str | None = None,
        message: str | None = None,
        idempotency_key: str | None = None,
    ) -> Meeting:
        """
        Propose a meeting; the new meeting starts in ``requested``.

        Raises:
            InvalidInputError: self-meeting, slot in the past, missing consent
            NotFoundError: either actor unknown to the identity store
            ConflictError: active meeting between the pair, or the slot
                overlaps a scheduled meeting of either participant
        """
        if requester_id == target_id:
            raise InvalidInputError("Cannot schedule a meeting with yourself", actor_id=requester_id)

        if idempotency_key:
            existing = await self._meetings.find_by_idempotency_key(idempotency_key)
            if existing:
                return self._replay(existing, requester_id, target_id)

        now = self._clock()
        if proposed_slot.start < now:
            raise InvalidInputError("Proposed slot starts in the past")

        for actor_id in (requester_id, target_id):
            attendee = await self._identity.get_attendee(actor_id)
            if not attendee.matchmaking_consent:
                raise InvalidInputError(
                    "Attendee has not consented to matchmaking", actor_id=actor_id
                )

        active = await self._meetings.find_active_between(requester_id, target_id)
        if active:
            raise ConflictError(
                "An active meeting already exists between these actors",
                meeting_id=active.meeting_id,
                status=active.status.value,
            )

        meeting = Meeting(
            meeting_id=self._id_factory(),
            requester_id=requester_id,
            target_id=target_id,
            status=MeetingStatus.REQUESTED,
            proposed_slot=proposed_slot,
            created_at=now,
            updated_at=now,
            venue=venue,
            message=message,
            idempotency_key=idempotency_key,
        )
        stored = await self._meetings.insert_meeting(meeting)
        if stored.meeting_id != meeting.meeting_id:
            # Lost a race on the same idempotency key
            return self._replay(stored, requester_id, target_id)

        logger.info(
            "Meeting requested",
            meeting_id=stored.meeting_id,
            requester_id=requester_id,
            target_id=target_id,
            slot_start=proposed_slot.start.isoformat(),
        )
        return stored

    async def accept(
        self, meeting_id: str, actor_id: str, slot: TimeSlot | None = None
    ) -> Meeting:
        """Target confirms the proposed slot; requested -> scheduled."""

        def confirm_slot(meeting: Meeting) -> None:
            if slot is not None and slot != meeting.proposed_slot:
                raise InvalidInputError(
                    "Confirmed slot does not match the proposed slot", meeting_id=meeting_id
                )

        return await self._transition(meeting_id, MeetingEvent.ACCEPT, actor_id, guard=confirm_slot)

    async def decline(self, meeting_id: str, actor_id: str) -> Meeting:
        return await self._transition(meeting_id, MeetingEvent.DECLINE, actor_id)

    async def withdraw(self, meeting_id: str, actor_id: str) -> Meeting:
        return await self._transition(meeting_id, MeetingEvent.WITHDRAW, actor_id)

    async def cancel(self, meeting_id: str, actor_id: str) -> Meeting:
        return await self._transition(meeting_id, MeetingEvent.CANCEL, actor_id)

    async def complete(self, meeting_id: str, actor_id: str | None = None) -> Meeting:
        def slot_has_ended(meeting: Meeting) -> None:
            if self._clock() < meeting.proposed_slot.end:
                raise InvalidTransitionError(
                    "Meeting cannot be completed before its slot ends", meeting_id=meeting_id
                )

        return await self._transition(
            meeting_id, MeetingEvent.COMPLETE, actor_id, guard=slot_has_ended
        )

    async def get_meeting(self, meeting_id: str) -> Meeting:
        return await self._meetings.get_meeting(meeting_id)

    async def list_meetings(
        self, actor_id: str, status: MeetingStatus | None = None
    ) -> list[Meeting]:
        return await self._meetings.list_for_actor(actor_id, status)

    async def list_requested_between(self, start: datetime, end: datetime) -> list[Meeting]:
        return await self._meetings.list_by_status(MeetingStatus.REQUESTED, start, end)

    async def suggest_slots(
        self,
        actor_a: str,
        actor_b: str,
        window: TimeSlot,
        duration: timedelta,
        limit: int = DEFAULT_SUGGESTIONS,
    ) -> list[TimeSlot]:
        """
        Free slots of ``duration`` inside ``window`` for both actors.

        Candidates are laid on a grid of ``duration`` steps from the window
        start. A slot is free when it is not in the past and does not overlap
        a scheduled meeting of either actor.
        """
        if actor_a == actor_b:
            raise InvalidInputError("Slots need two distinct actors", actor_id=actor_a)
        if duration <= timedelta(0) or duration > window.duration:
            raise InvalidInputError(
                "Duration must be positive and fit inside the window",
                duration_minutes=duration.total_seconds() / 60,
            )
        if limit < 1 or limit > MAX_SUGGESTIONS:
            raise InvalidInputError(
                f"limit must be between 1 and {MAX_SUGGESTIONS}", limit=limit
            )

        busy: list[TimeSlot] = []
        for actor_id in (actor_a, actor_b):
            await self._identity.get_attendee(actor_id)
            scheduled = await self._meetings.list_for_actor(actor_id, MeetingStatus.SCHEDULED)
            busy.extend(meeting.proposed_slot for meeting in scheduled)

        now = self._clock()
        free: list[TimeSlot] = []
        start = window.start
        while start + duration <= window.end and len(free) < limit:
            candidate = TimeSlot(start=start, end=start + duration)
            if start >= now and not any(candidate.overlaps(slot) for slot in busy):
                free.append(candidate)
            start += duration
        return free

    async def export_ics(self, actor_id: str) -> str:
        await self._identity.get_attendee(actor_id)
        meetings = await self._meetings.list_for_actor(actor_id, MeetingStatus.SCHEDULED)

        names: dict[str, str] = {}
        for meeting in meetings:
            for participant in (meeting.requester_id, meeting.target_id):
                if participant not in names:
                    attendee = await self._identity.get_attendee(participant)
                    names[participant] = attendee.display_name
        return render_ics(meetings, names, generated_at=self._clock())

    async def _transition(
        self,
        meeting_id: str,
        event: MeetingEvent,
        actor_id: str | None,
        guard: Callable[[Meeting], None] | None = None,
    ) -> Meeting:
        for attempt in range(1, self._max_attempts + 1):
            meeting = await self._meetings.get_meeting(meeting_id)
            status = next_status(meeting, event, actor_id)
            if guard:
                guard(meeting)

            updated = meeting.with_status(status, self._clock())
            try:
                saved = await self._meetings.save_meeting(updated, expected_version=meeting.version)
            except StaleVersionError:
                logger.warning(
                    "Meeting transition raced, re-reading",
                    meeting_id=meeting_id,
                    meeting_event=event.value,
                    attempt=attempt,
                )
                continue

            logger.info(
                "Meeting transitioned",
                meeting_id=meeting_id,
                meeting_event=event.value,
                from_status=meeting.status.value,
                to_status=saved.status.value,
                actor_id=actor_id,
            )
            return saved

        raise ConflictError(
            "Meeting is being modified concurrently, try again",
            meeting_id=meeting_id,
            attempts=self._max_attempts,
        )

    @staticmethod
    def _replay(existing: Meeting, requester_id: str, target_id: str) -> Meeting:
        if (existing.requester_id, existing.target_id) != (requester_id, target_id):
            raise ConflictError(
                "Idempotency key already used for a different meeting",
                meeting_id=existing.meeting_id,
            )
        logger.info("Idempotent schedule replay", meeting_id=existing.meeting_id)
        return existing
