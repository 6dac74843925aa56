"""
Meeting lifecycle transitions.

    requested --accept (target)------> scheduled
    requested --decline (target)-----> declined
    requested --withdraw (requester)-> cancelled
    scheduled --cancel (either)------> cancelled
    scheduled --complete-------------> completed   (only after the slot ends)

declined, cancelled and completed are terminal.
"""

from __future__ import annotations

from enum import StrEnum

from ..domain.errors import InvalidInputError, InvalidTransitionError
from ..domain.models import Meeting, MeetingStatus


class MeetingEvent(StrEnum):
    ACCEPT = "accept"
    DECLINE = "decline"
    WITHDRAW = "withdraw"
    CANCEL = "cancel"
    COMPLETE = "complete"


class Actor(StrEnum):
    REQUESTER = "requester"
    TARGET = "target"
    EITHER = "either"
    ANY = "any"  # no participant check (system-driven)


TRANSITIONS: dict[tuple[MeetingStatus, MeetingEvent], tuple[MeetingStatus, Actor]] = {
    (MeetingStatus.REQUESTED, MeetingEvent.ACCEPT): (MeetingStatus.SCHEDULED, Actor.TARGET),
    (MeetingStatus.REQUESTED, MeetingEvent.DECLINE): (MeetingStatus.DECLINED, Actor.TARGET),
    (MeetingStatus.REQUESTED, MeetingEvent.WITHDRAW): (MeetingStatus.CANCELLED, Actor.REQUESTER),
    (MeetingStatus.SCHEDULED, MeetingEvent.CANCEL): (MeetingStatus.CANCELLED, Actor.EITHER),
    (MeetingStatus.SCHEDULED, MeetingEvent.COMPLETE): (MeetingStatus.COMPLETED, Actor.ANY),
}


def next_status(meeting: Meeting, event: MeetingEvent, actor_id: str | None) -> MeetingStatus:
    """Resolve the target status or raise; pure, no time-based guards."""
    if meeting.status.is_terminal:
        raise InvalidTransitionError(
            f"Meeting is {meeting.status.value}; no further transitions allowed",
            meeting_id=meeting.meeting_id,
            status=meeting.status.value,
            meeting_event=event.value,
        )

    transition = TRANSITIONS.get((meeting.status, event))
    if transition is None:
        raise InvalidTransitionError(
            f"Cannot {event.value} a {meeting.status.value} meeting",
            meeting_id=meeting.meeting_id,
            status=meeting.status.value,
            meeting_event=event.value,
        )

    target_status, allowed = transition
    if actor_id is not None and not meeting.involves(actor_id):
        raise InvalidInputError(
            "Actor is not a participant of this meeting",
            meeting_id=meeting.meeting_id,
            actor_id=actor_id,
        )
    if allowed is Actor.ANY:
        return target_status
    if actor_id is None:
        raise InvalidInputError(f"actor_id is required to {event.value} a meeting")

    if allowed is Actor.TARGET and actor_id != meeting.target_id:
        raise InvalidInputError(f"Only the target can {event.value} a meeting request")
    if allowed is Actor.REQUESTER and actor_id != meeting.requester_id:
        raise InvalidInputError(f"Only the requester can {event.value} a meeting request")
    return target_status
