from datetime import UTC, datetime, timedelta

import pytest

from app.features.matchmaking.domain import (
    InvalidInputError,
    InvalidTransitionError,
    Meeting,
    MeetingStatus,
    TimeSlot,
)
from app.features.matchmaking.scheduling import MeetingEvent, next_status

NOW = datetime(2025, 9, 15, 8, 0, tzinfo=UTC)


def _meeting(status: MeetingStatus) -> Meeting:
    return Meeting(
        meeting_id="m-1",
        requester_id="alice",
        target_id="bob",
        status=status,
        proposed_slot=TimeSlot(start=NOW, end=NOW + timedelta(minutes=30)),
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.mark.parametrize(
    "status,event,actor,expected",
    [
        (MeetingStatus.REQUESTED, MeetingEvent.ACCEPT, "bob", MeetingStatus.SCHEDULED),
        (MeetingStatus.REQUESTED, MeetingEvent.DECLINE, "bob", MeetingStatus.DECLINED),
        (MeetingStatus.REQUESTED, MeetingEvent.WITHDRAW, "alice", MeetingStatus.CANCELLED),
        (MeetingStatus.SCHEDULED, MeetingEvent.CANCEL, "alice", MeetingStatus.CANCELLED),
        (MeetingStatus.SCHEDULED, MeetingEvent.CANCEL, "bob", MeetingStatus.CANCELLED),
        (MeetingStatus.SCHEDULED, MeetingEvent.COMPLETE, None, MeetingStatus.COMPLETED),
    ],
)
def test_allowed_transitions(status, event, actor, expected):
    assert next_status(_meeting(status), event, actor) == expected


@pytest.mark.parametrize(
    "status", [MeetingStatus.DECLINED, MeetingStatus.CANCELLED, MeetingStatus.COMPLETED]
)
@pytest.mark.parametrize("event", list(MeetingEvent))
def test_terminal_states_reject_every_event(status, event):
    with pytest.raises(InvalidTransitionError):
        next_status(_meeting(status), event, "bob")


@pytest.mark.parametrize(
    "status,event",
    [
        (MeetingStatus.REQUESTED, MeetingEvent.CANCEL),
        (MeetingStatus.REQUESTED, MeetingEvent.COMPLETE),
        (MeetingStatus.SCHEDULED, MeetingEvent.ACCEPT),
        (MeetingStatus.SCHEDULED, MeetingEvent.DECLINE),
        (MeetingStatus.ACCEPTED, MeetingEvent.CANCEL),
    ],
)
def test_events_outside_the_table_are_invalid(status, event):
    with pytest.raises(InvalidTransitionError):
        next_status(_meeting(status), event, "bob")


def test_only_target_may_accept():
    with pytest.raises(InvalidInputError):
        next_status(_meeting(MeetingStatus.REQUESTED), MeetingEvent.ACCEPT, "alice")


def test_only_requester_may_withdraw():
    with pytest.raises(InvalidInputError):
        next_status(_meeting(MeetingStatus.REQUESTED), MeetingEvent.WITHDRAW, "bob")


def test_outsider_cannot_cancel():
    with pytest.raises(InvalidInputError):
        next_status(_meeting(MeetingStatus.SCHEDULED), MeetingEvent.CANCEL, "mallory")


def test_actor_required_for_participant_events():
    with pytest.raises(InvalidInputError):
        next_status(_meeting(MeetingStatus.REQUESTED), MeetingEvent.DECLINE, None)


def test_accepted_status_is_neither_active_nor_terminal():
    assert MeetingStatus.ACCEPTED.is_active is False
    assert MeetingStatus.ACCEPTED.is_terminal is False
