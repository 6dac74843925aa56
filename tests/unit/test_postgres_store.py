from contextlib import asynccontextmanager
from datetime import UTC, datetime

import psycopg
import pytest

from app.db.helpers import DatabaseError, translate_db_errors
from app.features.matchmaking.domain import (
    ConflictError,
    Meeting,
    MeetingStatus,
    NotFoundError,
    TimeSlot,
    UnavailableError,
)
from app.features.matchmaking.repository import postgres

NOW = datetime(2025, 9, 15, 8, 0, tzinfo=UTC)


def _attendee_row(**overrides):
    row = {
        "actor_id": "alice",
        "goals": ["hiring"],
        "interests": None,
        "company": "Acme",
        "role": "CTO",
        "name": "Alice",
        "matchmaking_consent": True,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_get_attendee_maps_row(monkeypatch):
    async def fake_fetch_one(query, params=(), **kwargs):
        assert params == ("alice",)
        return _attendee_row()

    monkeypatch.setattr(postgres, "fetch_one", fake_fetch_one)

    attendee = await postgres.PostgresIdentityStore().get_attendee("alice")

    assert attendee.goals == frozenset({"hiring"})
    assert attendee.interests == frozenset()
    assert attendee.display_name == "Alice"


@pytest.mark.asyncio
async def test_get_attendee_missing_row(monkeypatch):
    async def fake_fetch_one(query, params=(), **kwargs):
        return None

    monkeypatch.setattr(postgres, "fetch_one", fake_fetch_one)

    with pytest.raises(NotFoundError):
        await postgres.PostgresIdentityStore().get_attendee("nobody")


def test_meeting_row_mapping():
    meeting = postgres._row_to_meeting(
        {
            "meeting_id": "m-1",
            "requester_id": "alice",
            "target_id": "bob",
            "status": "scheduled",
            "slot_start": NOW,
            "slot_end": NOW.replace(hour=9),
            "created_at": NOW,
            "updated_at": NOW,
            "venue": None,
            "message": "hi",
            "idempotency_key": None,
            "version": 3,
        }
    )

    assert meeting.status == MeetingStatus.SCHEDULED
    assert meeting.proposed_slot.duration.total_seconds() == 3600
    assert meeting.version == 3


@pytest.mark.asyncio
async def test_operational_errors_become_unavailable():
    with pytest.raises(UnavailableError) as exc_info:
        async with translate_db_errors("load_edge"):
            raise psycopg.OperationalError("server closed the connection")

    assert exc_info.value.recoverable is True
    assert exc_info.value.context["operation"] == "load_edge"


@pytest.mark.asyncio
async def test_other_database_errors_are_fatal():
    with pytest.raises(DatabaseError) as exc_info:
        async with translate_db_errors("load_edge"):
            raise psycopg.DataError("bad value")

    assert exc_info.value.recoverable is False
    assert exc_info.value.operation == "load_edge"


@pytest.mark.asyncio
async def test_unique_violations_become_conflicts():
    with pytest.raises(ConflictError) as exc_info:
        async with translate_db_errors("insert_meeting"):
            raise psycopg.errors.UniqueViolation("duplicate key value violates unique constraint")

    assert exc_info.value.recoverable is False
    assert exc_info.value.context["operation"] == "insert_meeting"


@pytest.mark.asyncio
async def test_idempotency_key_race_surfaces_as_conflict(monkeypatch):
    class FakeConnection:
        async def execute(self, query, params=()):
            return None

    class FakePool:
        @asynccontextmanager
        async def transaction(self):
            yield FakeConnection()

    async def fake_fetch_one(query, params=(), *, connection=None):
        if "INSERT INTO meetings" in query:
            async with translate_db_errors("fetch_one"):
                raise psycopg.errors.UniqueViolation("meetings_idempotency_key_key")
        return None

    monkeypatch.setattr(postgres, "db_pool", FakePool())
    monkeypatch.setattr(postgres, "fetch_one", fake_fetch_one)

    meeting = Meeting(
        meeting_id="m-2",
        requester_id="carol",
        target_id="dave",
        status=MeetingStatus.REQUESTED,
        proposed_slot=TimeSlot(start=NOW.replace(hour=10), end=NOW.replace(hour=11)),
        created_at=NOW,
        updated_at=NOW,
        idempotency_key="req-1",
    )

    with pytest.raises(ConflictError):
        await postgres.PostgresMeetingStore().insert_meeting(meeting)
