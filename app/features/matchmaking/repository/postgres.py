"""
Postgres-backed stores.

Every multi-statement write runs inside one ``db_pool.transaction()``, so a
failure or a cancelled request rolls the whole unit back. Writers touching
the same actor are serialised with transaction-scoped advisory locks taken
in sorted order; the partial unique index on active pairs is the backstop.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime

import psycopg
from psycopg.types.json import Jsonb

from app.db.helpers import fetch_all, fetch_one, translate_db_errors
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import ConflictError, NotFoundError, StaleVersionError
from ..domain.models import (
    Attendee,
    Hotspot,
    HotspotSummary,
    InteractionEdge,
    Meeting,
    MeetingStatus,
    ScanEvent,
    ScanLogEntry,
    TimeSlot,
    canonical_pair,
)
from .base import GraphStore, IdentityStore, MeetingStore

logger = get_logger(__name__)

_ACTIVE = [MeetingStatus.REQUESTED.value, MeetingStatus.SCHEDULED.value]


def _row_to_attendee(row: dict) -> Attendee:
    return Attendee(
        actor_id=row["actor_id"],
        goals=frozenset(row["goals"] or ()),
        interests=frozenset(row["interests"] or ()),
        company=row["company"],
        role=row["role"],
        name=row["name"],
        matchmaking_consent=row["matchmaking_consent"],
    )


def _row_to_edge(row: dict) -> InteractionEdge:
    return InteractionEdge(
        actor_a=row["actor_a"],
        actor_b=row["actor_b"],
        weight=row["weight"],
        last_interaction_at=row["last_interaction_at"],
    )


def _row_to_meeting(row: dict) -> Meeting:
    return Meeting(
        meeting_id=row["meeting_id"],
        requester_id=row["requester_id"],
        target_id=row["target_id"],
        status=MeetingStatus(row["status"]),
        proposed_slot=TimeSlot(start=row["slot_start"], end=row["slot_end"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        venue=row["venue"],
        message=row["message"],
        idempotency_key=row["idempotency_key"],
        version=row["version"],
    )


async def _lock_actors(conn: psycopg.AsyncConnection, *actor_ids: str) -> None:
    for actor_id in sorted(set(actor_ids)):
        await conn.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (actor_id,))


class PostgresIdentityStore(IdentityStore):
    async def get_attendee(self, actor_id: str) -> Attendee:
        row = await fetch_one("SELECT * FROM attendees WHERE actor_id = %s", (actor_id,))
        if not row:
            raise NotFoundError(f"Unknown actor: {actor_id}", actor_id=actor_id)
        return _row_to_attendee(row)

    async def list_attendees(self) -> list[Attendee]:
        rows = await fetch_all("SELECT * FROM attendees ORDER BY actor_id")
        return [_row_to_attendee(row) for row in rows]

    async def upsert_attendees(self, attendees: Iterable[Attendee]) -> int:
        attendees = list(attendees)
        if not attendees:
            return 0

        query = """
            INSERT INTO attendees (
                actor_id, goals, interests, company, role, name, matchmaking_consent, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (actor_id) DO UPDATE SET
                goals = EXCLUDED.goals,
                interests = EXCLUDED.interests,
                company = EXCLUDED.company,
                role = EXCLUDED.role,
                name = EXCLUDED.name,
                matchmaking_consent = EXCLUDED.matchmaking_consent,
                updated_at = NOW()
        """
        async with translate_db_errors("upsert_attendees"):
            async with db_pool.transaction() as conn:
                for a in attendees:
                    await conn.execute(
                        query,
                        (
                            a.actor_id,
                            sorted(a.goals),
                            sorted(a.interests),
                            a.company,
                            a.role,
                            a.name,
                            a.matchmaking_consent,
                        ),
                    )
        return len(attendees)


class PostgresGraphStore(GraphStore):
    async def apply_scans(self, scans: Sequence[ScanEvent]) -> list[InteractionEdge]:
        if not scans:
            return []

        # One upsert per pair; sorted so concurrent batches lock rows in the same order
        per_pair: dict[tuple[str, str], list[ScanEvent]] = defaultdict(list)
        for scan in scans:
            per_pair[scan.pair].append(scan)

        upsert = """
            INSERT INTO interaction_edges (actor_a, actor_b, weight, last_interaction_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (actor_a, actor_b) DO UPDATE SET
                weight = interaction_edges.weight + EXCLUDED.weight,
                last_interaction_at = GREATEST(
                    interaction_edges.last_interaction_at, EXCLUDED.last_interaction_at
                )
            RETURNING actor_a, actor_b, weight, last_interaction_at
        """
        log_insert = """
            INSERT INTO scan_log (scan_id, actor_a, actor_b, occurred_at, location)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (scan_id) DO NOTHING
        """

        edges: dict[tuple[str, str], InteractionEdge] = {}
        async with translate_db_errors("apply_scans"):
            async with db_pool.transaction() as conn:
                for pair in sorted(per_pair):
                    pair_scans = per_pair[pair]
                    latest = max(s.occurred_at for s in pair_scans)
                    row = await fetch_one(
                        upsert, (pair[0], pair[1], len(pair_scans), latest), connection=conn
                    )
                    edges[pair] = _row_to_edge(row)
                for scan in scans:
                    actor_a, actor_b = scan.pair
                    await conn.execute(
                        log_insert,
                        (scan.scan_id, actor_a, actor_b, scan.occurred_at, scan.location),
                    )

        logger.debug("Scans applied to graph", scan_count=len(scans), edge_count=len(edges))
        return [edges[scan.pair] for scan in scans]

    async def get_edge(self, actor_a: str, actor_b: str) -> InteractionEdge | None:
        a, b = canonical_pair(actor_a, actor_b)
        row = await fetch_one(
            "SELECT * FROM interaction_edges WHERE actor_a = %s AND actor_b = %s", (a, b)
        )
        return _row_to_edge(row) if row else None

    async def edges_for(self, actor_id: str) -> list[InteractionEdge]:
        rows = await fetch_all(
            "SELECT * FROM interaction_edges WHERE actor_a = %s OR actor_b = %s",
            (actor_id, actor_id),
        )
        return [_row_to_edge(row) for row in rows]

    async def scans_since(self, since: datetime) -> list[ScanLogEntry]:
        rows = await fetch_all(
            "SELECT * FROM scan_log WHERE occurred_at >= %s ORDER BY occurred_at", (since,)
        )
        return [
            ScanLogEntry(
                scan_id=row["scan_id"],
                actor_a=row["actor_a"],
                actor_b=row["actor_b"],
                occurred_at=row["occurred_at"],
                location=row["location"],
            )
            for row in rows
        ]

    async def purge_scan_log(self, before: datetime) -> int:
        async with translate_db_errors("purge_scan_log"):
            async with db_pool.connection() as conn:
                cursor = await conn.execute("DELETE FROM scan_log WHERE occurred_at < %s", (before,))
                return cursor.rowcount

    async def save_hotspot_summary(self, summary: HotspotSummary) -> None:
        payload = [
            {
                "location": h.location,
                "scan_count": h.scan_count,
                "unique_actors": h.unique_actors,
                "last_scan_at": h.last_scan_at.isoformat(),
            }
            for h in summary.hotspots
        ]
        async with translate_db_errors("save_hotspot_summary"):
            async with db_pool.connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO hotspot_summaries (computed_at, window_start, hotspots)
                    VALUES (%s, %s, %s)
                    """,
                    (summary.computed_at, summary.window_start, Jsonb(payload)),
                )

    async def latest_hotspot_summary(self) -> HotspotSummary | None:
        row = await fetch_one(
            "SELECT * FROM hotspot_summaries ORDER BY computed_at DESC LIMIT 1"
        )
        if not row:
            return None
        return HotspotSummary(
            computed_at=row["computed_at"],
            window_start=row["window_start"],
            hotspots=[
                Hotspot(
                    location=item["location"],
                    scan_count=item["scan_count"],
                    unique_actors=item["unique_actors"],
                    last_scan_at=datetime.fromisoformat(item["last_scan_at"]),
                )
                for item in row["hotspots"]
            ],
        )

    async def purge_hotspot_summaries(self, before: datetime) -> int:
        async with translate_db_errors("purge_hotspot_summaries"):
            async with db_pool.connection() as conn:
                cursor = await conn.execute(
                    """
                    DELETE FROM hotspot_summaries
                    WHERE computed_at < %s
                      AND id <> (SELECT id FROM hotspot_summaries ORDER BY computed_at DESC LIMIT 1)
                    """,
                    (before,),
                )
                return cursor.rowcount


class PostgresMeetingStore(MeetingStore):
    async def get_meeting(self, meeting_id: str) -> Meeting:
        row = await fetch_one("SELECT * FROM meetings WHERE meeting_id = %s", (meeting_id,))
        if not row:
            raise NotFoundError(f"Unknown meeting: {meeting_id}", meeting_id=meeting_id)
        return _row_to_meeting(row)

    async def find_by_idempotency_key(self, key: str) -> Meeting | None:
        row = await fetch_one("SELECT * FROM meetings WHERE idempotency_key = %s", (key,))
        return _row_to_meeting(row) if row else None

    async def find_active_between(self, actor_a: str, actor_b: str) -> Meeting | None:
        a, b = canonical_pair(actor_a, actor_b)
        row = await fetch_one(
            """
            SELECT * FROM meetings
            WHERE LEAST(requester_id, target_id) = %s
              AND GREATEST(requester_id, target_id) = %s
              AND status = ANY(%s)
            LIMIT 1
            """,
            (a, b, _ACTIVE),
        )
        return _row_to_meeting(row) if row else None

    async def list_for_actor(
        self, actor_id: str, status: MeetingStatus | None = None
    ) -> list[Meeting]:
        query = "SELECT * FROM meetings WHERE (requester_id = %s OR target_id = %s)"
        params: tuple = (actor_id, actor_id)
        if status is not None:
            query += " AND status = %s"
            params += (status.value,)
        rows = await fetch_all(query + " ORDER BY slot_start, meeting_id", params)
        return [_row_to_meeting(row) for row in rows]

    async def list_by_status(
        self, status: MeetingStatus, starts_from: datetime, starts_before: datetime
    ) -> list[Meeting]:
        rows = await fetch_all(
            """
            SELECT * FROM meetings
            WHERE status = %s AND slot_start >= %s AND slot_start < %s
            ORDER BY slot_start, meeting_id
            """,
            (status.value, starts_from, starts_before),
        )
        return [_row_to_meeting(row) for row in rows]

    async def insert_meeting(self, meeting: Meeting) -> Meeting:
        async with translate_db_errors("insert_meeting"):
            async with db_pool.transaction() as conn:
                await _lock_actors(conn, meeting.requester_id, meeting.target_id)

                if meeting.idempotency_key:
                    row = await fetch_one(
                        "SELECT * FROM meetings WHERE idempotency_key = %s",
                        (meeting.idempotency_key,),
                        connection=conn,
                    )
                    if row:
                        return _row_to_meeting(row)

                a, b = meeting.pair
                active = await fetch_one(
                    """
                    SELECT meeting_id FROM meetings
                    WHERE LEAST(requester_id, target_id) = %s
                      AND GREATEST(requester_id, target_id) = %s
                      AND status = ANY(%s)
                    """,
                    (a, b, _ACTIVE),
                    connection=conn,
                )
                if active:
                    raise ConflictError(
                        "An active meeting already exists between these actors",
                        meeting_id=active["meeting_id"],
                    )
                await self._check_double_booking(conn, meeting)

                row = await fetch_one(
                    """
                    INSERT INTO meetings (
                        meeting_id, requester_id, target_id, status, slot_start, slot_end,
                        venue, message, idempotency_key, version, created_at, updated_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, 1, %s, %s)
                    RETURNING *
                    """,
                    (
                        meeting.meeting_id,
                        meeting.requester_id,
                        meeting.target_id,
                        meeting.status.value,
                        meeting.proposed_slot.start,
                        meeting.proposed_slot.end,
                        meeting.venue,
                        meeting.message,
                        meeting.idempotency_key,
                        meeting.created_at,
                        meeting.updated_at,
                    ),
                    connection=conn,
                )
        return _row_to_meeting(row)

    async def save_meeting(self, meeting: Meeting, expected_version: int) -> Meeting:
        async with translate_db_errors("save_meeting"):
            async with db_pool.transaction() as conn:
                if meeting.status == MeetingStatus.SCHEDULED:
                    await _lock_actors(conn, meeting.requester_id, meeting.target_id)
                    await self._check_double_booking(conn, meeting)

                row = await fetch_one(
                    """
                    UPDATE meetings
                    SET status = %s,
                        slot_start = %s,
                        slot_end = %s,
                        venue = %s,
                        updated_at = %s,
                        version = version + 1
                    WHERE meeting_id = %s AND version = %s
                    RETURNING *
                    """,
                    (
                        meeting.status.value,
                        meeting.proposed_slot.start,
                        meeting.proposed_slot.end,
                        meeting.venue,
                        meeting.updated_at,
                        meeting.meeting_id,
                        expected_version,
                    ),
                    connection=conn,
                )
                if row is None:
                    current = await fetch_one(
                        "SELECT version FROM meetings WHERE meeting_id = %s",
                        (meeting.meeting_id,),
                        connection=conn,
                    )
                    if current is None:
                        raise NotFoundError(
                            f"Unknown meeting: {meeting.meeting_id}",
                            meeting_id=meeting.meeting_id,
                        )
                    raise StaleVersionError(
                        "Meeting was modified concurrently",
                        meeting_id=meeting.meeting_id,
                        expected_version=expected_version,
                        actual_version=current["version"],
                    )
        return _row_to_meeting(row)

    @staticmethod
    async def _check_double_booking(conn: psycopg.AsyncConnection, meeting: Meeting) -> None:
        participants = [meeting.requester_id, meeting.target_id]
        clash = await fetch_one(
            """
            SELECT meeting_id FROM meetings
            WHERE meeting_id <> %s
              AND status = 'scheduled'
              AND (requester_id = ANY(%s) OR target_id = ANY(%s))
              AND slot_start < %s
              AND slot_end > %s
            LIMIT 1
            """,
            (
                meeting.meeting_id,
                participants,
                participants,
                meeting.proposed_slot.end,
                meeting.proposed_slot.start,
            ),
            connection=conn,
        )
        if clash:
            raise ConflictError(
                "Proposed slot overlaps an existing scheduled meeting",
                meeting_id=clash["meeting_id"],
            )
