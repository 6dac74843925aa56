"""
ICS (RFC 5545) export of scheduled meetings.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime

from ..domain.models import Meeting, MeetingStatus

PRODID = "-//Matchmaking Engine//Meeting Scheduler//EN"
UID_DOMAIN = "matchmaking.local"


def _format_ics_date(value: datetime) -> str:
    return value.strftime("%Y%m%dT%H%M%SZ")


def _escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\").replace(";", "\\;").replace(",", "\\,").replace("\n", "\\n")
    )


def render_ics(
    meetings: Iterable[Meeting], names: Mapping[str, str], generated_at: datetime
) -> str:
    """Render scheduled meetings as a VCALENDAR; other statuses are skipped."""
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]

    for meeting in meetings:
        if meeting.status != MeetingStatus.SCHEDULED:
            continue
        requester = names.get(meeting.requester_id, meeting.requester_id)
        target = names.get(meeting.target_id, meeting.target_id)

        lines.append("BEGIN:VEVENT")
        lines.append(f"UID:{meeting.meeting_id}@{UID_DOMAIN}")
        lines.append(f"DTSTAMP:{_format_ics_date(generated_at)}")
        lines.append(f"DTSTART:{_format_ics_date(meeting.proposed_slot.start)}")
        lines.append(f"DTEND:{_format_ics_date(meeting.proposed_slot.end)}")
        lines.append(f"SUMMARY:{_escape(f'Meeting: {requester} & {target}')}")
        lines.append(f"DESCRIPTION:{_escape(meeting.message or f'Meeting between {requester} and {target}')}")
        if meeting.venue:
            lines.append(f"LOCATION:{_escape(meeting.venue)}")
        lines.append("STATUS:CONFIRMED")
        lines.append("END:VEVENT")

    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"
