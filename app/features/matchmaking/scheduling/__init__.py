"""
Meeting scheduling package.

Owns the meeting-proposal state machine, double-booking checks and the
calendar export of scheduled meetings.
"""

from .calendar_export import render_ics
from .service import MeetingScheduler
from .state_machine import MeetingEvent, next_status

__all__ = ["MeetingEvent", "MeetingScheduler", "next_status", "render_ics"]
