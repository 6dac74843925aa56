"""
Domain subpackage for the matchmaking feature.
"""

from .errors import (
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    MatchmakingError,
    NotFoundError,
    StaleVersionError,
    UnavailableError,
)
from .models import (
    Attendee,
    Hotspot,
    HotspotSummary,
    InteractionEdge,
    MatchFactor,
    MatchScore,
    Meeting,
    MeetingStatus,
    ScanEvent,
    ScanLogEntry,
    TimeSlot,
    canonical_pair,
    ensure_utc,
)

__all__ = [
    "Attendee",
    "ConflictError",
    "Hotspot",
    "HotspotSummary",
    "InteractionEdge",
    "InvalidInputError",
    "InvalidTransitionError",
    "MatchFactor",
    "MatchScore",
    "MatchmakingError",
    "Meeting",
    "MeetingStatus",
    "NotFoundError",
    "ScanEvent",
    "ScanLogEntry",
    "StaleVersionError",
    "TimeSlot",
    "UnavailableError",
    "canonical_pair",
    "ensure_utc",
]
