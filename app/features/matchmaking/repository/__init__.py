"""
Persistence for the matchmaking feature.

``base`` defines the store interfaces; ``memory``, ``postgres`` and
``redis_ledger`` implement them. Components receive stores by injection
and never import a backend directly.
"""

from .base import GraphStore, IdentityStore, MeetingStore, ScanLedger
from .memory import (
    InMemoryGraphStore,
    InMemoryIdentityStore,
    InMemoryMeetingStore,
    InMemoryScanLedger,
)

__all__ = [
    "GraphStore",
    "IdentityStore",
    "InMemoryGraphStore",
    "InMemoryIdentityStore",
    "InMemoryMeetingStore",
    "InMemoryScanLedger",
    "MeetingStore",
    "ScanLedger",
]
