"""
Boundary services for the matchmaking feature.
"""

from .container import (
    MatchmakingContainer,
    backend_resources,
    build_container,
    build_memory_container,
    build_postgres_container,
)
from .matchmaking_service import (
    ActorMatches,
    IngestSummary,
    MatchmakingService,
    RejectedItem,
    RetentionReport,
    ScanOutcome,
)

__all__ = [
    "ActorMatches",
    "IngestSummary",
    "MatchmakingContainer",
    "MatchmakingService",
    "RejectedItem",
    "RetentionReport",
    "ScanOutcome",
    "backend_resources",
    "build_container",
    "build_memory_container",
    "build_postgres_container",
]
