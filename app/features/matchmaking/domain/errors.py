"""
Error taxonomy for the matchmaking engine.

Every failure surfaced by the engine is one of these. The API layer maps
``code`` to an HTTP status and the boundary retry decorator only retries
errors flagged ``recoverable``.
"""


class MatchmakingError(Exception):
    """Base class for engine errors."""

    code = "internal_error"
    recoverable = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidInputError(MatchmakingError):
    """Malformed scan, slot or payload. Never retried."""

    code = "invalid_input"


class NotFoundError(MatchmakingError):
    """Unknown actor or meeting. Never retried."""

    code = "not_found"


class ConflictError(MatchmakingError):
    """Duplicate active meeting or slot overlap."""

    code = "conflict"


class InvalidTransitionError(MatchmakingError):
    """Meeting transition not allowed from the current status."""

    code = "invalid_transition"


class UnavailableError(MatchmakingError):
    """Storage unreachable. Safe to retry for idempotent operations."""

    code = "unavailable"
    recoverable = True


class StaleVersionError(MatchmakingError):
    """Optimistic concurrency token no longer matches the stored row."""

    code = "stale_version"
