"""
Bounded exponential backoff for idempotent boundary operations.
"""

import asyncio
import functools

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import MatchmakingError

logger = get_logger(__name__)


def with_retry(max_retries: int | None = None, base_delay: float | None = None):
    """
    Decorator to retry an operation on recoverable engine errors.

    Only ``UnavailableError`` (and any other error flagged ``recoverable``)
    is retried; invalid input, not-found and conflicts propagate at once.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Base delay between retries (exponential backoff)
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            retries = settings.BOUNDARY_MAX_RETRIES if max_retries is None else max_retries
            delay_base = settings.BOUNDARY_RETRY_BASE_DELAY if base_delay is None else base_delay

            for attempt in range(retries + 1):
                try:
                    return await func(*args, **kwargs)
                except MatchmakingError as e:
                    if not e.recoverable:
                        raise
                    if attempt >= retries:
                        logger.error(
                            "Operation failed after all retries",
                            operation=func.__name__,
                            attempts=retries + 1,
                            error=str(e),
                        )
                        raise
                    delay = delay_base * (2**attempt)
                    logger.warning(
                        "Operation failed, retrying",
                        operation=func.__name__,
                        attempt=attempt + 1,
                        max_retries=retries,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
