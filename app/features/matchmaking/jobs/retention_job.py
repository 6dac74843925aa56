"""
Scan retention job.

Purges dedup claims past SCAN_DEDUP_TTL_HOURS and scan-log rows older
than the same window, plus hotspot summaries superseded before it.
Redis expires its own claims, so with the Redis ledger only the
Postgres tables shrink.
"""

import asyncio

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..services.container import backend_resources, build_container
from ..services.matchmaking_service import MatchmakingService

logger = get_logger(__name__)


async def run_retention_job(service: MatchmakingService) -> dict:
    try:
        report = await service.purge_expired()
    except Exception as e:
        logger.error("Scan retention purge failed", error=str(e), error_type=type(e).__name__)
        return {"success": False, "error": str(e)}
    return {
        "success": True,
        "claims_purged": report.claims_purged,
        "scan_log_purged": report.scan_log_purged,
        "hotspot_summaries_purged": report.hotspot_summaries_purged,
    }


async def run_retention_scheduler(
    service: MatchmakingService, interval_minutes: int | None = None
) -> None:
    interval = interval_minutes or settings.SCAN_RETENTION_INTERVAL_MINUTES
    logger.info("Starting scan retention scheduler", interval_minutes=interval)

    while True:
        await run_retention_job(service)
        await asyncio.sleep(interval * 60)


async def start_scan_retention_scheduler() -> None:
    async with backend_resources():
        container = build_container()
        await run_retention_scheduler(container.service)
