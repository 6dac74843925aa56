"""
Hotspot summary job.

Recomputes per-location scan activity over the trailing window every
HOTSPOT_INTERVAL_MINUTES. The summary is derived data only; a failed run
is logged and retried on the next tick.

Usage:
    python -m app.jobs.worker hotspots
"""

import asyncio
from datetime import UTC, datetime

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..services.container import backend_resources, build_container
from ..services.matchmaking_service import MatchmakingService

logger = get_logger(__name__)


class HotspotJob:
    def __init__(self, service: MatchmakingService):
        self.service = service
        self.is_running = False

    async def run_once(self) -> dict:
        """
        Run a single recompute.

        Returns:
            dict: {"success": bool, "location_count": int, "duration_seconds": float}
        """
        if self.is_running:
            logger.warning("Hotspot job already running, skipping")
            return {"success": False, "error": "Already running"}

        self.is_running = True
        start_time = datetime.now(UTC)
        result = {"success": True, "location_count": 0}
        try:
            summary = await self.service.recompute_hotspots()
            result["location_count"] = len(summary.hotspots)
        except Exception as e:
            logger.error("Hotspot recompute failed", error=str(e), error_type=type(e).__name__)
            result["success"] = False
            result["error"] = str(e)
        finally:
            self.is_running = False

        result["duration_seconds"] = (datetime.now(UTC) - start_time).total_seconds()
        logger.info("Hotspot job completed", **result)
        return result


async def run_hotspot_scheduler(service: MatchmakingService, interval_minutes: int | None = None):
    interval = interval_minutes or settings.HOTSPOT_INTERVAL_MINUTES
    job = HotspotJob(service)
    logger.info("Starting hotspot scheduler", interval_minutes=interval)

    while True:
        await job.run_once()
        await asyncio.sleep(interval * 60)


async def start_hotspot_scheduler() -> None:
    """Worker entry point: open the configured backend and loop forever."""
    async with backend_resources():
        container = build_container()
        await run_hotspot_scheduler(container.service)
