"""
Hotspot summary - scan activity per location over a trailing window.

Recomputed by the periodic worker job. Purely derived data: edges and match
scores never depend on it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ...domain.models import Hotspot, HotspotSummary
from ...repository.base import GraphStore

logger = get_logger(__name__)

UNKNOWN_LOCATION = "unknown"


@dataclass
class _LocationWorkingSet:
    scan_count: int = 0
    actors: set[str] = field(default_factory=set)
    last_scan_at: datetime | None = None


class HotspotService:
    def __init__(
        self,
        store: GraphStore,
        window: timedelta | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self._store = store
        self._window = window or timedelta(minutes=settings.HOTSPOT_WINDOW_MINUTES)
        self._clock = clock

    async def recompute(self) -> HotspotSummary:
        now = self._clock()
        window_start = now - self._window
        entries = await self._store.scans_since(window_start)

        locations: dict[str, _LocationWorkingSet] = {}
        for entry in entries:
            working = locations.setdefault(entry.location or UNKNOWN_LOCATION, _LocationWorkingSet())
            working.scan_count += 1
            working.actors.update((entry.actor_a, entry.actor_b))
            if working.last_scan_at is None or entry.occurred_at > working.last_scan_at:
                working.last_scan_at = entry.occurred_at

        hotspots = [
            Hotspot(
                location=location,
                scan_count=working.scan_count,
                unique_actors=len(working.actors),
                last_scan_at=working.last_scan_at,
            )
            for location, working in locations.items()
        ]
        hotspots.sort(key=lambda h: (-h.scan_count, h.location))

        summary = HotspotSummary(computed_at=now, window_start=window_start, hotspots=hotspots)
        await self._store.save_hotspot_summary(summary)
        logger.info("Hotspots recomputed", scan_count=len(entries), location_count=len(hotspots))
        return summary

    async def latest(self) -> HotspotSummary | None:
        return await self._store.latest_hotspot_summary()

    async def prune(self, before: datetime) -> int:
        purged = await self._store.purge_hotspot_summaries(before)
        if purged:
            logger.info("Old hotspot summaries purged", purged=purged, before=before.isoformat())
        return purged
