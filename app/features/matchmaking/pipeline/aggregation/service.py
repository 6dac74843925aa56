"""
Graph aggregator.

The only writer of interaction edge weight. Scans are folded into the edge
of their canonical (sorted) actor pair, so A->B and B->A land on the same
edge, and last_interaction_at only moves forward, so arrival order does
not matter.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from app.infrastructure.observability.logging import get_logger

from ...domain.errors import InvalidInputError
from ...domain.models import InteractionEdge, ScanEvent
from ...repository.base import GraphStore

logger = get_logger(__name__)


class GraphAggregator:
    def __init__(self, store: GraphStore):
        self._store = store

    async def apply(self, scan: ScanEvent) -> InteractionEdge:
        edges = await self.apply_batch([scan])
        return edges[0]

    async def apply_batch(self, scans: Sequence[ScanEvent]) -> list[InteractionEdge]:
        """Apply a batch transactionally: all edges update or none do."""
        if not scans:
            return []
        for scan in scans:
            if scan.is_self_scan:
                raise InvalidInputError("Self-scans cannot form an edge", scan_id=scan.scan_id)

        edges = await self._store.apply_scans(scans)
        logger.info(
            "Scans aggregated",
            scan_count=len(scans),
            edge_count=len({edge.pair for edge in edges}),
        )
        return edges

    async def get_edge(self, actor_a: str, actor_b: str) -> InteractionEdge | None:
        return await self._store.get_edge(actor_a, actor_b)

    async def purge_scan_log(self, before: datetime) -> int:
        purged = await self._store.purge_scan_log(before)
        if purged:
            logger.info("Scan log purged", purged=purged, before=before.isoformat())
        return purged
