"""
Aggregation package for matchmaking.

Folds deduplicated scans into weighted interaction edges and derives the
periodic hotspot summary from the scan log.
"""

from .hotspots import HotspotService
from .service import GraphAggregator

__all__ = ["GraphAggregator", "HotspotService"]
