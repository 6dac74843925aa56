"""
Scan deduplication package.

Rejects re-delivered and self-referencing scans before they reach the
graph aggregator.
"""

from .service import DedupResult, ScanDeduplicator

__all__ = ["DedupResult", "ScanDeduplicator"]
