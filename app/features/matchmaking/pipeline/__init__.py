"""
Pipeline components for matchmaking.

Ingestion runs leaf first: dedup -> aggregation -> scoring. Subpackages
expose the primary services that the boundary layer sequences.
"""

__all__ = ["aggregation", "dedup", "scoring"]
