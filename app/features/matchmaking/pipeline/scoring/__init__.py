"""
Match scoring package.

Ranks candidate attendees for a subject from profile overlap and
interaction history.
"""

from .service import GOAL_WEIGHT, GRAPH_WEIGHT, INTEREST_WEIGHT, MatchEngine, jaccard

__all__ = ["GOAL_WEIGHT", "GRAPH_WEIGHT", "INTEREST_WEIGHT", "MatchEngine", "jaccard"]
