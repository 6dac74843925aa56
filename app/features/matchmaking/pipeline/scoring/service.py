"""
Match engine - ranks compatibility between a subject and every other attendee.

score = GOAL_WEIGHT * jaccard(goals)
      + INTEREST_WEIGHT * jaccard(interests)
      + GRAPH_WEIGHT * edge_weight / subject's max edge weight

clamped to [0, 1]. Results are never persisted; every call recomputes.
"""

from __future__ import annotations

from collections.abc import Iterable

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ...domain.errors import InvalidInputError
from ...domain.models import Attendee, MatchFactor, MatchScore
from ...repository.base import GraphStore, IdentityStore

logger = get_logger(__name__)

# Fixed at design time, not per request. Sum is 1.0 so an unclamped score stays in [0, 1].
GOAL_WEIGHT = 0.40
INTEREST_WEIGHT = 0.35
GRAPH_WEIGHT = 0.25

FACTOR_GOALS = "shared_goals"
FACTOR_INTERESTS = "shared_interests"
FACTOR_INTERACTIONS = "interaction_history"


def jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    """Jaccard similarity; two empty sets score 0 (no evidence of overlap)."""
    left_set, right_set = set(left), set(right)
    union = left_set | right_set
    if not union:
        return 0.0
    return len(left_set & right_set) / len(union)


class MatchEngine:
    DEFAULT_LIMIT = 10

    def __init__(self, identity_store: IdentityStore, graph_store: GraphStore):
        self._identity = identity_store
        self._graph = graph_store

    async def calculate_matches(
        self, subject_id: str, limit: int = DEFAULT_LIMIT
    ) -> list[MatchScore]:
        """
        Score and rank candidates for ``subject_id``.

        Args:
            subject_id: Actor to match for. Unknown actors raise NotFoundError.
            limit: Max results to return (1..MATCH_MAX_LIMIT)

        Returns:
            Best-first list; equal scores ordered by candidate_id. Candidates
            with no goal, interest or interaction overlap are left out.
        """
        if limit < 1 or limit > settings.MATCH_MAX_LIMIT:
            raise InvalidInputError(
                f"limit must be between 1 and {settings.MATCH_MAX_LIMIT}", limit=limit
            )

        subject = await self._identity.get_attendee(subject_id)
        candidates = await self._identity.list_attendees()

        edges = await self._graph.edges_for(subject_id)
        edge_weights = {edge.other(subject_id): edge.weight for edge in edges}
        max_weight = max(edge_weights.values(), default=0)

        scored = [
            score
            for score in (
                self._score_pair(subject, candidate, edge_weights.get(candidate.actor_id, 0), max_weight)
                for candidate in candidates
                if candidate.actor_id != subject.actor_id and candidate.matchmaking_consent
            )
            if score is not None
        ]
        scored.sort(key=lambda s: (-s.score, s.candidate_id))
        top = scored[:limit]

        logger.info(
            "Matches calculated",
            actor_id=subject_id,
            candidate_count=len(candidates) - 1,
            matched=len(scored),
            returned=len(top),
        )
        return top

    async def score_pair(self, subject_id: str, candidate_id: str) -> float:
        """Score one pair regardless of consent; 0.0 when nothing overlaps."""
        subject = await self._identity.get_attendee(subject_id)
        candidate = await self._identity.get_attendee(candidate_id)

        edges = await self._graph.edges_for(subject_id)
        edge_weights = {edge.other(subject_id): edge.weight for edge in edges}
        max_weight = max(edge_weights.values(), default=0)

        score = self._score_pair(
            subject, candidate, edge_weights.get(candidate_id, 0), max_weight
        )
        return score.score if score else 0.0

    def _score_pair(
        self, subject: Attendee, candidate: Attendee, edge_weight: int, max_weight: int
    ) -> MatchScore | None:
        goal_similarity = jaccard(subject.goals, candidate.goals)
        interest_similarity = jaccard(subject.interests, candidate.interests)
        proximity = edge_weight / max_weight if max_weight > 0 else 0.0

        if goal_similarity == 0 and interest_similarity == 0 and proximity == 0:
            return None

        factors = [
            MatchFactor(
                name=FACTOR_GOALS,
                similarity=goal_similarity,
                weight=GOAL_WEIGHT,
                contribution=GOAL_WEIGHT * goal_similarity,
                shared=sorted(subject.goals & candidate.goals),
            ),
            MatchFactor(
                name=FACTOR_INTERESTS,
                similarity=interest_similarity,
                weight=INTEREST_WEIGHT,
                contribution=INTEREST_WEIGHT * interest_similarity,
                shared=sorted(subject.interests & candidate.interests),
            ),
            MatchFactor(
                name=FACTOR_INTERACTIONS,
                similarity=proximity,
                weight=GRAPH_WEIGHT,
                contribution=GRAPH_WEIGHT * proximity,
            ),
        ]
        rationale = [f for f in factors if f.contribution > 0]
        rationale.sort(key=lambda f: -f.contribution)

        total = sum(f.contribution for f in rationale)
        return MatchScore(
            subject_id=subject.actor_id,
            candidate_id=candidate.actor_id,
            score=max(0.0, min(1.0, total)),
            rationale=rationale,
        )
