"""
User-based collaborative filtering over like/dislike feedback.

Neighbours are other users whose liked-item sets overlap the target user's,
measured with Jaccard similarity. An item's score is the sum of the
similarities of the neighbours who liked it.

This is an enhancement to the content pipeline, never a dependency: every
lookup failure is logged and degrades to "no collaborative signal".
"""

import logging
from dataclasses import dataclass
from typing import Collection, Iterable, Protocol

from malrec.db.schemas import ItemType

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIMILARITY = 0.2
MAX_SIMILAR_USERS = 10


class FeedbackSource(Protocol):
    async def get_likes(self, user_id: int, item_type: ItemType) -> list[int]: ...
    async def get_dislikes(self, user_id: int, item_type: ItemType) -> list[int]: ...
    async def get_all_likes_excluding(
        self, user_id: int, item_type: ItemType
    ) -> dict[int, list[int]]: ...
    async def get_likes_for_users(
        self, user_ids: list[int], item_type: ItemType
    ) -> dict[int, list[int]]: ...


@dataclass
class SimilarityEntry:
    user_id: int
    similarity: float  # Jaccard, 0-1
    shared_likes: int


@dataclass
class CollaborativeScore:
    item_id: int
    score: float  # Sum of contributing neighbours' similarity
    count: int  # Number of contributing neighbours


def jaccard_similarity(a: Iterable[int], b: Iterable[int]) -> float:
    """|A ∩ B| / |A ∪ B|, 0 when both are empty."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


class CollaborativeFilter:
    """Finds similar users and scores the items they liked."""

    def __init__(
        self,
        feedback: FeedbackSource,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        max_neighbors: int = MAX_SIMILAR_USERS,
    ):
        self.feedback = feedback
        self.min_similarity = min_similarity
        self.max_neighbors = max_neighbors

    async def find_similar_users(
        self,
        user_id: int,
        item_type: ItemType,
        min_similarity: float | None = None,
    ) -> list[SimilarityEntry]:
        """
        Top neighbours by Jaccard similarity of liked items, best first.

        Returns an empty list when the user has no likes for this item type.
        """
        threshold = self.min_similarity if min_similarity is None else min_similarity
        try:
            user_likes = set(await self.feedback.get_likes(user_id, item_type))
            if not user_likes:
                return []

            others = await self.feedback.get_all_likes_excluding(user_id, item_type)
        except Exception as e:
            logger.warning(f"Similar-user lookup failed for user {user_id}: {e}")
            return []

        similarities = []
        for other_id, other_likes in others.items():
            other_set = set(other_likes)
            similarity = jaccard_similarity(user_likes, other_set)
            if similarity < threshold:
                continue
            similarities.append(SimilarityEntry(
                user_id=other_id,
                similarity=similarity,
                shared_likes=len(user_likes & other_set),
            ))

        similarities.sort(key=lambda s: s.similarity, reverse=True)
        return similarities[:self.max_neighbors]

    async def get_collaborative_recommendations(
        self,
        user_id: int,
        item_type: ItemType,
        exclude_ids: Collection[int] = (),
        limit: int = 10,
    ) -> list[CollaborativeScore]:
        """
        Score items liked by similar users, highest score first.

        Items in exclude_ids or disliked by the target user are never returned.
        """
        neighbors = await self.find_similar_users(user_id, item_type)
        if not neighbors:
            return []

        similarity_by_user = {n.user_id: n.similarity for n in neighbors}
        try:
            neighbor_likes = await self.feedback.get_likes_for_users(
                list(similarity_by_user), item_type
            )
            disliked = set(await self.feedback.get_dislikes(user_id, item_type))
        except Exception as e:
            logger.warning(f"Collaborative lookup failed for user {user_id}: {e}")
            return []

        excluded = set(exclude_ids) | disliked
        scores: dict[int, CollaborativeScore] = {}
        for neighbor_id, liked_items in neighbor_likes.items():
            similarity = similarity_by_user.get(neighbor_id, 0.0)
            for item_id in set(liked_items):
                if item_id in excluded:
                    continue
                entry = scores.setdefault(item_id, CollaborativeScore(item_id, 0.0, 0))
                entry.score += similarity
                entry.count += 1

        ranked = sorted(scores.values(), key=lambda s: s.score, reverse=True)
        logger.debug(
            f"Collaborative: {len(neighbors)} neighbours, {len(ranked)} scored items for user {user_id}"
        )
        return ranked[:limit]
