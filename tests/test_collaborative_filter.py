import asyncio

import pytest

from malrec.db.schemas import ItemType
from malrec.services.collaborative_filter import CollaborativeFilter, jaccard_similarity


class FakeFeedback:
    """In-memory likes/dislikes keyed by user id."""

    def __init__(self, likes, dislikes=None, fail=False):
        self.likes = likes
        self.dislikes = dislikes or {}
        self.fail = fail

    async def get_likes(self, user_id, item_type):
        if self.fail:
            raise RuntimeError("database unavailable")
        return list(self.likes.get(user_id, []))

    async def get_dislikes(self, user_id, item_type):
        return list(self.dislikes.get(user_id, []))

    async def get_all_likes_excluding(self, user_id, item_type):
        return {uid: list(items) for uid, items in self.likes.items() if uid != user_id and items}

    async def get_likes_for_users(self, user_ids, item_type):
        return {uid: list(self.likes[uid]) for uid in user_ids if uid in self.likes}


def test_jaccard_similarity():
    assert jaccard_similarity({1, 2, 3}, {2, 3, 4}) == pytest.approx(0.5)
    assert jaccard_similarity([], []) == 0.0
    assert jaccard_similarity({1}, {2}) == 0.0


def test_similar_users_respect_threshold_and_order():
    feedback = FakeFeedback({
        1: [1, 2, 3],
        2: [2, 3, 4],      # 0.5
        3: [1, 2, 3, 4],   # 0.75
        4: [9, 10],        # 0.0
        5: [3, 7, 8, 9],   # 1/6, below 0.2
    })
    cf = CollaborativeFilter(feedback)
    similar = asyncio.run(cf.find_similar_users(1, ItemType.ANIME))
    assert [s.user_id for s in similar] == [3, 2]
    assert similar[0].similarity == pytest.approx(0.75)
    assert similar[0].shared_likes == 3


def test_no_likes_means_no_neighbours():
    cf = CollaborativeFilter(FakeFeedback({2: [1, 2]}))
    assert asyncio.run(cf.find_similar_users(1, ItemType.ANIME)) == []
    assert asyncio.run(cf.get_collaborative_recommendations(1, ItemType.ANIME)) == []


def test_neighbour_count_is_capped():
    likes = {1: [1, 2]}
    likes.update({uid: [1, 2] for uid in range(2, 20)})
    cf = CollaborativeFilter(FakeFeedback(likes), max_neighbors=10)
    assert len(asyncio.run(cf.find_similar_users(1, ItemType.ANIME))) == 10


def test_scores_sum_neighbour_similarity():
    feedback = FakeFeedback({
        1: [1, 2, 3],
        2: [2, 3, 4, 5],     # 2/5 = 0.4
        3: [1, 2, 3, 5],     # 3/4 = 0.75
    })
    cf = CollaborativeFilter(feedback)
    scores = asyncio.run(cf.get_collaborative_recommendations(1, ItemType.ANIME, exclude_ids={1, 2, 3}))
    by_id = {s.item_id: s for s in scores}

    assert set(by_id) == {4, 5}
    assert by_id[5].score == pytest.approx(1.15)
    assert by_id[5].count == 2
    assert by_id[4].score == pytest.approx(0.4)
    assert scores[0].item_id == 5


def test_excluded_and_disliked_items_never_scored():
    feedback = FakeFeedback(
        likes={1: [1, 2], 2: [1, 2, 3, 4, 5]},
        dislikes={1: [4]},
    )
    cf = CollaborativeFilter(feedback)
    scores = asyncio.run(cf.get_collaborative_recommendations(1, ItemType.MANGA, exclude_ids={1, 2, 3}))
    assert [s.item_id for s in scores] == [5]


def test_lookup_failure_degrades_to_empty():
    cf = CollaborativeFilter(FakeFeedback({}, fail=True))
    assert asyncio.run(cf.get_collaborative_recommendations(1, ItemType.ANIME)) == []


def test_jaccard_is_symmetric_and_one_for_identical_sets():
    a, b = {1, 2, 5}, {2, 5, 8, 9}
    assert jaccard_similarity(a, b) == jaccard_similarity(b, a)
    assert jaccard_similarity(a, set()) == 0.0
    assert jaccard_similarity(a, set(a)) == 1.0


def test_single_shared_like_is_full_similarity():
    cf = CollaborativeFilter(FakeFeedback({1: [42], 2: [42]}))
    similar = asyncio.run(cf.find_similar_users(1, ItemType.ANIME))
    assert len(similar) == 1
    assert similar[0].user_id == 2
    assert similar[0].similarity == 1.0
    assert similar[0].shared_likes == 1
