"""
Hybrid ranking of content and collaborative signals.

Content items get a linear positional score, (N - index) / N, weighted by
content_weight. Collaborative scores are divided by the largest one present
and weighted by 1 - content_weight. The sum orders the final list.

Collaborative items that the content pipeline never produced are not scored
here; the caller fetches their details and merges them with
append_collaborative_items.
"""

from dataclasses import dataclass
from typing import Iterable

from malrec.db.schemas import CatalogItem
from malrec.services.collaborative_filter import CollaborativeScore

DEFAULT_CONTENT_WEIGHT = 0.7


@dataclass
class RankedCandidate:
    item: CatalogItem
    content_score: float = 0.0
    collab_score: float = 0.0

    @property
    def hybrid_score(self) -> float:
        return self.content_score + self.collab_score


def _normalizer(scores: list[CollaborativeScore]) -> float:
    top = max((s.score for s in scores), default=0.0)
    return top if top > 0 else 1.0


def create_hybrid_recommendations(
    content_items: list[CatalogItem],
    collaborative_scores: list[CollaborativeScore],
    content_weight: float = DEFAULT_CONTENT_WEIGHT,
) -> list[RankedCandidate]:
    """Merge both signals and order by combined score, best first.

    With no collaborative scores the content order is returned unchanged.
    """
    collab_weight = 1 - content_weight
    total = len(content_items)

    ranked: dict[int, RankedCandidate] = {}
    for index, item in enumerate(content_items):
        position_score = (total - index) / total
        ranked[item.id] = RankedCandidate(item=item, content_score=position_score * content_weight)

    top = _normalizer(collaborative_scores)
    for rec in collaborative_scores:
        candidate = ranked.get(rec.item_id)
        if candidate is not None:
            candidate.collab_score = (rec.score / top) * collab_weight

    return sorted(ranked.values(), key=lambda c: c.hybrid_score, reverse=True)


def collaborative_only(
    content_items: Iterable[CatalogItem],
    collaborative_scores: list[CollaborativeScore],
) -> list[CollaborativeScore]:
    """Collaborative scores with no matching content item, in score order."""
    content_ids = {item.id for item in content_items}
    return [s for s in collaborative_scores if s.item_id not in content_ids]


def append_collaborative_items(
    ranked: list[RankedCandidate],
    details: list[CatalogItem],
    collaborative_scores: list[CollaborativeScore],
    content_weight: float = DEFAULT_CONTENT_WEIGHT,
) -> list[RankedCandidate]:
    """Add fetched collaborative-only items and re-sort by combined score."""
    collab_weight = 1 - content_weight
    top = _normalizer(collaborative_scores)
    score_by_id = {s.item_id: s.score for s in collaborative_scores}
    present = {c.item.id for c in ranked}

    merged = list(ranked)
    for item in details:
        if item.id in present or item.id not in score_by_id:
            continue
        present.add(item.id)
        merged.append(RankedCandidate(item=item, collab_score=(score_by_id[item.id] / top) * collab_weight))

    return sorted(merged, key=lambda c: c.hybrid_score, reverse=True)
