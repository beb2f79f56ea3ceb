"""
Content filter pipeline for "new" recommendations.

Stages run in order, each on the survivors of the previous one:

1. score gate (missing mean counts as 0)
2. media-type gate
3. regional-origin gate (anime only, see RegionalOriginPolicy)
4. ownership gate (the user's list)
5. excluded-genre gate
6. optional required-genre gate (per-request filter)
7. favorite-genre partition, each partition shuffled, favorites first
8. de-duplication by item id

The pipeline is a pure function of its inputs; randomness comes from the
injected random.Random.
"""

import random
from dataclasses import dataclass, field
from typing import Collection, Iterable

from malrec.db.schemas import CatalogItem, ItemType

ANIME_MEDIA_TYPES = frozenset({"tv", "movie"})
MANGA_MEDIA_TYPES = frozenset({
    "manga", "light_novel", "novel", "one_shot", "manhwa", "doujinshi",
})


@dataclass(frozen=True)
class RegionalOriginPolicy:
    """Heuristic exclusion of Chinese-origin anime.

    Matches by substring on genre names and on the source field. It is a
    string heuristic and misses anything MAL does not label, so it can be
    switched off or given other markers without touching the pipeline.
    """
    enabled: bool = True
    genre_markers: tuple[str, ...] = ("donghua",)
    source_markers: tuple[str, ...] = ("chinese", "manhua")

    def excludes(self, item: CatalogItem) -> bool:
        if not self.enabled:
            return False
        for genre in item.genres:
            name = genre.name.lower()
            if any(marker in name for marker in self.genre_markers):
                return True
        source = (item.source or "").lower()
        return any(marker in source for marker in self.source_markers)


@dataclass
class ContentFilterCriteria:
    """User-specific inputs to the pipeline."""
    min_score: float = 7.0
    exclude_ids: Collection[int] = frozenset()
    favorite_genres: Collection[int] = ()
    excluded_genres: Collection[int] = ()
    required_genres: Collection[int] = ()
    origin_policy: RegionalOriginPolicy = field(default_factory=RegionalOriginPolicy)


def passes_media_type(item: CatalogItem, item_type: ItemType) -> bool:
    media_type = (item.media_type or "").lower()
    if item_type == ItemType.ANIME:
        return media_type in ANIME_MEDIA_TYPES
    return not media_type or media_type in MANGA_MEDIA_TYPES


def has_any_genre(item: CatalogItem, genre_ids: Collection[int]) -> bool:
    return not item.genre_ids.isdisjoint(genre_ids)


def dedupe(items: Iterable[CatalogItem]) -> list[CatalogItem]:
    """Keep the first occurrence of each item id."""
    seen: set[int] = set()
    unique = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


def filter_candidates(
    candidates: Iterable[CatalogItem],
    item_type: ItemType,
    criteria: ContentFilterCriteria,
    rng: random.Random | None = None,
) -> list[CatalogItem]:
    """Run the full pipeline and return survivors, favorites first."""
    rng = rng or random.Random()
    exclude_ids = set(criteria.exclude_ids)
    excluded_genres = set(criteria.excluded_genres)
    required_genres = set(criteria.required_genres)
    favorite_genres = set(criteria.favorite_genres)

    items = [item for item in candidates if (item.mean or 0) >= criteria.min_score]
    items = [item for item in items if passes_media_type(item, item_type)]
    if item_type == ItemType.ANIME:
        items = [item for item in items if not criteria.origin_policy.excludes(item)]
    items = [item for item in items if item.id not in exclude_ids]
    if excluded_genres:
        items = [item for item in items if not has_any_genre(item, excluded_genres)]
    if required_genres:
        items = [item for item in items if has_any_genre(item, required_genres)]

    favorites = [item for item in items if has_any_genre(item, favorite_genres)]
    rest = [item for item in items if not has_any_genre(item, favorite_genres)]
    rng.shuffle(favorites)
    rng.shuffle(rest)

    return dedupe(favorites + rest)
