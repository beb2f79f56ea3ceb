"""
Recommendation orchestrator.

Entry point for generating a batch per (user, item type, mode):

    new:             server cache -> local cooldown -> candidates -> content
                     filter -> collaborative scores -> hybrid rank -> top N
    rewatch/reread:  local cooldown -> user's own list rated >= 7 -> shuffle -> top N

A batch is persisted only after it has been fully computed. Concurrent
requests for the same key are serialized so only one of them computes;
the others find the fresh batch in the cache.
"""

import asyncio
import logging
import random
from collections.abc import Collection
from contextlib import asynccontextmanager
from datetime import datetime

from malrec.config import Settings
from malrec.core.errors import NoHighRatingsError, NoRatingsError, UpstreamError
from malrec.core.mal_client import SEASONS, MALClient
from malrec.db.schemas import (
    CatalogItem, ItemType, ListEntry, RecommendationBatch, RecommendationItem, RecommendationMode,
)
from malrec.services.collaborative_filter import CollaborativeFilter, CollaborativeScore, FeedbackSource
from malrec.services.content_filter import ContentFilterCriteria, RegionalOriginPolicy, filter_candidates
from malrec.services.cooldown import CooldownController
from malrec.services.hybrid_ranker import (
    append_collaborative_items, collaborative_only, create_hybrid_recommendations,
)
from malrec.services.list_service import ListCacheService
from malrec.services.preferences_service import PreferencesService

logger = logging.getLogger(__name__)

REWATCH_STATUSES = frozenset({"completed", "watching", "reading"})


class GenerationLocks:
    """
    One asyncio.Lock per (user, item type, mode), shared across requests.

    A key's lock lives only while some request holds or waits on it, so the
    map stays bounded by the number of in-flight generations.
    """

    def __init__(self):
        self._locks: dict[tuple, asyncio.Lock] = {}
        self._holders: dict[tuple, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: tuple):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]


class RecommendationService:
    """Wires the catalog, stores, filters and cooldown into one generate() call."""

    def __init__(
        self,
        mal: MALClient,
        lists: ListCacheService,
        feedback: FeedbackSource,
        preferences: PreferencesService,
        cooldown: CooldownController,
        settings: Settings,
        locks: GenerationLocks | None = None,
        rng: random.Random | None = None,
    ):
        self.mal = mal
        self.lists = lists
        self.preferences = preferences
        self.cooldown = cooldown
        self.settings = settings
        self.locks = locks or GenerationLocks()
        self.rng = rng or random.Random()
        self.collaborative = CollaborativeFilter(
            feedback,
            min_similarity=settings.cf_min_similarity,
            max_neighbors=settings.cf_max_neighbors,
        )
        self.origin_policy = RegionalOriginPolicy(enabled=settings.exclude_chinese_origin)

    async def generate(
        self,
        user_id: int,
        token: str,
        item_type: ItemType,
        mode: RecommendationMode,
        genre_filter: Collection[int] | None = None,
    ) -> RecommendationBatch:
        """
        Return the active batch for the key, generating one if none is active.

        Raises:
            NoRatingsError: rewatch/reread mode and the user has rated nothing
            NoHighRatingsError: rewatch/reread mode and nothing is rated 7+
            UpstreamError: the user's list or the candidate pool is unavailable
        """
        async with self.locks.hold((user_id, item_type, mode)):
            if mode.from_own_list:
                return await self._generate_from_list(user_id, item_type, mode, genre_filter)
            return await self._generate_new(user_id, token, item_type, genre_filter)

    # ------------------------------------------------------------------
    # New recommendations
    # ------------------------------------------------------------------

    async def _generate_new(
        self,
        user_id: int,
        token: str,
        item_type: ItemType,
        genre_filter: Collection[int] | None,
    ) -> RecommendationBatch:
        mode = RecommendationMode.NEW

        cached = await self.cooldown.get_server_batch(user_id, item_type, mode)
        if cached is not None:
            return cached
        check = await self.cooldown.check_cooldown(user_id, item_type, mode)
        if not check.can_generate and check.cached_batch is not None:
            logger.info(f"Cooldown active for user {user_id} ({item_type.value}/{mode.value})")
            return check.cached_batch

        try:
            owned_ids = await self.lists.get_user_list_ids(user_id, item_type)
        except Exception as e:
            logger.error(f"Could not load {item_type.value} list for user {user_id}: {e}")
            raise UpstreamError("Could not load your list") from e

        prefs = await self.preferences.get(user_id)
        criteria = ContentFilterCriteria(
            min_score=prefs.min_score,
            exclude_ids=owned_ids,
            favorite_genres=prefs.favorite_genres,
            excluded_genres=prefs.excluded_genres,
            required_genres=genre_filter or (),
            origin_policy=self.origin_policy,
        )

        candidates = await self._fetch_candidates(token, item_type)
        content_items = filter_candidates(candidates, item_type, criteria, self.rng)

        collab_scores = await self.collaborative.get_collaborative_recommendations(
            user_id, item_type, owned_ids, limit=self.settings.cf_candidate_limit,
        )
        weight = self.settings.content_weight
        ranked = create_hybrid_recommendations(content_items, collab_scores, weight)

        extra_scores = collaborative_only(content_items, collab_scores)
        if extra_scores:
            details = await self._fetch_collaborative_details(
                token, item_type, extra_scores[:self.settings.cf_detail_lookups]
            )
            details = filter_candidates(details, item_type, criteria, self.rng)
            ranked = append_collaborative_items(ranked, details, collab_scores, weight)

        items = [
            RecommendationItem.from_catalog(c.item, item_type, round(c.hybrid_score, 4))
            for c in ranked[:self.settings.batch_size]
        ]
        batch = self._new_batch(user_id, item_type, mode, items)
        logger.info(
            f"Generated {len(items)} {item_type.value} recommendations for user {user_id} "
            f"from {len(candidates)} candidates ({len(content_items)} after filters, "
            f"{len(collab_scores)} collaborative)"
        )

        if items:
            await self.cooldown.persist(batch, metadata={
                "candidates": len(candidates),
                "filtered": len(content_items),
                "collaborative": len(collab_scores),
                "min_score": prefs.min_score,
            })
        return batch

    async def _fetch_candidates(self, token: str, item_type: ItemType) -> list[CatalogItem]:
        if item_type == ItemType.ANIME:
            return await self._fetch_seasonal_candidates(token)
        try:
            return await self.mal.get_ranking(
                token, ItemType.MANGA, "all", limit=self.settings.manga_ranking_limit
            )
        except Exception as e:
            logger.error(f"Manga ranking fetch failed: {e}")
            raise UpstreamError("Could not fetch manga from MyAnimeList") from e

    def _random_seasons(self, count: int) -> list[tuple[int, str]]:
        current_year = self.cooldown.now().year
        return [
            (
                self.rng.randint(self.settings.seasonal_earliest_year, current_year),
                self.rng.choice(SEASONS),
            )
            for _ in range(count)
        ]

    async def _fetch_seasonal_candidates(self, token: str) -> list[CatalogItem]:
        """Fetch random past seasons concurrently; a failed season counts as empty."""
        seasons = self._random_seasons(self.settings.seasonal_fetch_count)
        results = await asyncio.gather(
            *(
                self.mal.get_seasonal_items(token, year, season, self.settings.seasonal_fetch_limit)
                for year, season in seasons
            ),
            return_exceptions=True,
        )

        candidates: list[CatalogItem] = []
        for (year, season), result in zip(seasons, results):
            if isinstance(result, Exception):
                logger.warning(f"Seasonal fetch {season} {year} failed: {result}")
                continue
            candidates.extend(result)
        return candidates

    async def _fetch_collaborative_details(
        self,
        token: str,
        item_type: ItemType,
        scores: list[CollaborativeScore],
    ) -> list[CatalogItem]:
        """Detail records for collaborative-only items, bounded in time."""
        try:
            results = await asyncio.wait_for(
                asyncio.gather(
                    *(self.mal.get_item_details(token, item_type, s.item_id) for s in scores),
                    return_exceptions=True,
                ),
                timeout=self.settings.catalog_fetch_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Collaborative detail lookups timed out for {len(scores)} items")
            return []

        details = []
        for score, result in zip(scores, results):
            if isinstance(result, Exception):
                logger.warning(f"Detail lookup for {item_type.value} {score.item_id} failed: {result}")
                continue
            details.append(result)
        return details

    # ------------------------------------------------------------------
    # Rewatch / reread
    # ------------------------------------------------------------------

    async def _generate_from_list(
        self,
        user_id: int,
        item_type: ItemType,
        mode: RecommendationMode,
        genre_filter: Collection[int] | None,
    ) -> RecommendationBatch:
        check = await self.cooldown.check_cooldown(user_id, item_type, mode)
        if not check.can_generate and check.cached_batch is not None:
            logger.info(f"Cooldown active for user {user_id} ({item_type.value}/{mode.value})")
            return check.cached_batch

        try:
            entries = await self.lists.get_user_list_cache(user_id, item_type)
        except Exception as e:
            logger.error(f"Could not load {item_type.value} list for user {user_id}: {e}")
            raise UpstreamError("Could not load your list") from e

        eligible = select_rewatch_candidates(entries, self.settings.rewatch_min_rating)
        if genre_filter:
            wanted = set(genre_filter)
            eligible = [e for e in eligible if not e.genre_ids.isdisjoint(wanted)]

        self.rng.shuffle(eligible)
        items = [
            RecommendationItem.from_list_entry(entry)
            for entry in eligible[:self.settings.batch_size]
        ]
        batch = self._new_batch(user_id, item_type, mode, items)
        if items:
            await self.cooldown.persist(batch, server=False)
        return batch

    def _new_batch(
        self,
        user_id: int,
        item_type: ItemType,
        mode: RecommendationMode,
        items: list[RecommendationItem],
    ) -> RecommendationBatch:
        generated_at: datetime = self.cooldown.now()
        return RecommendationBatch(
            user_id=user_id,
            item_type=item_type,
            mode=mode,
            items=items,
            generated_at=generated_at,
            expires_at=self.cooldown.expires_at(generated_at),
        )


def select_rewatch_candidates(entries: list[ListEntry], min_rating: int = 7) -> list[ListEntry]:
    """
    Entries worth revisiting: rated, finished or in progress, rated min_rating+.

    Raises NoRatingsError when nothing qualifying is rated at all, and
    NoHighRatingsError when ratings exist but none reach min_rating.
    """
    rated = [e for e in entries if e.score > 0 and e.status in REWATCH_STATUSES]
    if not rated:
        raise NoRatingsError()

    eligible = [e for e in rated if e.score >= min_rating]
    if not eligible:
        raise NoHighRatingsError(
            f"No items rated {min_rating} or higher found. "
            f"Rate more titles to get rewatch recommendations!"
        )
    return eligible
